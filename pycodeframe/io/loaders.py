"""Data loading utilities for pycodeframe."""

import json
import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from pycodeframe.core.codeframe import Code, Codeframe
from pycodeframe.models import ColumnData, QuestionGroup

logger = logging.getLogger(__name__)


def load_table(
    path: Union[str, Path],
    encoding: str = "utf-8",
    **kwargs,
) -> pd.DataFrame:
    """
    Load an already-exported survey table from CSV.

    All cells are read as strings so respondent ids keep leading zeros.

    Args:
        path: Path to CSV file.
        encoding: File encoding.
        **kwargs: Additional arguments passed to pd.read_csv.

    Returns:
        DataFrame of the survey table.

    Raises:
        FileNotFoundError: If file doesn't exist.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    kwargs.setdefault("dtype", str)
    df = pd.read_csv(path, encoding=encoding, **kwargs)

    logger.info(f"Loaded {len(df)} rows, {len(df.columns)} columns from {path.name}")

    return df


def columns_from_dataframe(
    df: pd.DataFrame,
    columns: list[str],
    id_column: Optional[str] = None,
) -> list[ColumnData]:
    """
    Extract open-ended columns from a DataFrame.

    Args:
        df: The survey table.
        columns: Names of the open-ended columns.
        id_column: Optional respondent id column. Rows are numbered
            R1..Rn when omitted.

    Returns:
        One ColumnData per requested column, in the given order.

    Raises:
        ValueError: If a column is missing.
    """
    missing = [c for c in columns + ([id_column] if id_column else []) if c not in df.columns]
    if missing:
        raise ValueError(
            f"Column(s) {missing} not found. "
            f"Available columns: {list(df.columns)}"
        )

    row_ids = None
    if id_column:
        row_ids = tuple(str(v) for v in df[id_column].tolist())

    return [
        ColumnData(
            name=name,
            index=int(df.columns.get_loc(name)),
            values=tuple(df[name].tolist()),
            row_ids=row_ids,
        )
        for name in columns
    ]


def groups_from_dataframe(
    df: pd.DataFrame,
    column_types: dict[str, str],
    id_column: Optional[str] = None,
    group_names: Optional[dict[str, str]] = None,
) -> list[QuestionGroup]:
    """
    Build one question group per question type from a DataFrame.

    Args:
        df: The survey table.
        column_types: Mapping of column name to question type, e.g.
            ``{"Q1": "unaided-awareness", "B1r1": "brand-description"}``.
        id_column: Optional respondent id column.
        group_names: Optional display names per question type.

    Returns:
        Question groups in order of each type's first column.

    Example:
        >>> df = load_table("wave3.csv")
        >>> groups = groups_from_dataframe(
        ...     df, {"Q1": "unaided-awareness", "B1r1": "brand-description"}, id_column="RespID"
        ... )
    """
    group_names = group_names or {}
    columns = columns_from_dataframe(df, list(column_types), id_column=id_column)

    by_type: dict[str, list[ColumnData]] = {}
    for column in columns:
        by_type.setdefault(column_types[column.name], []).append(column)

    groups = [
        QuestionGroup(
            group_id=f"group_{question_type}",
            name=group_names.get(question_type, question_type.replace("-", " ").title()),
            question_type=question_type,
            columns=tuple(type_columns),
        )
        for question_type, type_columns in by_type.items()
    ]
    logger.info(f"Built {len(groups)} question groups from {len(columns)} columns")
    return groups


def load_codeframe(path: Union[str, Path]) -> Codeframe:
    """
    Load a frozen codeframe from JSON or CSV.

    JSON may be a saved Codeframe, the oracle's ``{"codeframe": [...]}``
    shape, or a bare list of codes. CSV needs ``code`` (or ``id``) and
    ``label`` columns; ``definition``, ``examples`` (separated by '; '),
    ``numeric_id``, ``parent_id``, ``level``, ``is_aggregate`` and
    ``question_type`` are optional.

    Raises:
        FileNotFoundError: If file doesn't exist.
        ValueError: If the file type is unsupported.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".json":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        codeframe = Codeframe.from_dict(data)
    elif suffix == ".csv":
        codeframe = _codeframe_from_csv(path)
    else:
        raise ValueError(f"Unsupported codeframe file type: {suffix}")

    logger.info(f"Loaded codeframe with {len(codeframe)} codes from {path.name}")
    return codeframe


def load_codeframes(path: Union[str, Path]) -> dict[str, Codeframe]:
    """
    Load codeframes keyed by question type.

    Accepts the files written by ``export_codeframe_json`` and
    ``export_codeframe_csv`` for a generation result (``{"codeframes":
    {type: codeframe}}``, or a CSV with a ``question_type`` column) as
    well as any single codeframe file, which is keyed by its question
    type (or 'default').
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".json":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict) and "codeframes" in data:
            return {qt: Codeframe.from_dict(cf) for qt, cf in data["codeframes"].items()}
    elif suffix == ".csv":
        df = _read_codeframe_csv(path)
        if "question_type" in df.columns:
            frames = {}
            for question_type, rows in df.groupby("question_type", sort=False):
                frames[question_type] = _codeframe_from_rows(rows, question_type or None)
            logger.info(f"Loaded {len(frames)} codeframes from {path.name}")
            return frames

    codeframe = load_codeframe(path)
    return {codeframe.question_type or "default": codeframe}


def _read_codeframe_csv(path: Path) -> pd.DataFrame:
    df = pd.read_csv(path, dtype=str).fillna("")
    id_column = "code" if "code" in df.columns else "id"
    if id_column not in df.columns or "label" not in df.columns:
        raise ValueError(f"Codeframe CSV needs 'code' and 'label' columns, got {list(df.columns)}")
    return df


def _codeframe_from_rows(df: pd.DataFrame, question_type: Optional[str] = None) -> Codeframe:
    id_column = "code" if "code" in df.columns else "id"
    codes = []
    for record in df.to_dict(orient="records"):
        examples = [e.strip() for e in record.get("examples", "").split(";") if e.strip()]
        codes.append(Code(
            id=record[id_column],
            label=record["label"],
            definition=record.get("definition", ""),
            examples=examples,
            numeric_id=int(float(record["numeric_id"])) if record.get("numeric_id") else None,
            parent_id=record.get("parent_id") or None,
            level=record.get("level") or None,
            is_aggregate=record.get("is_aggregate", "").strip().lower() in ("true", "1", "yes"),
        ))
    return Codeframe(codes, question_type=question_type)


def _codeframe_from_csv(path: Path) -> Codeframe:
    df = _read_codeframe_csv(path)
    question_type = None
    if "question_type" in df.columns:
        types = [t for t in df["question_type"].unique() if t]
        if len(types) > 1:
            raise ValueError(
                f"{path.name} holds codeframes for {len(types)} question types; use load_codeframes"
            )
        question_type = types[0] if types else None
    return _codeframe_from_rows(df, question_type)
