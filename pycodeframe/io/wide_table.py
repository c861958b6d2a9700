"""
Wide, binary-encoded table rendering.

One row per respondent. Per question id the table carries the verbatim
answer, a fixed number of slot columns holding the numeric ids of the
assigned codes in order, and one 0/1 column per reachable code, ordered
Subnet, Net, Grand Net. Assigning a code also sets the columns of its
resolved Net and Grand Net ancestors.
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

import pandas as pd

from pycodeframe.config import ExportConfig
from pycodeframe.core.codeframe import Code, Codeframe, HierarchyLevel
from pycodeframe.core.hierarchy import HierarchyClassifier, ancestors, build_hierarchy
from pycodeframe.models import CodedResponse
from pycodeframe.utils import sanitize_label

logger = logging.getLogger(__name__)

LEVEL_ORDER = (HierarchyLevel.SUBNET, HierarchyLevel.NET, HierarchyLevel.GRAND_NET)


@dataclass(frozen=True)
class WideColumn:
    """Describes one column of the wide table."""

    name: str
    kind: str
    question_id: Optional[str] = None
    code_id: Optional[str] = None
    slot: Optional[int] = None
    level: Optional[HierarchyLevel] = None


@dataclass
class WideTable:
    """
    A rendered wide table.

    Attributes:
        columns: Column descriptors in header order.
        rows: One dict per respondent mapping column name to its text value
            ('' for blank cells).
        row_ids: Respondent identities, aligned with ``rows``.
        codeframes: Codeframe used for each question id.
        delimiter: Field delimiter for :meth:`to_csv`.
    """

    columns: list[WideColumn] = field(default_factory=list)
    rows: list[dict] = field(default_factory=list)
    row_ids: list[str] = field(default_factory=list)
    codeframes: dict[str, Codeframe] = field(default_factory=dict)
    delimiter: str = ","

    @property
    def header(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def question_ids(self) -> list[str]:
        return list(self.codeframes)

    def to_dataframe(self) -> pd.DataFrame:
        """Convert the table to a DataFrame of strings."""
        return pd.DataFrame(self.rows, columns=self.header, dtype=str).fillna("")

    def to_csv(self, path: Optional[Union[str, Path]] = None) -> Union[str, Path]:
        """
        Serialize the table as delimited text.

        Fields holding the delimiter, a quote or a newline are quoted with
        internal quotes doubled. Lines end with ``\\n`` and carry no
        trailing delimiter.

        Args:
            path: Output file path. When None, the text is returned.

        Returns:
            The CSV text, or the path written to.
        """
        df = self.to_dataframe()
        options = dict(
            index=False,
            sep=self.delimiter,
            lineterminator="\n",
            quoting=csv.QUOTE_MINIMAL,
            doublequote=True,
        )
        if path is None:
            buffer = io.StringIO()
            df.to_csv(buffer, **options)
            return buffer.getvalue()

        path = Path(path)
        df.to_csv(path, encoding="utf-8", **options)
        logger.info(f"Wrote wide table ({len(self.rows)} rows, {len(self.columns)} columns) to {path}")
        return path

    def decode_assignments(self) -> dict[tuple[str, str], set[str]]:
        """
        Read the binary columns back into code id sets.

        Returns:
            Dict mapping ``(row_id, question_id)`` to the set of code ids
            whose column is 1. Questions a respondent did not answer are
            left out.
        """
        decoded = {}
        for row_id, row in zip(self.row_ids, self.rows):
            for question_id in self.question_ids:
                if not row.get(question_id, ""):
                    continue
                decoded[(row_id, question_id)] = {
                    column.code_id
                    for column in self.columns
                    if column.kind == "binary"
                    and column.question_id == question_id
                    and row.get(column.name) == "1"
                }
        return decoded

    def decode_slots(self) -> dict[tuple[str, str], list[str]]:
        """
        Read the slot columns back into ordered code id lists.

        Returns:
            Dict mapping ``(row_id, question_id)`` to the assigned code ids
            in slot order.
        """
        decoded = {}
        for row_id, row in zip(self.row_ids, self.rows):
            for question_id, codeframe in self.codeframes.items():
                if not row.get(question_id, ""):
                    continue
                code_ids = []
                for column in self.columns:
                    if column.kind != "slot" or column.question_id != question_id:
                        continue
                    value = row.get(column.name, "")
                    if not value:
                        continue
                    code = codeframe.get_by_numeric_id(int(value))
                    code_ids.append(code.id if code is not None else value)
                decoded[(row_id, question_id)] = code_ids
        return decoded

    def __len__(self) -> int:
        return len(self.rows)

    def __repr__(self) -> str:
        return f"WideTable(rows={len(self.rows)}, columns={len(self.columns)})"


def group_by_question(responses: Iterable[CodedResponse]) -> dict[str, list[CodedResponse]]:
    """Group coded responses by question (column) id, in first-appearance order."""
    grouped: dict[str, list[CodedResponse]] = {}
    for response in responses:
        grouped.setdefault(response.column_id, []).append(response)
    return grouped


def binary_column_name(question_id: str, code: Code, level: HierarchyLevel) -> str:
    """
    Build the composite name of a code's binary column.

    Example:
        >>> binary_column_name("B1r1", Code(id="C07", label="Different/Unique", numeric_id=1042),
        ...                    HierarchyLevel.SUBNET)
        'B1r1_Different_Unique (Subnet)_1042'
    """
    numeric = code.numeric_id if code.numeric_id is not None else code.id
    return f"{question_id}_{sanitize_label(code.label)} ({level.tag})_{numeric}"


def render(
    codeframe_or_mapping: Union[Codeframe, dict[str, Codeframe]],
    responses_by_question: Union[dict[str, list[CodedResponse]], Iterable[CodedResponse]],
    config: Optional[ExportConfig] = None,
    classifier: Optional[HierarchyClassifier] = None,
) -> WideTable:
    """
    Render coded responses into a wide table.

    Args:
        codeframe_or_mapping: One codeframe for every question, or a dict
            mapping question id to its codeframe.
        responses_by_question: Dict mapping question id to its coded
            responses, or a flat iterable grouped with group_by_question.
        config: Export configuration. Uses defaults if None.
        classifier: Hierarchy strategy (defaults to the label heuristic).

    Returns:
        The rendered WideTable.

    Raises:
        KeyError: If a question id has no codeframe in the mapping.
    """
    config = config or ExportConfig()
    if not isinstance(responses_by_question, dict):
        responses_by_question = group_by_question(responses_by_question)

    columns: list[WideColumn] = []
    if config.include_respondent_id:
        columns.append(WideColumn(name=config.respondent_id_column, kind="respondent"))

    # Respondent -> question -> (texts, assigned code ids)
    answers: dict[str, dict[str, tuple[list, list]]] = {}
    codeframes: dict[str, Codeframe] = {}
    plans = {}
    skipped = 0

    for question_id, responses in responses_by_question.items():
        if isinstance(codeframe_or_mapping, Codeframe):
            codeframe = codeframe_or_mapping
        else:
            codeframe = codeframe_or_mapping[question_id]
        codeframes[question_id] = codeframe
        hierarchy = build_hierarchy(codeframe, classifier)

        for response in responses:
            if response.row_id is None:
                skipped += 1
                continue
            texts, assigned = answers.setdefault(response.row_id, {}).setdefault(question_id, ([], []))
            texts.append(response.text)
            for code_id in response.codes_assigned:
                if code_id not in codeframe:
                    logger.warning(f"Question '{question_id}': unknown code id '{code_id}' not exported")
                elif code_id not in assigned:
                    assigned.append(code_id)

        reachable = set()
        if config.include_unused_codes:
            reachable = {code.id for code in codeframe}
        else:
            for by_question in answers.values():
                for code_id in by_question.get(question_id, ([], []))[1]:
                    reachable.add(code_id)
                    reachable.update(ancestors(code_id, hierarchy))

        question_columns = [WideColumn(name=question_id, kind="verbatim", question_id=question_id)]
        for slot in range(1, config.max_code_slots + 1):
            question_columns.append(WideColumn(
                name=f"{question_id}_Code{slot}", kind="slot", question_id=question_id, slot=slot,
            ))
        for level in LEVEL_ORDER:
            for code in codeframe:
                if code.id in reachable and hierarchy[code.id].level == level:
                    question_columns.append(WideColumn(
                        name=binary_column_name(question_id, code, level),
                        kind="binary",
                        question_id=question_id,
                        code_id=code.id,
                        level=level,
                    ))

        columns.extend(question_columns)
        plans[question_id] = (question_columns, hierarchy, codeframe)

    if skipped:
        logger.warning(f"Skipped {skipped} responses without a respondent id")

    rows = []
    row_ids = []
    for row_id, by_question in answers.items():
        row = {}
        if config.include_respondent_id:
            row[config.respondent_id_column] = row_id
        for question_id, (question_columns, hierarchy, codeframe) in plans.items():
            answer = by_question.get(question_id)
            row.update(_render_question(answer, question_columns, hierarchy, codeframe, config, row_id))
        rows.append(row)
        row_ids.append(row_id)

    logger.info(f"Rendered wide table: {len(rows)} respondents, {len(columns)} columns")
    return WideTable(
        columns=columns,
        rows=rows,
        row_ids=row_ids,
        codeframes=codeframes,
        delimiter=config.delimiter,
    )


def _render_question(answer, question_columns, hierarchy, codeframe, config, row_id) -> dict:
    if answer is None:
        blank_binary = "" if config.blank_unanswered else "0"
        return {
            column.name: blank_binary if column.kind == "binary" else ""
            for column in question_columns
        }

    texts, assigned = answer
    if len(assigned) > config.max_code_slots:
        logger.warning(
            f"Respondent '{row_id}' has {len(assigned)} codes for '{question_columns[0].name}'; "
            f"only {config.max_code_slots} fit in slot columns"
        )

    rolled_up = set(assigned)
    for code_id in assigned:
        rolled_up.update(ancestors(code_id, hierarchy))

    values = {}
    for column in question_columns:
        if column.kind == "verbatim":
            values[column.name] = " | ".join(texts)
        elif column.kind == "slot":
            if column.slot <= len(assigned):
                numeric = codeframe.get(assigned[column.slot - 1]).numeric_id
                values[column.name] = "" if numeric is None else str(numeric)
            else:
                values[column.name] = ""
        else:
            values[column.name] = "1" if column.code_id in rolled_up else "0"
    return values


def render_result(
    result,
    config: Optional[ExportConfig] = None,
    classifier: Optional[HierarchyClassifier] = None,
) -> WideTable:
    """
    Render a GenerationResult, using each group's codeframe for its columns.

    Every column of every successful group gets a block, in group and
    column order, even when none of its responses were coded.
    """
    mapping = {}
    responses_by_question = {}
    for success in result.successes:
        for column in success.group.columns:
            mapping[column.name] = success.codeframe
            responses_by_question[column.name] = []
        for response in success.coded_responses:
            if response.column_id not in mapping:
                mapping[response.column_id] = success.codeframe
                responses_by_question[response.column_id] = []
            responses_by_question[response.column_id].append(response)

    return render(mapping, responses_by_question, config=config, classifier=classifier)
