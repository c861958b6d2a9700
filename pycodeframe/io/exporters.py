"""Data export utilities for pycodeframe."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from pycodeframe import __version__
from pycodeframe.config import ExportConfig
from pycodeframe.core.codeframe import Codeframe
from pycodeframe.core.hierarchy import HierarchyClassifier, hierarchy_summary
from pycodeframe.io.wide_table import WideTable, render_result

logger = logging.getLogger(__name__)


def export_wide_table(
    table_or_result,
    path: Union[str, Path],
    config: Optional[ExportConfig] = None,
    classifier: Optional[HierarchyClassifier] = None,
) -> Path:
    """
    Export the wide, binary-encoded table as CSV.

    Args:
        table_or_result: A rendered WideTable or a GenerationResult.
        path: Output file path.
        config: Export configuration (used when rendering a result).
        classifier: Hierarchy strategy (used when rendering a result).

    Returns:
        Path to exported file.
    """
    table = table_or_result
    if not isinstance(table, WideTable):
        table = render_result(table_or_result, config=config, classifier=classifier)
    return table.to_csv(path)


def export_codeframe_json(
    codeframes: Union[Codeframe, dict[str, Codeframe]],
    path: Union[str, Path],
    indent: int = 2,
) -> Path:
    """
    Export one codeframe, or codeframes keyed by question type, to JSON.

    Args:
        codeframes: A Codeframe or a dict mapping question type to Codeframe.
        path: Output file path.
        indent: JSON indentation.

    Returns:
        Path to exported file.
    """
    path = Path(path)

    if isinstance(codeframes, Codeframe):
        data = codeframes.to_dict()
    else:
        data = {"codeframes": {qt: cf.to_dict() for qt, cf in codeframes.items()}}

    data["_export_info"] = {
        "exported_at": datetime.now().isoformat(),
        "pycodeframe_version": __version__,
    }

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False, default=str)

    logger.info(f"Exported codeframe JSON to {path}")

    return path


def export_codeframe_csv(
    codeframes: Union[Codeframe, dict[str, Codeframe]],
    path: Union[str, Path],
) -> Path:
    """
    Export codeframes to CSV, one row per code.

    When several codeframes are given, a ``question_type`` column is added.

    Returns:
        Path to exported file.
    """
    path = Path(path)

    if isinstance(codeframes, Codeframe):
        df = codeframes.to_dataframe()
    else:
        frames = []
        for question_type, codeframe in codeframes.items():
            frame = codeframe.to_dataframe()
            frame.insert(0, "question_type", question_type)
            frames.append(frame)
        df = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()

    df.to_csv(path, index=False)

    logger.info(f"Exported codeframe CSV ({len(df)} codes) to {path}")

    return path


def export_coded_responses(
    responses: list,
    path: Union[str, Path],
    codeframes: Optional[dict[str, Codeframe]] = None,
    format: str = "csv",
) -> Path:
    """
    Export coded responses, one row per response.

    Args:
        responses: CodedResponse objects.
        path: Output file path.
        codeframes: Optional codeframes by question type, used to add
            code labels next to the ids.
        format: Output format ('csv' or 'json').

    Returns:
        Path to exported file.
    """
    path = Path(path)
    codeframes = codeframes or {}

    rows = []
    for response in responses:
        codeframe = codeframes.get(response.question_type)
        labels = []
        for code_id in response.codes_assigned:
            code = codeframe.get(code_id) if codeframe is not None else None
            labels.append(code.label if code is not None else code_id)
        rows.append({
            "row_id": response.row_id,
            "column_id": response.column_id,
            "question_type": response.question_type,
            "text": response.text,
            "codes": list(response.codes_assigned),
            "labels": labels,
            "n_codes": len(response.codes_assigned),
            "source": response.source,
        })

    df = pd.DataFrame(
        rows,
        columns=["row_id", "column_id", "question_type", "text", "codes", "labels", "n_codes", "source"],
    )

    if format == "csv":
        df["codes"] = df["codes"].apply(lambda x: "; ".join(x))
        df["labels"] = df["labels"].apply(lambda x: "; ".join(x))
        df.to_csv(path, index=False)
    elif format == "json":
        df.to_json(path, orient="records", indent=2)
    else:
        raise ValueError(f"Unsupported format: {format}")

    logger.info(f"Exported {len(rows)} coded responses to {path}")

    return path


def export_hierarchy_summary(
    codeframes: Union[Codeframe, dict[str, Codeframe]],
    path: Union[str, Path],
    classifier: Optional[HierarchyClassifier] = None,
) -> Path:
    """
    Export the text hierarchy summary of one or more codeframes.

    Returns:
        Path to exported file.
    """
    path = Path(path)

    if isinstance(codeframes, Codeframe):
        codeframes = {codeframes.question_type or "codeframe": codeframes}

    sections = [hierarchy_summary(cf, classifier) for cf in codeframes.values()]

    with open(path, "w", encoding="utf-8") as f:
        f.write("\n\n".join(sections) + "\n")

    logger.info(f"Exported hierarchy summary to {path}")

    return path


def export_tracking_data(tracker, path: Union[str, Path]) -> Path:
    """
    Export a study's wave-by-code percentage table to CSV.

    Args:
        tracker: VersionTracker of the study.
        path: Output file path.

    Returns:
        Path to exported file.
    """
    path = Path(path)

    df = tracker.tracking_table()
    df.to_csv(path, index=False)

    logger.info(f"Exported tracking data ({len(df)} waves) to {path}")

    return path


def export_failures(result, path: Union[str, Path]) -> Path:
    """
    Export the failed groups of a generation result to JSON.

    Returns:
        Path to exported file.
    """
    path = Path(path)

    data = {
        "status": result.status.value,
        "failures": [f.to_dict() for f in result.failures],
        "rejected_responses": [r.to_dict() for r in result.rejected_responses],
    }

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=str)

    logger.info(f"Exported {len(result.failures)} failed group(s) to {path}")

    return path


def export_run_metadata(
    output_dir: Union[str, Path],
    config: dict,
    results: dict,
    start_time: datetime,
    end_time: datetime,
    notes: str = "",
) -> Path:
    """
    Export run metadata for reproducibility.

    Args:
        output_dir: Output directory.
        config: Configuration dictionary.
        results: Results dictionary (counts, columns processed, status).
        start_time: Run start time.
        end_time: Run end time.
        notes: Optional notes.

    Returns:
        Path to metadata file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    metadata = {
        "run_info": {
            "start_time": start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "duration_seconds": (end_time - start_time).total_seconds(),
            "pycodeframe_version": __version__,
        },
        "config": config,
        "results": results,
        "notes": notes,
    }

    path = output_dir / "run_metadata.json"

    with open(path, "w", encoding="utf-8") as f:
        json.dump(metadata, f, indent=2, ensure_ascii=False, default=str)

    logger.info(f"Exported run metadata to {path}")

    return path
