"""Input/output utilities for loading data and exporting results."""

from pycodeframe.io.loaders import (
    load_table,
    columns_from_dataframe,
    groups_from_dataframe,
    load_codeframe,
    load_codeframes,
)
from pycodeframe.io.wide_table import (
    WideTable,
    WideColumn,
    render,
    render_result,
    group_by_question,
    binary_column_name,
)
from pycodeframe.io.exporters import (
    export_wide_table,
    export_codeframe_json,
    export_codeframe_csv,
    export_coded_responses,
    export_hierarchy_summary,
    export_tracking_data,
    export_failures,
    export_run_metadata,
)

__all__ = [
    # Loaders
    "load_table",
    "columns_from_dataframe",
    "groups_from_dataframe",
    "load_codeframe",
    "load_codeframes",
    # Wide table
    "WideTable",
    "WideColumn",
    "render",
    "render_result",
    "group_by_question",
    "binary_column_name",
    # Exporters
    "export_wide_table",
    "export_codeframe_json",
    "export_codeframe_csv",
    "export_coded_responses",
    "export_hierarchy_summary",
    "export_tracking_data",
    "export_failures",
    "export_run_metadata",
]
