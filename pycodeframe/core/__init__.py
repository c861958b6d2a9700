"""Core building blocks for pycodeframe."""

from pycodeframe.core.codeframe import Code, Codeframe, HierarchyLevel
from pycodeframe.core.hierarchy import (
    HierarchicalCode,
    HierarchyClassifier,
    LabelHeuristicClassifier,
    ExplicitLevelClassifier,
    build_hierarchy,
    ancestors,
    hierarchy_summary,
)

__all__ = [
    "Code",
    "Codeframe",
    "HierarchyLevel",
    "HierarchicalCode",
    "HierarchyClassifier",
    "LabelHeuristicClassifier",
    "ExplicitLevelClassifier",
    "build_hierarchy",
    "ancestors",
    "hierarchy_summary",
]
