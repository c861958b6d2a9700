"""
pycodeframe: survey codeframe generation, coding and tracking

A library for turning open-ended survey answers into an auditable,
hierarchical codeframe and a wide, binary-encoded table, with wave-over-wave
tracking of the codeframe.
"""

__version__ = "0.1.0"

from pycodeframe.config import CodeframeConfig
from pycodeframe.models import ColumnData, QuestionGroup, CodedResponse
from pycodeframe.core.codeframe import Code, Codeframe, HierarchyLevel
from pycodeframe.application.matcher import CodeMatcher
from pycodeframe.generation.orchestrator import GenerationOrchestrator, GenerationResult
from pycodeframe.io.wide_table import WideTable, render
from pycodeframe.tracking.versions import VersionTracker
from pycodeframe.pipeline import CodeframePipeline

__all__ = [
    "CodeframeConfig",
    "CodeframePipeline",
    "ColumnData",
    "QuestionGroup",
    "CodedResponse",
    "Code",
    "Codeframe",
    "HierarchyLevel",
    "CodeMatcher",
    "GenerationOrchestrator",
    "GenerationResult",
    "WideTable",
    "render",
    "VersionTracker",
]
