"""Codeframe generation modules."""

from pycodeframe.generation.orchestrator import (
    GenerationOrchestrator,
    GenerationResult,
    GenerationStatus,
    GroupSuccess,
    GroupFailure,
    FailureKind,
)
from pycodeframe.generation.schema import (
    OracleCode,
    OracleCodedResponse,
    OracleReply,
    ValidationFailed,
    validate_reply,
)
from pycodeframe.generation.question_grouping import (
    QuestionPattern,
    ColumnDetection,
    detect_question_types,
    suggest_question_types,
    group_columns_by_type,
)

__all__ = [
    "GenerationOrchestrator",
    "GenerationResult",
    "GenerationStatus",
    "GroupSuccess",
    "GroupFailure",
    "FailureKind",
    "OracleCode",
    "OracleCodedResponse",
    "OracleReply",
    "ValidationFailed",
    "validate_reply",
    "QuestionPattern",
    "ColumnDetection",
    "detect_question_types",
    "suggest_question_types",
    "group_columns_by_type",
]
