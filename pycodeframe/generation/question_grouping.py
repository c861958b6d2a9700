"""Detect question types from column headers and build question groups."""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from pycodeframe.models import ColumnData, QuestionGroup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuestionPattern:
    """A header pattern that suggests a question type."""

    pattern_id: str
    name: str
    pattern: re.Pattern
    question_type: str
    priority: int
    examples: tuple = ()


DEFAULT_PATTERNS = (
    QuestionPattern(
        pattern_id="brand_awareness_unaided",
        name="Unaided Brand Awareness",
        pattern=re.compile(
            r"\b(unaided|spontaneous|top.of.mind|first.mention|recall|think.of|come.to.mind|brands?.know|aware.of)\b",
            re.IGNORECASE,
        ),
        question_type="unaided-awareness",
        priority=1,
        examples=(
            "What brands come to mind when you think of soft drinks?",
            "Which car brands are you aware of?",
            "List all the smartphone brands you can recall.",
        ),
    ),
    QuestionPattern(
        pattern_id="brand_awareness_aided",
        name="Aided Brand Awareness",
        pattern=re.compile(
            r"\b(aided|prompted|heard.of|recognize|familiar.with|know.about|seen.before)\b",
            re.IGNORECASE,
        ),
        question_type="unaided-awareness",
        priority=2,
        examples=(
            "Which of these brands have you heard of?",
            "Are you familiar with Brand X?",
        ),
    ),
    QuestionPattern(
        pattern_id="brand_perception",
        name="Brand Perception",
        pattern=re.compile(
            r"\b(describe|think.about|opinion|perception|view|feel.about|associate|comes?.to.mind|impression)\b"
            r".*\b(brand|company|product)\b",
            re.IGNORECASE,
        ),
        question_type="brand-description",
        priority=1,
        examples=(
            "How would you describe Brand X?",
            "What comes to mind when you think about Company Y?",
            "What is your opinion of this brand?",
        ),
    ),
    QuestionPattern(
        pattern_id="brand_attributes",
        name="Brand Attributes",
        pattern=re.compile(
            r"\b(attributes?|characteristics?|qualities|features?|traits?|aspects?)\b.*\b(brand|product|service)\b",
            re.IGNORECASE,
        ),
        question_type="brand-description",
        priority=2,
        examples=(
            "What attributes do you associate with this brand?",
            "List the key characteristics of Brand X",
        ),
    ),
    QuestionPattern(
        pattern_id="brand_experience",
        name="Brand Experience",
        pattern=re.compile(
            r"\b(experience|satisfaction|happy|satisfied|disappointed|issue|problem|like|dislike|love|hate)\b"
            r".*\b(brand|product|service)\b",
            re.IGNORECASE,
        ),
        question_type="brand-description",
        priority=3,
        examples=(
            "Describe your experience with Brand X",
            "What do you like most about this product?",
        ),
    ),
    QuestionPattern(
        pattern_id="reasons_why",
        name="Reasons/Explanations",
        pattern=re.compile(r"\b(why|reason|because|explain|elaborate|justify|motivation)\b", re.IGNORECASE),
        question_type="miscellaneous",
        priority=3,
        examples=(
            "Why did you choose this option?",
            "Please explain your answer",
        ),
    ),
    QuestionPattern(
        pattern_id="suggestions",
        name="Suggestions/Improvements",
        pattern=re.compile(r"\b(suggest|recommend|improve|change|better|enhance|advice|feedback)\b", re.IGNORECASE),
        question_type="miscellaneous",
        priority=4,
        examples=(
            "How would you improve this product?",
            "Any suggestions for us?",
        ),
    ),
    QuestionPattern(
        pattern_id="open_feedback",
        name="Open Feedback",
        pattern=re.compile(
            r"\b(additional|other|else|more|comment|feedback|anything.else|further|add)\b",
            re.IGNORECASE,
        ),
        question_type="miscellaneous",
        priority=5,
        examples=(
            "Any additional comments?",
            "Is there anything else you would like to add?",
        ),
    ),
)


@dataclass(frozen=True)
class ColumnDetection:
    """The question type detected for one column header."""

    column_index: int
    column_name: str
    pattern: Optional[QuestionPattern]
    confidence: float

    @property
    def question_type(self) -> Optional[str]:
        return self.pattern.question_type if self.pattern else None


def detect_column(
    name: str,
    index: int = 0,
    patterns: Iterable[QuestionPattern] = DEFAULT_PATTERNS,
) -> ColumnDetection:
    """
    Detect the question type of one column header.

    Confidence is ``match_ratio * 0.7 + (6 - priority) / 5 * 0.3``, where
    ``match_ratio`` is the matched span's share of the header; the best
    pattern wins. A header that starts like one of the winner's example
    questions gains another 0.2 (capped at 1.0).
    """
    best = None
    best_confidence = 0.0

    for pattern in patterns:
        match = pattern.pattern.search(name)
        if not match or not name:
            continue
        match_ratio = len(match.group(0)) / len(name)
        confidence = match_ratio * 0.7 + (6 - pattern.priority) / 5 * 0.3
        if confidence > best_confidence:
            best, best_confidence = pattern, confidence

    if best is not None:
        lower_name = name.lower()
        if any(example.lower()[:20] in lower_name for example in best.examples):
            best_confidence = min(best_confidence + 0.2, 1.0)

    return ColumnDetection(
        column_index=index,
        column_name=name,
        pattern=best,
        confidence=best_confidence,
    )


def detect_question_types(
    columns: Iterable,
    patterns: Iterable[QuestionPattern] = DEFAULT_PATTERNS,
) -> list[ColumnDetection]:
    """
    Detect question types for several columns.

    Args:
        columns: ColumnData objects or plain header strings.
        patterns: Patterns to try.

    Returns:
        One detection per column, in input order.
    """
    patterns = tuple(patterns)
    detections = []
    for position, column in enumerate(columns):
        if isinstance(column, ColumnData):
            detections.append(detect_column(column.name, column.index, patterns))
        else:
            detections.append(detect_column(str(column), position, patterns))
    return detections


def suggest_question_types(
    columns: Iterable,
    confidence_threshold: float = 0.5,
) -> dict[int, dict]:
    """
    Suggest question types for columns whose detection is confident enough.

    Returns:
        Dict mapping column index to ``{"type", "confidence", "reason"}``.
    """
    suggestions = {}
    for detection in detect_question_types(columns):
        if detection.pattern is not None and detection.confidence >= confidence_threshold:
            suggestions[detection.column_index] = {
                "type": detection.question_type,
                "confidence": detection.confidence,
                "reason": f"Header matches the '{detection.pattern.name}' pattern",
            }
    return suggestions


def group_columns_by_type(
    columns: list[ColumnData],
    min_confidence: float = 0.0,
    default_type: Optional[str] = None,
) -> list[QuestionGroup]:
    """
    Build one QuestionGroup per detected question type.

    Args:
        columns: Columns to group.
        min_confidence: Detections below this confidence count as undetected.
        default_type: Question type for undetected columns. When None,
            undetected columns are left out.

    Returns:
        Question groups in order of each type's first column.
    """
    by_type: dict[str, list[ColumnData]] = {}
    for column, detection in zip(columns, detect_question_types(columns)):
        question_type = detection.question_type if detection.confidence >= min_confidence else None
        question_type = question_type or default_type
        if question_type is None:
            logger.info(f"No question type detected for column '{column.name}'; skipped")
            continue
        by_type.setdefault(question_type, []).append(column)

    return [
        QuestionGroup(
            group_id=f"group_{question_type}",
            name=question_type.replace("-", " ").title(),
            question_type=question_type,
            columns=tuple(type_columns),
        )
        for question_type, type_columns in by_type.items()
    ]
