"""Deterministic keyword/example matching of responses against a codeframe."""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from tqdm import tqdm

from pycodeframe.config import MatchingConfig
from pycodeframe.core.codeframe import Code, Codeframe, HierarchyLevel
from pycodeframe.core.hierarchy import HierarchyClassifier, LabelHeuristicClassifier
from pycodeframe.models import CodedResponse, ColumnData, QuestionGroup

logger = logging.getLogger(__name__)

_NON_LETTERS = re.compile(r"[^a-zA-Z]+")


@dataclass(frozen=True)
class CodeMatch:
    """A code that applies to a response, with its confidence."""

    code_id: str
    label: str
    confidence: float
    level: HierarchyLevel


@dataclass(frozen=True)
class MatchRule:
    """Keywords and example phrases derived from one code."""

    code_id: str
    label: str
    level: HierarchyLevel
    keywords: tuple
    examples: tuple


class CodeMatcher:
    """
    Assigns codes to verbatim responses with a transparent score.

    One rule is built per code when a codeframe is loaded. Scoring a
    response against a rule adds ``keyword_weight`` for every keyword found
    as a substring of the lower-cased response, plus, for every example
    phrase, ``(matching_words / phrase_words) * example_weight``. The sum is
    capped at 1.0 and the rule applies when it exceeds ``threshold``.

    Matching only reads the codeframe and is fully deterministic.

    Example:
        >>> frame = Codeframe([Code(id="C01", label="Value", definition="price, worth, cheap")])
        >>> matcher = CodeMatcher(frame)
        >>> matcher.match("Great value for the price")
        [CodeMatch(code_id='C01', label='Value', confidence=0.6, level=<HierarchyLevel.SUBNET: 'subnet'>)]
    """

    def __init__(
        self,
        codeframe: Codeframe,
        config: Optional[MatchingConfig] = None,
        classifier: Optional[HierarchyClassifier] = None,
    ):
        """
        Initialize the matcher.

        Args:
            codeframe: The codeframe to match against (borrowed read-only).
            config: Matching configuration. Uses defaults if None.
            classifier: Hierarchy strategy used to tag matches with a level.
        """
        self.config = config or MatchingConfig()
        self.classifier = classifier or LabelHeuristicClassifier()
        self.codeframe: Optional[Codeframe] = None
        self.rules: list[MatchRule] = []
        self.load(codeframe)

    @classmethod
    def from_config(cls, config: MatchingConfig, codeframe: Codeframe) -> "CodeMatcher":
        """Create a CodeMatcher from configuration."""
        return cls(codeframe=codeframe, config=config)

    def load(self, codeframe: Codeframe) -> None:
        """Load a codeframe and rebuild the rules."""
        self.codeframe = codeframe
        levels = self.classifier.levels(codeframe) if len(codeframe) else {}
        self.rules = [self._build_rule(code, levels[code.id]) for code in codeframe]
        logger.debug(f"Built {len(self.rules)} match rules")

    def _tokens(self, text: str) -> list[str]:
        stop_words = set(self.config.stop_words)
        return [
            token
            for token in _NON_LETTERS.split(text.lower())
            if len(token) >= self.config.min_word_length and token not in stop_words
        ]

    def _build_rule(self, code: Code, level: HierarchyLevel) -> MatchRule:
        sources = []
        # The catch-all label is a marker, not content
        if self.config.include_label and not code.is_catch_all:
            sources.append(code.label)
        sources.append(code.definition or "")
        sources.extend(code.examples)

        keywords = []
        for source in sources:
            for token in self._tokens(source):
                if token not in keywords:
                    keywords.append(token)

        return MatchRule(
            code_id=code.id,
            label=code.label,
            level=level,
            keywords=tuple(keywords),
            examples=tuple(e for e in code.examples if e.strip()),
        )

    def score(self, text: str, rule: MatchRule) -> float:
        """
        Score a response against one rule.

        Args:
            text: The verbatim response.
            rule: The rule of one code.

        Returns:
            Confidence in [0, 1].
        """
        response = text.lower()
        confidence = 0.0

        for keyword in rule.keywords:
            if keyword in response:
                confidence += self.config.keyword_weight

        for example in rule.examples:
            words = example.lower().split()
            if not words:
                continue
            matching = sum(
                1 for word in words
                if len(word) >= self.config.min_word_length and word in response
            )
            confidence += (matching / len(words)) * self.config.example_weight

        return min(confidence, 1.0)

    def match(self, text: str) -> list[CodeMatch]:
        """
        Return every code that applies to a response.

        Args:
            text: The verbatim response.

        Returns:
            Matches sorted by descending confidence. Ties keep codeframe
            order. Empty for a blank response or an empty codeframe.
        """
        if not text or not text.strip() or not self.rules:
            return []

        matches = []
        for rule in self.rules:
            confidence = self.score(text, rule)
            if confidence > self.config.threshold:
                matches.append(CodeMatch(
                    code_id=rule.code_id,
                    label=rule.label,
                    confidence=round(confidence, 6),
                    level=rule.level,
                ))

        # sorted() is stable, so ties stay in codeframe order
        return sorted(matches, key=lambda m: -m.confidence)

    def match_codes(self, text: str) -> list[str]:
        """Return only the ids of the codes that apply, best first."""
        return [m.code_id for m in self.match(text)]

    def code_response(
        self,
        text: str,
        column: Optional[ColumnData] = None,
        row_id: Optional[str] = None,
        question_type: Optional[str] = None,
        fallback_to_catch_all: bool = True,
    ) -> CodedResponse:
        """
        Code one response into a CodedResponse.

        Args:
            text: The verbatim response.
            column: Column the response came from.
            row_id: Respondent identity.
            question_type: Question type of the owning group.
            fallback_to_catch_all: Assign the catch-all code when nothing
                else applies.

        Returns:
            CodedResponse with ``source='matcher'``.
        """
        codes = self.match_codes(text)
        if not codes and fallback_to_catch_all and text.strip():
            catch_all = self.codeframe.catch_all()
            if catch_all is not None:
                codes = [catch_all.id]

        return CodedResponse(
            text=text,
            codes_assigned=codes,
            column_id=column.name if column is not None else "",
            row_id=row_id,
            column_index=column.index if column is not None else None,
            question_type=question_type,
            source="matcher",
        )

    def apply_to_column(
        self,
        column: ColumnData,
        question_type: Optional[str] = None,
        skip_rows: Optional[set] = None,
    ) -> list[CodedResponse]:
        """
        Code every non-blank cell of a column.

        Args:
            column: The column to code.
            question_type: Question type recorded on each response.
            skip_rows: Row ids that are already coded and should be skipped.

        Returns:
            Coded responses in row order.
        """
        skip_rows = skip_rows or set()
        return [
            self.code_response(text, column=column, row_id=row_id, question_type=question_type)
            for row_id, text in column.responses()
            if row_id not in skip_rows
        ]

    def apply_to_groups(
        self,
        groups: Iterable[QuestionGroup],
        verbose: bool = False,
    ) -> list[CodedResponse]:
        """
        Re-apply this (frozen) codeframe to every column of the given groups.

        Args:
            groups: Question groups to code.
            verbose: If True, show a progress bar over columns.

        Returns:
            Coded responses, group by group and column by column.
        """
        columns = [(group, column) for group in groups for column in group.columns]

        column_iter = columns
        if verbose:
            column_iter = tqdm(columns, desc="Applying codeframe", unit="column")

        responses = []
        for group, column in column_iter:
            responses.extend(self.apply_to_column(column, question_type=group.question_type))

        logger.info(f"Matched {len(responses)} responses across {len(columns)} columns")
        return responses

    def get_code_frequencies(self, responses: Iterable[CodedResponse]) -> dict[str, int]:
        """
        Calculate code frequencies from coded responses.

        Args:
            responses: Coded responses.

        Returns:
            Dict mapping code id to count, most frequent first.
        """
        frequencies = {}
        for response in responses:
            for code_id in response.codes_assigned:
                frequencies[code_id] = frequencies.get(code_id, 0) + 1
        return dict(sorted(frequencies.items(), key=lambda x: -x[1]))

    def __repr__(self) -> str:
        return f"CodeMatcher(n_rules={len(self.rules)}, threshold={self.config.threshold})"
