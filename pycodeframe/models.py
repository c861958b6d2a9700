"""Core data models for pycodeframe.

This module contains the dataclasses that describe the engine's input
(already-parsed columns grouped by question type) and its per-response
output. Codes and codeframes live in :mod:`pycodeframe.core.codeframe`.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class ColumnData:
    """
    One open-ended column of an already-parsed survey table.

    Attributes:
        name: Column header, used as the question id in the wide export.
        index: Position of the column in the source table.
        values: Cell values in row order. Blank cells (None, NaN, empty or
            whitespace-only strings) are skipped during generation.
        row_ids: Optional respondent identities aligned with ``values``.
            When omitted, respondents are numbered ``R1..Rn``.

    Example:
        >>> column = ColumnData(
        ...     name="B1r1",
        ...     index=3,
        ...     values=("Tastes great", "", "Too sweet"),
        ...     row_ids=("1001", "1002", "1003"),
        ... )
        >>> list(column.responses())
        [('1001', 'Tastes great'), ('1003', 'Too sweet')]
    """

    name: str
    index: int
    values: tuple = ()
    row_ids: Optional[tuple] = None

    def __post_init__(self):
        """Freeze sequences and check row id alignment."""
        object.__setattr__(self, "values", tuple(self.values))
        if self.row_ids is not None:
            object.__setattr__(self, "row_ids", tuple(str(r) for r in self.row_ids))
            if len(self.row_ids) != len(self.values):
                raise ValueError(
                    f"Column '{self.name}' has {len(self.values)} values "
                    f"but {len(self.row_ids)} row ids"
                )

    def row_id_at(self, position: int) -> str:
        """Return the respondent identity for a cell position."""
        if self.row_ids is not None:
            return self.row_ids[position]
        return f"R{position + 1}"

    def responses(self):
        """Yield ``(row_id, text)`` for every non-blank cell, in row order."""
        for position, value in enumerate(self.values):
            text = _cell_text(value)
            if text:
                yield self.row_id_at(position), text

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class QuestionGroup:
    """
    A named set of columns that share one question type.

    Each group owns exactly one generated codeframe. Groups are immutable
    once generation starts and are referenced, never copied, by results.

    Attributes:
        group_id: Stable identity of the group (used for retries).
        name: Human-readable name.
        question_type: Open enumeration, e.g. 'unaided-awareness',
            'brand-description', 'miscellaneous'.
        columns: The columns coded together.
    """

    group_id: str
    name: str
    question_type: str
    columns: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "columns", tuple(self.columns))
        if not self.columns:
            raise ValueError(f"Question group '{self.group_id}' has no columns")

    @property
    def column_names(self) -> list[str]:
        """Return the names of the group's columns."""
        return [c.name for c in self.columns]

    def n_responses(self) -> int:
        """Count non-blank responses across the group's columns."""
        return sum(1 for column in self.columns for _ in column.responses())

    def __repr__(self) -> str:
        return (
            f"QuestionGroup(id='{self.group_id}', type='{self.question_type}', "
            f"columns={self.column_names})"
        )


@dataclass
class CodedResponse:
    """
    One verbatim answer with the codes assigned to it.

    Attributes:
        text: The verbatim response.
        codes_assigned: Ids of the assigned codes, in assignment order and
            without duplicates. The order feeds the export's slot columns.
        column_id: Column (question id) the answer belongs to.
        row_id: Respondent identity, used to pivot to one row per respondent.
        column_index: Optional position of the column in the source table.
        question_type: Question type of the owning group.
        source: 'oracle' when the oracle coded it, 'matcher' when the
            matching engine did.
    """

    text: str
    codes_assigned: list[str] = field(default_factory=list)
    column_id: str = ""
    row_id: Optional[str] = None
    column_index: Optional[int] = None
    question_type: Optional[str] = None
    source: str = "oracle"

    def __post_init__(self):
        """Drop duplicate code ids while keeping the first occurrence."""
        seen = set()
        unique = []
        for code_id in self.codes_assigned:
            code_id = str(code_id)
            if code_id not in seen:
                seen.add(code_id)
                unique.append(code_id)
        self.codes_assigned = unique

    def has_code(self, code_id: str) -> bool:
        """Return True if the code is assigned to this response."""
        return code_id in self.codes_assigned

    def to_dict(self) -> dict:
        """Convert the response to a dictionary."""
        return {
            "text": self.text,
            "codes_assigned": list(self.codes_assigned),
            "column_id": self.column_id,
            "row_id": self.row_id,
            "column_index": self.column_index,
            "question_type": self.question_type,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CodedResponse":
        """Create a CodedResponse from a dictionary."""
        return cls(
            text=data.get("text", ""),
            codes_assigned=list(data.get("codes_assigned", [])),
            column_id=data.get("column_id", ""),
            row_id=data.get("row_id"),
            column_index=data.get("column_index"),
            question_type=data.get("question_type"),
            source=data.get("source", "oracle"),
        )

    def __repr__(self) -> str:
        return (
            f"CodedResponse(row={self.row_id!r}, column={self.column_id!r}, "
            f"codes={self.codes_assigned})"
        )


def _cell_text(value) -> str:
    """Normalize a parsed cell to stripped text ('' for blanks and NaN)."""
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    return str(value).strip()
