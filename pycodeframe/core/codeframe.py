"""Codeframe data structures and operations."""

import copy
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)


CATCH_ALL_LABELS = {"other", "others", "other mentions", "other responses"}
CATCH_ALL_ID = "OTHER"


class HierarchyLevel(str, Enum):
    """Aggregation level of a code, broadest first."""

    GRAND_NET = "grand_net"
    NET = "net"
    SUBNET = "subnet"

    @property
    def tag(self) -> str:
        """Display tag used in wide-table column names."""
        return {
            HierarchyLevel.GRAND_NET: "Grand Net",
            HierarchyLevel.NET: "Net",
            HierarchyLevel.SUBNET: "Subnet",
        }[self]

    @classmethod
    def parse(cls, value) -> Optional["HierarchyLevel"]:
        """
        Parse a level from an enum value, a display tag or a loose string.

        Accepts 'grand_net', 'Grand Net', 'grandnet', 'NET', 'sub-net', etc.
        Returns None for empty or unrecognized values.
        """
        if value is None or isinstance(value, cls):
            return value
        key = "".join(ch for ch in str(value).lower() if ch.isalpha())
        return {
            "grandnet": cls.GRAND_NET,
            "net": cls.NET,
            "subnet": cls.SUBNET,
        }.get(key)


@dataclass
class Code:
    """
    A single code in the codeframe.

    Attributes:
        id: Stable string identity, unique within a codeframe.
        label: Short human name.
        definition: Free-text description of what the code covers.
        examples: Example responses, in order.
        numeric_id: Display/legacy numeric key (synthesized when missing).
        count: Number of responses assigned this code.
        percentage: count / total responses * 100. Always derived by
            :meth:`Codeframe.recompute_statistics`, never edited by hand.
        parent_id: Weak reference (by id) to the parent code.
        level: Explicit hierarchy level from a structured taxonomy source.
        is_aggregate: Whether generation flagged this code as an aggregate.
        metadata: Optional additional metadata.
    """

    id: str
    label: str
    definition: str = ""
    examples: list[str] = field(default_factory=list)
    numeric_id: Optional[int] = None
    count: int = 0
    percentage: float = 0.0
    parent_id: Optional[str] = None
    level: Optional[HierarchyLevel] = None
    is_aggregate: bool = False
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        self.id = str(self.id)
        self.examples = [str(e) for e in (self.examples or [])]
        self.level = HierarchyLevel.parse(self.level)
        if self.numeric_id is not None:
            self.numeric_id = int(self.numeric_id)
        if self.parent_id is not None:
            self.parent_id = str(self.parent_id)

    @property
    def is_catch_all(self) -> bool:
        """True if this code is the catch-all ("Other") entry."""
        return (
            self.id.upper() == CATCH_ALL_ID
            or self.label.strip().lower() in CATCH_ALL_LABELS
        )

    def to_dict(self) -> dict:
        """Convert the code to a dictionary."""
        return {
            "id": self.id,
            "label": self.label,
            "definition": self.definition,
            "examples": list(self.examples),
            "numeric_id": self.numeric_id,
            "count": self.count,
            "percentage": self.percentage,
            "parent_id": self.parent_id,
            "level": self.level.value if self.level else None,
            "is_aggregate": self.is_aggregate,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Code":
        """
        Create a Code from a dictionary.

        Accepts both the stored form (``id``, ``numeric_id``, ``parent_id``)
        and the oracle's form (``code``, ``numericId``/``numeric``,
        ``parentCode``, ``isParent``).
        """
        code_id = data.get("id", data.get("code"))
        if code_id is None:
            raise KeyError("Code dictionary needs an 'id' or 'code' key")

        numeric_id = None
        for key in ("numeric_id", "numericId", "numeric"):
            if data.get(key) not in (None, ""):
                numeric_id = int(data[key])
                break

        parent_id = None
        for key in ("parent_id", "parentId", "parentCode"):
            if data.get(key):
                parent_id = str(data[key])
                break

        return cls(
            id=code_id,
            label=data.get("label", str(code_id)),
            definition=data.get("definition", "") or "",
            examples=list(data.get("examples", []) or []),
            numeric_id=numeric_id,
            count=int(data.get("count", 0) or 0),
            percentage=float(data.get("percentage", 0.0) or 0.0),
            parent_id=parent_id,
            level=data.get("level"),
            is_aggregate=bool(data.get("is_aggregate", data.get("isParent", False))),
            metadata=data.get("metadata", {}) or {},
        )

    def __repr__(self):
        return f"Code(id='{self.id}', label='{self.label}', numeric_id={self.numeric_id})"


class Codeframe:
    """
    An ordered collection of codes for one question group.

    Order is meaningful for display (and breaks ties in matching) but not
    for matching itself. Code ids are unique; parent links are plain ids
    resolved against this collection, so a codeframe deep-copies cleanly.

    Example:
        >>> frame = Codeframe([Code(id="C01", label="Value", definition="price, worth")])
        >>> frame.ensure_numeric_ids(start=1001)
        >>> frame.ensure_catch_all()
        Code(id='OTHER', label='Other', numeric_id=1002)
        >>> frame.recompute_statistics(responses)
    """

    def __init__(
        self,
        codes: Optional[Iterable[Code]] = None,
        question_type: Optional[str] = None,
        metadata: Optional[dict] = None,
    ):
        self.question_type = question_type
        self.metadata: dict = metadata or {}
        self.total_responses: int = 0
        self._codes: list[Code] = []
        self._index: dict[str, Code] = {}
        for code in codes or []:
            self.add(code)

    @property
    def codes(self) -> list[Code]:
        """The codes in display order."""
        return list(self._codes)

    def add(self, code: Code) -> None:
        """
        Append a code.

        Raises:
            ValueError: If a code with the same id already exists.
        """
        if code.id in self._index:
            raise ValueError(f"Duplicate code id '{code.id}' in codeframe")
        self._codes.append(code)
        self._index[code.id] = code

    def remove(self, code_id: str) -> Code:
        """Remove and return a code by id."""
        code = self._index.pop(code_id)
        self._codes.remove(code)
        return code

    def get(self, code_id: str) -> Optional[Code]:
        """Get a code by its id, or None."""
        return self._index.get(code_id)

    def get_by_numeric_id(self, numeric_id: int) -> Optional[Code]:
        """Get a code by its numeric id, or None."""
        for code in self._codes:
            if code.numeric_id == numeric_id:
                return code
        return None

    def catch_all(self) -> Optional[Code]:
        """Return the first catch-all code, or None."""
        for code in self._codes:
            if code.is_catch_all:
                return code
        return None

    def ensure_numeric_ids(self, start: int = 1001) -> None:
        """
        Give every code without a numeric id one derived from its index.

        The synthesized id is ``start + index``; when that value is already
        taken by another code, the next free value is used.
        """
        taken = {c.numeric_id for c in self._codes if c.numeric_id is not None}
        for index, code in enumerate(self._codes):
            if code.numeric_id is not None:
                continue
            candidate = start + index
            while candidate in taken:
                candidate += 1
            code.numeric_id = candidate
            taken.add(candidate)

    def ensure_catch_all(self, label: str = "Other", responses=None) -> Code:
        """
        Make sure exactly one catch-all code exists and return it.

        A zero-count catch-all is appended when none exists. When several
        codes qualify, the first is kept and the others are folded into it:
        they are removed and their assignments in ``responses`` are
        remapped to the kept code.

        Args:
            label: Label for a synthesized catch-all.
            responses: Optional coded responses whose assignments are
                remapped when extra catch-alls are folded.

        Returns:
            The single catch-all code.
        """
        catch_alls = [c for c in self._codes if c.is_catch_all]

        if not catch_alls:
            code_id = CATCH_ALL_ID
            suffix = 1
            while code_id in self._index:
                suffix += 1
                code_id = f"{CATCH_ALL_ID}_{suffix}"
            code = Code(
                id=code_id,
                label=label,
                definition="Responses that do not fit any other code",
                numeric_id=self._next_numeric_id(),
            )
            self.add(code)
            logger.debug(f"Synthesized catch-all code {code_id}")
            return code

        keep = catch_alls[0]
        for extra in catch_alls[1:]:
            self.remove(extra.id)
            logger.info(f"Folded extra catch-all '{extra.id}' into '{keep.id}'")
            for response in responses or []:
                if extra.id in response.codes_assigned:
                    remapped = []
                    for code_id in response.codes_assigned:
                        code_id = keep.id if code_id == extra.id else code_id
                        if code_id not in remapped:
                            remapped.append(code_id)
                    response.codes_assigned = remapped
        return keep

    def _next_numeric_id(self) -> Optional[int]:
        numeric_ids = [c.numeric_id for c in self._codes if c.numeric_id is not None]
        if not numeric_ids:
            return None
        return max(numeric_ids) + 1

    def recompute_statistics(self, responses, total: Optional[int] = None) -> None:
        """
        Recompute count and percentage for every code.

        Args:
            responses: Coded responses of this codeframe's group.
            total: Denominator for percentages. Defaults to the number of
                responses (the group's total, never a global one).
        """
        responses = list(responses)
        total = len(responses) if total is None else total
        self.total_responses = total

        counts = {code.id: 0 for code in self._codes}
        for response in responses:
            for code_id in response.codes_assigned:
                if code_id in counts:
                    counts[code_id] += 1

        for code in self._codes:
            code.count = counts[code.id]
            code.percentage = (code.count / total * 100) if total else 0.0

    def copy(self) -> "Codeframe":
        """Return a deep copy of the codeframe."""
        return copy.deepcopy(self)

    def to_dataframe(self) -> pd.DataFrame:
        """
        Convert the codeframe to a pandas DataFrame.

        Returns:
            DataFrame with one row per code, in codeframe order.
        """
        records = []
        for code in self._codes:
            records.append({
                "code": code.id,
                "numeric_id": code.numeric_id,
                "label": code.label,
                "definition": code.definition,
                "examples": "; ".join(code.examples),
                "count": code.count,
                "percentage": round(code.percentage, 2),
                "parent_id": code.parent_id,
                "level": code.level.value if code.level else None,
                "is_aggregate": code.is_aggregate,
            })
        return pd.DataFrame(
            records,
            columns=[
                "code", "numeric_id", "label", "definition", "examples",
                "count", "percentage", "parent_id", "level", "is_aggregate",
            ],
        )

    def to_dict(self) -> dict:
        """Convert the codeframe to a dictionary."""
        return {
            "question_type": self.question_type,
            "total_responses": self.total_responses,
            "codes": [c.to_dict() for c in self._codes],
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Union[dict, list]) -> "Codeframe":
        """
        Create a Codeframe from a dictionary or a bare list of code dicts.

        A bare list is the oracle's ``codeframe`` array.
        """
        if isinstance(data, list):
            return cls([Code.from_dict(c) for c in data])

        frame = cls(
            [Code.from_dict(c) for c in data.get("codes", data.get("codeframe", []))],
            question_type=data.get("question_type"),
            metadata=data.get("metadata", {}),
        )
        frame.total_responses = int(data.get("total_responses", 0) or 0)
        return frame

    def to_json(self, path: str) -> None:
        """Save the codeframe to a JSON file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def from_json(cls, path: str) -> "Codeframe":
        """Load a codeframe from a JSON file."""
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)

    def __contains__(self, code_id: str) -> bool:
        return code_id in self._index

    def __iter__(self) -> Iterator[Code]:
        return iter(list(self._codes))

    def __len__(self) -> int:
        """Return the number of codes."""
        return len(self._codes)

    def __repr__(self) -> str:
        return (
            f"Codeframe(question_type={self.question_type!r}, "
            f"n_codes={len(self._codes)}, total_responses={self.total_responses})"
        )
