"""Hierarchy inference (Grand Net -> Net -> Subnet) over a flat codeframe."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from pycodeframe.core.codeframe import Code, Codeframe, HierarchyLevel

logger = logging.getLogger(__name__)


_RANK = {
    HierarchyLevel.GRAND_NET: 0,
    HierarchyLevel.NET: 1,
    HierarchyLevel.SUBNET: 2,
}

GRAND_NET_PATTERN = re.compile(r"\b(positive|negative|overall|general)\b", re.IGNORECASE)
POSITIVE_PATTERN = re.compile(r"\b(positive|good|excellent)\b", re.IGNORECASE)
NEGATIVE_PATTERN = re.compile(r"\b(negative|bad|poor)\b", re.IGNORECASE)


@dataclass(frozen=True)
class HierarchicalCode:
    """
    A code annotated with its level and resolved links.

    Derived on demand from a codeframe and never persisted.
    """

    code_id: str
    label: str
    numeric_id: Optional[int]
    level: HierarchyLevel
    parent_id: Optional[str] = None
    child_ids: tuple = ()


class HierarchyClassifier(ABC):
    """
    Strategy that assigns hierarchy levels and parents to codes.

    Subclasses decide the level of each code; parent resolution defaults to
    the code's explicit ``parent_id`` and only accepts parents that sit at
    a broader level, so the resolved hierarchy never contains cycles.
    """

    name: str = "base"

    @abstractmethod
    def classify(self, code: Code, codeframe: Codeframe) -> HierarchyLevel:
        """Return the level of a code within its codeframe."""
        pass

    def levels(self, codeframe: Codeframe) -> dict[str, HierarchyLevel]:
        """Classify every code of a codeframe."""
        return {code.id: self.classify(code, codeframe) for code in codeframe}

    def resolve_parent(
        self,
        code: Code,
        codeframe: Codeframe,
        levels: dict[str, HierarchyLevel],
    ) -> Optional[str]:
        """
        Return the id of the code's parent, or None when unresolvable.

        Args:
            code: The code whose parent is resolved.
            codeframe: The owning codeframe.
            levels: Levels of all codes, as returned by :meth:`levels`.
        """
        parent_id = code.parent_id
        if not parent_id or parent_id == code.id or parent_id not in codeframe:
            return None
        if _RANK[levels[parent_id]] >= _RANK[levels[code.id]]:
            logger.debug(
                f"Ignoring parent '{parent_id}' of '{code.id}': "
                f"{levels[parent_id].tag} is not above {levels[code.id].tag}"
            )
            return None
        return parent_id

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class LabelHeuristicClassifier(HierarchyClassifier):
    """
    Infer levels from labels and explicit links.

    Rules, first match wins:

    1. An explicit ``code.level`` is used as is.
    2. Grand Net if the label contains "positive", "negative", "overall" or
       "general" as a whole word.
    3. Net if generation flagged the code as an aggregate, or another code
       names it as its parent.
    4. A code with a ``parent_id`` is a Subnet when that parent is a Net,
       otherwise a Net.
    5. Everything else is a Subnet.

    Nets left without a parent are attached to a sentiment grand net when
    their label carries sentiment vocabulary ("good"/"excellent" to the
    positive grand net, "bad"/"poor" to the negative one).
    """

    name = "label_heuristic"

    def _base_level(self, code: Code, referenced: set[str]) -> Optional[HierarchyLevel]:
        if code.level is not None:
            return code.level
        if GRAND_NET_PATTERN.search(code.label):
            return HierarchyLevel.GRAND_NET
        if code.is_aggregate or code.id in referenced:
            return HierarchyLevel.NET
        return None

    def classify(self, code: Code, codeframe: Codeframe) -> HierarchyLevel:
        return self.levels(codeframe)[code.id]

    def levels(self, codeframe: Codeframe) -> dict[str, HierarchyLevel]:
        referenced = {c.parent_id for c in codeframe if c.parent_id and c.parent_id != c.id}
        base = {c.id: self._base_level(c, referenced) for c in codeframe}

        levels = {}
        for code in codeframe:
            level = base[code.id]
            if level is None and code.parent_id:
                parent_level = base.get(code.parent_id)
                if parent_level == HierarchyLevel.NET:
                    level = HierarchyLevel.SUBNET
                else:
                    level = HierarchyLevel.NET
            levels[code.id] = level or HierarchyLevel.SUBNET
        return levels

    def resolve_parent(self, code, codeframe, levels):
        parent_id = super().resolve_parent(code, codeframe, levels)
        if parent_id is not None or levels[code.id] != HierarchyLevel.NET:
            return parent_id
        return self._sentiment_parent(code, codeframe, levels)

    def _sentiment_parent(self, code, codeframe, levels) -> Optional[str]:
        if POSITIVE_PATTERN.search(code.label):
            wanted = POSITIVE_PATTERN
        elif NEGATIVE_PATTERN.search(code.label):
            wanted = NEGATIVE_PATTERN
        else:
            return None

        for candidate in codeframe:
            if candidate.id == code.id or levels[candidate.id] != HierarchyLevel.GRAND_NET:
                continue
            if wanted.search(candidate.label):
                return candidate.id
        return None


class ExplicitLevelClassifier(HierarchyClassifier):
    """
    Use only structured ``level`` and ``parent_id`` fields.

    Codes without an explicit level are Subnets. No label heuristics run,
    so a structured taxonomy source fully controls the hierarchy.
    """

    name = "explicit"

    def classify(self, code: Code, codeframe: Codeframe) -> HierarchyLevel:
        return code.level or HierarchyLevel.SUBNET


def build_hierarchy(
    codeframe: Codeframe,
    classifier: Optional[HierarchyClassifier] = None,
) -> dict[str, HierarchicalCode]:
    """
    Annotate every code with its level, resolved parent and children.

    Args:
        codeframe: The flat codeframe.
        classifier: Strategy to use (defaults to LabelHeuristicClassifier).

    Returns:
        Dict mapping code id to HierarchicalCode, in codeframe order.
    """
    classifier = classifier or LabelHeuristicClassifier()
    levels = classifier.levels(codeframe)

    parents = {code.id: classifier.resolve_parent(code, codeframe, levels) for code in codeframe}
    children: dict[str, list[str]] = {code.id: [] for code in codeframe}
    for code_id, parent_id in parents.items():
        if parent_id is not None:
            children[parent_id].append(code_id)

    return {
        code.id: HierarchicalCode(
            code_id=code.id,
            label=code.label,
            numeric_id=code.numeric_id,
            level=levels[code.id],
            parent_id=parents[code.id],
            child_ids=tuple(children[code.id]),
        )
        for code in codeframe
    }


def ancestors(code_id: str, hierarchy: dict[str, HierarchicalCode]) -> list[str]:
    """
    Return the chain of resolved parent ids above a code, nearest first.

    Unknown ids yield an empty list; a cycle stops the walk.
    """
    chain = []
    seen = {code_id}
    node = hierarchy.get(code_id)
    while node is not None and node.parent_id is not None:
        if node.parent_id in seen:
            logger.warning(f"Cycle in code hierarchy at '{node.parent_id}'")
            break
        chain.append(node.parent_id)
        seen.add(node.parent_id)
        node = hierarchy.get(node.parent_id)
    return chain


def hierarchy_summary(
    codeframe: Codeframe,
    classifier: Optional[HierarchyClassifier] = None,
) -> str:
    """
    Render a plain-text summary of the hierarchy with percentages.

    Args:
        codeframe: The codeframe to summarize.
        classifier: Strategy to use (defaults to LabelHeuristicClassifier).

    Returns:
        Multi-line summary grouped by Grand Nets, Nets and Subnets.
    """
    hierarchy = build_hierarchy(codeframe, classifier)

    def line(code_id: str, indent: str = "  ") -> str:
        code = codeframe.get(code_id)
        return f"{indent}• {code.label} [{code.numeric_id}] ({code.percentage:.1f}%)"

    lines = ["CODEFRAME HIERARCHY", "=" * 50]
    if codeframe.question_type:
        lines.append(f"Question type: {codeframe.question_type}")
    lines.append(f"Total responses: {codeframe.total_responses}")

    for level in (HierarchyLevel.GRAND_NET, HierarchyLevel.NET, HierarchyLevel.SUBNET):
        members = [h for h in hierarchy.values() if h.level == level]
        if not members:
            continue
        lines.append("")
        lines.append(f"{level.tag.upper()}S ({len(members)})")
        for member in members:
            lines.append(line(member.code_id))
            if level != HierarchyLevel.SUBNET:
                for child_id in member.child_ids:
                    lines.append(line(child_id, indent="      "))

    return "\n".join(lines)
