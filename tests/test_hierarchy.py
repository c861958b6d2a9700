"""Tests for hierarchy inference."""

import pytest

from pycodeframe.core.codeframe import Code, Codeframe, HierarchyLevel
from pycodeframe.core.hierarchy import (
    ExplicitLevelClassifier,
    LabelHeuristicClassifier,
    ancestors,
    build_hierarchy,
    hierarchy_summary,
)


@pytest.fixture
def tree_codeframe():
    """A codeframe with a grand net, a net and two subnets."""
    return Codeframe([
        Code(id="G1", label="Positive comments", numeric_id=1),
        Code(id="N1", label="Good taste", numeric_id=2, is_aggregate=True),
        Code(id="S1", label="Sweet", numeric_id=3, parent_id="N1"),
        Code(id="S2", label="Refreshing", numeric_id=4, parent_id="N1"),
        Code(id="S3", label="Price", numeric_id=5),
    ])


class TestLabelHeuristicClassifier:
    """Tests for label-based level inference."""

    def test_levels(self, tree_codeframe):
        levels = LabelHeuristicClassifier().levels(tree_codeframe)

        assert levels == {
            "G1": HierarchyLevel.GRAND_NET,
            "N1": HierarchyLevel.NET,
            "S1": HierarchyLevel.SUBNET,
            "S2": HierarchyLevel.SUBNET,
            "S3": HierarchyLevel.SUBNET,
        }

    @pytest.mark.parametrize("label", ["Overall satisfaction", "NEGATIVE", "General mentions"])
    def test_grand_net_words(self, label):
        frame = Codeframe([Code(id="X", label=label)])
        assert LabelHeuristicClassifier().classify(frame.get("X"), frame) == HierarchyLevel.GRAND_NET

    def test_word_boundary(self):
        """'Generally' does not contain the whole word 'general'."""
        frame = Codeframe([Code(id="X", label="Generally fine")])
        assert LabelHeuristicClassifier().classify(frame.get("X"), frame) == HierarchyLevel.SUBNET

    def test_referenced_code_is_net(self):
        frame = Codeframe([
            Code(id="P", label="Flavour"),
            Code(id="C", label="Sweet", parent_id="P"),
        ])
        levels = LabelHeuristicClassifier().levels(frame)

        assert levels["P"] == HierarchyLevel.NET
        assert levels["C"] == HierarchyLevel.SUBNET

    def test_explicit_level_wins(self):
        frame = Codeframe([Code(id="X", label="Positive", level=HierarchyLevel.SUBNET)])
        assert LabelHeuristicClassifier().levels(frame)["X"] == HierarchyLevel.SUBNET

    def test_child_of_grand_net_is_net(self):
        frame = Codeframe([
            Code(id="G", label="Negative"),
            Code(id="C", label="Too sweet", parent_id="G"),
        ])
        levels = LabelHeuristicClassifier().levels(frame)

        assert levels["C"] == HierarchyLevel.NET


class TestBuildHierarchy:
    """Tests for parent and child resolution."""

    def test_links(self, tree_codeframe):
        hierarchy = build_hierarchy(tree_codeframe)

        assert hierarchy["S1"].parent_id == "N1"
        assert hierarchy["N1"].child_ids == ("S1", "S2")
        assert hierarchy["S3"].parent_id is None

    def test_sentiment_net_attaches_to_grand_net(self, tree_codeframe):
        hierarchy = build_hierarchy(tree_codeframe)

        assert hierarchy["N1"].parent_id == "G1"
        assert hierarchy["G1"].child_ids == ("N1",)

    def test_mutual_parents_do_not_form_a_cycle(self):
        frame = Codeframe([
            Code(id="A", label="Alpha", parent_id="B"),
            Code(id="B", label="Beta", parent_id="A"),
        ])
        hierarchy = build_hierarchy(frame)

        assert hierarchy["A"].parent_id is None
        assert hierarchy["B"].parent_id is None

    def test_self_and_missing_parents_are_ignored(self):
        frame = Codeframe([
            Code(id="A", label="Alpha", parent_id="A"),
            Code(id="B", label="Beta", parent_id="ZZZ"),
        ])
        hierarchy = build_hierarchy(frame)

        assert hierarchy["A"].parent_id is None
        assert hierarchy["B"].parent_id is None

    def test_ancestors(self, tree_codeframe):
        hierarchy = build_hierarchy(tree_codeframe)

        assert ancestors("S1", hierarchy) == ["N1", "G1"]
        assert ancestors("G1", hierarchy) == []
        assert ancestors("missing", hierarchy) == []


class TestExplicitLevelClassifier:
    """Tests for the structured-source strategy."""

    def test_only_explicit_fields(self):
        frame = Codeframe([
            Code(id="G", label="Anything", level="grand_net"),
            Code(id="N", label="Positive but not flagged", parent_id="G", level="net"),
            Code(id="S", label="Leaf", parent_id="N"),
        ])
        hierarchy = build_hierarchy(frame, ExplicitLevelClassifier())

        assert hierarchy["G"].level == HierarchyLevel.GRAND_NET
        assert hierarchy["N"].level == HierarchyLevel.NET
        assert hierarchy["S"].level == HierarchyLevel.SUBNET
        assert ancestors("S", hierarchy) == ["N", "G"]

    def test_parent_at_same_level_is_ignored(self):
        frame = Codeframe([
            Code(id="A", label="A"),
            Code(id="B", label="B", parent_id="A"),
        ])
        hierarchy = build_hierarchy(frame, ExplicitLevelClassifier())

        assert hierarchy["B"].parent_id is None


class TestHierarchySummary:
    """Tests for the text summary."""

    def test_sections(self, tree_codeframe):
        tree_codeframe.question_type = "brand-description"
        summary = hierarchy_summary(tree_codeframe)

        assert summary.startswith("CODEFRAME HIERARCHY")
        assert "Question type: brand-description" in summary
        assert "GRAND NETS (1)" in summary
        assert "NETS (1)" in summary
        assert "SUBNETS (3)" in summary
        assert "• Sweet [3] (0.0%)" in summary


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
