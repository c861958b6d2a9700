"""Tests for question type detection and grouping."""

import pytest

from pycodeframe.generation.question_grouping import (
    detect_column,
    detect_question_types,
    group_columns_by_type,
    suggest_question_types,
)
from pycodeframe.models import ColumnData


@pytest.fixture
def columns():
    return [
        ColumnData(name="Which car brands are you aware of?", index=0, values=("Acme",)),
        ColumnData(name="How would you describe Brand X?", index=1, values=("Reliable",)),
        ColumnData(name="RespID", index=2, values=("1",)),
        ColumnData(name="How would you describe the brand overall?", index=3, values=("Cheap",)),
    ]


class TestDetection:
    """Tests for header detection."""

    @pytest.mark.parametrize("header,expected", [
        ("Which car brands are you aware of?", "unaided-awareness"),
        ("How would you describe Brand X?", "brand-description"),
        ("Why did you choose this option?", "miscellaneous"),
        ("RespID", None),
    ])
    def test_question_type(self, header, expected):
        assert detect_column(header).question_type == expected

    def test_confidence(self):
        detection = detect_column("Why?")

        assert detection.pattern.pattern_id == "reasons_why"
        assert detection.confidence == pytest.approx(3 / 4 * 0.7 + 0.3 * 3 / 5)

    def test_example_bonus_is_capped(self):
        detection = detect_column("Why did you choose this option?")
        assert 0.0 < detection.confidence <= 1.0

    def test_no_match(self):
        detection = detect_column("Age", index=4)

        assert detection.pattern is None
        assert detection.confidence == 0.0
        assert detection.column_index == 4

    def test_plain_headers(self):
        detections = detect_question_types(["Age", "Why?"])
        assert [d.column_index for d in detections] == [0, 1]


class TestGrouping:
    """Tests for building question groups."""

    def test_groups_in_first_appearance_order(self, columns):
        groups = group_columns_by_type(columns)

        assert [g.question_type for g in groups] == ["unaided-awareness", "brand-description"]
        assert groups[1].column_names == [
            "How would you describe Brand X?",
            "How would you describe the brand overall?",
        ]

    def test_default_type(self, columns):
        groups = group_columns_by_type(columns, default_type="miscellaneous")

        assert groups[-1].question_type == "miscellaneous"
        assert groups[-1].column_names == ["RespID"]

    def test_min_confidence(self, columns):
        assert group_columns_by_type(columns, min_confidence=1.1) == []

    def test_suggestions(self, columns):
        suggestions = suggest_question_types(columns)

        assert 2 not in suggestions
        assert suggestions[1]["type"] == "brand-description"
        assert "Brand Perception" in suggestions[1]["reason"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
