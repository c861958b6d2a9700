"""Tests for codeframe version tracking."""

import pytest

from pycodeframe.config import TrackingConfig
from pycodeframe.core.codeframe import Code, Codeframe
from pycodeframe.tracking import (
    InMemoryVersionStore,
    InsufficientVersions,
    JsonVersionStore,
    VersionChanges,
    VersionTracker,
    diff_codeframes,
)


def make_frame(percentages, labels=None, total=100):
    """Build a codeframe from {code_id: percentage}."""
    labels = labels or {}
    frame = Codeframe(
        [
            Code(id=code_id, label=labels.get(code_id, f"Label {code_id}"), percentage=pct, count=int(pct))
            for code_id, pct in percentages.items()
        ],
        question_type="brand-description",
    )
    frame.total_responses = total
    return frame


@pytest.fixture
def wave1():
    return make_frame({"C01": 40.0, "C02": 25.0, "C03": 10.0}, labels={"C03": "Price"})


@pytest.fixture
def wave2():
    return make_frame({"C01": 38.0, "C02": 24.0, "C03": 17.0}, labels={"C03": "Price"})


@pytest.fixture
def tracker():
    return VersionTracker(config=TrackingConfig(study_id="soft-drinks", study_name="Soft Drinks Tracker"))


class TestDiff:
    """Tests for codeframe diffs."""

    def test_significant_change(self, wave1, wave2):
        changes = diff_codeframes(wave1, wave2, significance_threshold=5.0)

        assert [c.code_id for c in changes.percentage_changes] == ["C03"]
        change = changes.percentage_changes[0]
        assert change.delta == pytest.approx(7.0)
        assert change.previous_percentage == 10.0
        assert change.current_percentage == 17.0

    def test_below_threshold(self, wave1, wave2):
        changes = diff_codeframes(wave1, wave2, significance_threshold=8.0)

        assert changes.percentage_changes == []
        assert changes.is_empty

    def test_threshold_is_inclusive(self, wave1, wave2):
        changes = diff_codeframes(wave1, wave2, significance_threshold=7.0)
        assert len(changes.percentage_changes) == 1

    def test_self_diff_is_empty(self, wave1):
        assert diff_codeframes(wave1, wave1.copy()).is_empty

    def test_direction(self, wave1, wave2):
        changes = diff_codeframes(wave2, wave1)
        assert changes.percentage_changes[0].delta == pytest.approx(-7.0)

    def test_new_removed_and_modified(self):
        old = make_frame({"C01": 10.0, "C02": 10.0}, labels={"C01": "Taste"})
        new = make_frame({"C01": 10.0, "C03": 10.0}, labels={"C01": "Flavour"})

        changes = diff_codeframes(old, new)

        assert changes.new_codes == ["C03"]
        assert changes.removed_codes == ["C02"]
        assert changes.modified_codes == [{
            "code_id": "C01",
            "label": "Flavour",
            "changes": ['Label changed from "Taste" to "Flavour"'],
        }]

    def test_sorted_by_absolute_delta(self):
        old = make_frame({"A": 10.0, "B": 50.0, "C": 30.0})
        new = make_frame({"A": 16.0, "B": 30.0, "C": 39.0})

        changes = diff_codeframes(old, new)

        assert [c.code_id for c in changes.percentage_changes] == ["B", "C", "A"]

    def test_changes_round_trip(self, wave1, wave2):
        changes = diff_codeframes(wave1, wave2, from_version=1, to_version=2)
        assert VersionChanges.from_dict(changes.to_dict()) == changes


class TestVersionTracker:
    """Tests for saving and comparing versions."""

    def test_sequential_numbers(self, tracker, wave1, wave2):
        v1 = tracker.save_version(wave1, wave="Wave 1")
        v2 = tracker.save_version(wave2, wave="Wave 2")

        assert (v1.version_number, v2.version_number) == (1, 2)
        assert v1.version_id == "soft-drinks-v1"
        assert v1.changes_summary is None
        assert tracker.latest() is not None and tracker.latest().wave == "Wave 2"

    def test_wave_over_wave_summary(self, tracker, wave1, wave2):
        tracker.save_version(wave1, wave="Wave 1")
        v2 = tracker.save_version(wave2, wave="Wave 2")

        summary = v2.changes_summary
        assert (summary.from_version, summary.to_version) == (1, 2)
        assert [c.code_id for c in summary.percentage_changes] == ["C03"]

    def test_snapshot_is_immutable(self, tracker, wave1):
        version = tracker.save_version(wave1, wave="Wave 1")

        wave1.get("C01").label = "Edited later"
        working = version.snapshot()
        working.get("C01").label = "Edited copy"
        tracker.get_version(1).codeframe_snapshot.get("C01").label = "Edited stored"
        version.codeframe_snapshot.get("C01").label = "Edited returned"

        assert tracker.get_version(1).codeframe_snapshot.get("C01").label == "Label C01"

    def test_metadata(self, tracker, wave1):
        version = tracker.save_version(wave1, wave="Wave 1", columns_processed=["B1r1", "B1r2"])

        assert version.metadata["total_responses"] == 100
        assert version.metadata["columns_processed"] == ["B1r1", "B1r2"]
        assert version.metadata["codeframe_size"] == 3

    def test_vs_baseline(self, wave1, wave2):
        tracker = VersionTracker(config=TrackingConfig(study_id="s", comparison_mode="vs-baseline"))
        tracker.save_version(wave1, wave="W1")
        tracker.save_version(wave2, wave="W2")
        v3 = tracker.save_version(wave2, wave="W3")

        assert v3.changes_summary.from_version == 1
        assert [c.code_id for c in v3.changes_summary.percentage_changes] == ["C03"]

    def test_pinned_baseline(self, wave1, wave2):
        tracker = VersionTracker(config=TrackingConfig(study_id="s", comparison_mode="vs-baseline", baseline_version=2))
        tracker.save_version(wave1, wave="W1")
        tracker.save_version(wave2, wave="W2")
        v3 = tracker.save_version(wave1, wave="W3")

        assert v3.changes_summary.from_version == 2
        assert tracker.compare().from_version == 2

    def test_latest_baseline_is_not_compared_with_itself(self, wave1, wave2):
        tracker = VersionTracker(config=TrackingConfig(study_id="s", comparison_mode="vs-baseline", baseline_version=2))
        tracker.save_version(wave1, wave="W1")
        tracker.save_version(wave2, wave="W2")

        changes = tracker.compare()

        assert (changes.from_version, changes.to_version) == (1, 2)
        assert [c.code_id for c in changes.percentage_changes] == ["C03"]
        assert "No changes detected" not in tracker.report()

    def test_all_waves_mode_needs_explicit_base(self, wave1, wave2):
        tracker = VersionTracker(config=TrackingConfig(study_id="s", comparison_mode="all-waves"))
        tracker.save_version(wave1, wave="W1")

        v2 = tracker.save_version(wave2, wave="W2")
        v3 = tracker.save_version(wave2, wave="W3", compare_to=1)

        assert v2.changes_summary is None
        assert v3.changes_summary.from_version == 1

    def test_compare_needs_two_versions(self, tracker, wave1):
        assert isinstance(tracker.compare(), InsufficientVersions)

        tracker.save_version(wave1, wave="Wave 1")
        result = tracker.compare()

        assert isinstance(result, InsufficientVersions)
        assert result.available == 1
        assert "soft-drinks" in result.message

    def test_compare_threshold_override(self, tracker, wave1, wave2):
        tracker.save_version(wave1, wave="Wave 1")
        tracker.save_version(wave2, wave="Wave 2")

        assert len(tracker.compare().percentage_changes) == 1
        assert tracker.compare(significance_threshold=8.0).is_empty

    def test_compare_explicit_pair(self, tracker, wave1, wave2):
        tracker.save_version(wave1, wave="Wave 1")
        tracker.save_version(wave2, wave="Wave 2")

        changes = tracker.compare(2, 1)

        assert (changes.from_version, changes.to_version) == (2, 1)
        assert changes.percentage_changes[0].delta == pytest.approx(-7.0)

    def test_unknown_version(self, tracker):
        with pytest.raises(KeyError):
            tracker.get_version(3)

    def test_clear(self, tracker, wave1):
        tracker.save_version(wave1, wave="Wave 1")
        assert tracker.clear() == 1
        assert tracker.get_versions() == []

    def test_studies_are_separate(self, wave1):
        store = InMemoryVersionStore()
        a = VersionTracker(store, TrackingConfig(study_id="a"))
        b = VersionTracker(store, TrackingConfig(study_id="b"))

        a.save_version(wave1, wave="W1")
        a.save_version(wave1, wave="W2")
        version = b.save_version(wave1, wave="W1")

        assert version.version_number == 1
        assert sorted(store.studies()) == ["a", "b"]


class TestReport:
    """Tests for the comparison report."""

    def test_report(self, tracker, wave1, wave2):
        tracker.save_version(wave1, wave="Wave 1")
        tracker.save_version(wave2, wave="Wave 2")

        report = tracker.report()

        assert report.startswith("TRACKING STUDY COMPARISON REPORT")
        assert "Study: Soft Drinks Tracker" in report
        assert "Comparing: Wave 1 → Wave 2" in report
        assert "SIGNIFICANT CHANGES (≥5% points)" in report
        assert "• Price: 10.0% → 17.0% (+7.0% ↑)" in report

    def test_no_changes(self, tracker, wave1):
        tracker.save_version(wave1, wave="Wave 1")
        tracker.save_version(wave1, wave="Wave 2")

        assert "No changes detected." in tracker.report()

    def test_insufficient(self, tracker):
        assert tracker.report() == "Study 'soft-drinks' has 0 version(s); at least 2 are needed for a comparison"

    def test_tracking_table(self, tracker, wave1, wave2):
        tracker.save_version(wave1, wave="Wave 1")
        tracker.save_version(wave2, wave="Wave 2")

        df = tracker.tracking_table()

        assert list(df.columns[:3]) == ["Wave", "Date", "Total Responses"]
        assert list(df["Wave"]) == ["Wave 1", "Wave 2"]
        assert list(df["Price"]) == [10.0, 17.0]


class TestJsonVersionStore:
    """Tests for the file-backed store."""

    def test_persists_across_trackers(self, tmp_path, wave1, wave2):
        path = tmp_path / "versions.json"
        config = TrackingConfig(study_id="soft-drinks")
        VersionTracker(JsonVersionStore(path), config).save_version(wave1, wave="Wave 1")
        VersionTracker(JsonVersionStore(path), config).save_version(wave2, wave="Wave 2")

        tracker = VersionTracker(JsonVersionStore(path), config)
        versions = tracker.get_versions()

        assert [v.version_number for v in versions] == [1, 2]
        assert versions[1].changes_summary.percentage_changes[0].code_id == "C03"
        assert versions[0].codeframe_snapshot.get("C03").percentage == 10.0

    def test_duplicate_number_is_rejected(self, tmp_path, wave1):
        store = JsonVersionStore(tmp_path / "versions.json")
        version = VersionTracker(store, TrackingConfig(study_id="s")).save_version(wave1, wave="W1")

        with pytest.raises(ValueError, match="already has version 1"):
            store.append(version)

    def test_missing_file_is_empty(self, tmp_path):
        store = JsonVersionStore(tmp_path / "missing.json")
        assert store.list_versions("s") == []
        assert store.studies() == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
