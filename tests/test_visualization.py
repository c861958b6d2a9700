"""Tests for visualization modules."""

import logging

import pytest
import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for testing
import matplotlib.pyplot as plt

from pycodeframe.config import TrackingConfig
from pycodeframe.core.codeframe import Code, Codeframe
from pycodeframe.tracking import VersionTracker
from pycodeframe.visualization import plot_code_frequencies, plot_tracking_trends


def make_frame(percentages):
    frame = Codeframe(
        [Code(id=code_id, label=f"Code {code_id}", percentage=pct, count=int(pct)) for code_id, pct in percentages.items()],
        question_type="brand-description",
    )
    frame.total_responses = 100
    return frame


@pytest.fixture
def sample_codeframe():
    return make_frame({"C01": 40.0, "C02": 25.0, "C03": 10.0, "OTHER": 5.0})


@pytest.fixture
def sample_versions():
    tracker = VersionTracker(config=TrackingConfig(study_id="viz"))
    tracker.save_version(make_frame({"C01": 40.0, "C02": 25.0}), wave="Wave 1")
    tracker.save_version(make_frame({"C01": 35.0, "C03": 12.0}), wave="Wave 2")
    return tracker.get_versions()


class TestFrequencyCharts:
    """Tests for the code frequency chart."""

    def test_basic(self, sample_codeframe):
        fig = plot_code_frequencies(sample_codeframe)

        ax = fig.axes[0]
        assert isinstance(fig, plt.Figure)
        assert ax.get_title() == "Code Frequencies: brand-description"
        # highest share is drawn at the top
        assert [t.get_text() for t in ax.get_yticklabels()][-1] == "Code C01"
        plt.close(fig)

    def test_top_n(self, sample_codeframe):
        fig = plot_code_frequencies(sample_codeframe, top_n=2)

        ax = fig.axes[0]
        assert len(ax.patches) == 2
        assert ax.get_title().endswith("(Top 2)")
        plt.close(fig)

    def test_counts(self, sample_codeframe):
        fig = plot_code_frequencies(sample_codeframe, use_percentages=False, show_values=False)
        assert fig.axes[0].get_xlabel() == "Responses"
        plt.close(fig)

    def test_empty_codeframe(self):
        fig = plot_code_frequencies(Codeframe())
        assert len(fig.axes[0].patches) == 0
        plt.close(fig)

    def test_save(self, sample_codeframe, tmp_path):
        save_path = tmp_path / "frequencies.png"
        fig = plot_code_frequencies(sample_codeframe, save_path=save_path)
        assert save_path.exists()
        plt.close(fig)


class TestTrackingTrends:
    """Tests for the tracking trend chart."""

    def test_one_line_per_code(self, sample_versions):
        fig = plot_tracking_trends(sample_versions)

        ax = fig.axes[0]
        assert len(ax.get_lines()) == 3
        assert [t.get_text() for t in ax.get_xticklabels()] == ["Wave 1", "Wave 2"]
        plt.close(fig)

    def test_selected_codes(self, sample_versions):
        fig = plot_tracking_trends(sample_versions, codes=["C02"])

        line = fig.axes[0].get_lines()[0]
        assert line.get_label() == "Code C02"
        # C02 is missing from wave 2
        assert line.get_ydata()[0] == 25.0
        assert line.get_ydata()[1] != line.get_ydata()[1]
        plt.close(fig)

    def test_unknown_code_is_skipped(self, sample_versions, caplog):
        with caplog.at_level(logging.WARNING):
            fig = plot_tracking_trends(sample_versions, codes=["C99"])

        assert fig.axes[0].get_legend() is None
        assert "C99" in caplog.text
        plt.close(fig)

    def test_top_n(self, sample_versions):
        fig = plot_tracking_trends(sample_versions, top_n=1)
        assert [line.get_label() for line in fig.axes[0].get_lines()] == ["Code C01"]
        plt.close(fig)

    def test_save(self, sample_versions, tmp_path):
        save_path = tmp_path / "trends.png"
        fig = plot_tracking_trends(sample_versions, save_path=save_path)
        assert save_path.exists()
        plt.close(fig)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
