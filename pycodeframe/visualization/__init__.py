"""Visualization utilities for pycodeframe."""

from pycodeframe.visualization.frequencies import (
    plot_code_frequencies,
    plot_tracking_trends,
)

__all__ = [
    "plot_code_frequencies",
    "plot_tracking_trends",
]
