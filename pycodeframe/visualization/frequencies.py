"""Code frequency and tracking trend visualization."""

import logging
from pathlib import Path
from typing import Optional, Union

import matplotlib.pyplot as plt
import matplotlib.colors as mcolors
import numpy as np

from pycodeframe.core.codeframe import Codeframe

logger = logging.getLogger(__name__)


def plot_code_frequencies(
    codeframe: Codeframe,
    title: Optional[str] = None,
    top_n: Optional[int] = None,
    use_percentages: bool = True,
    figsize: tuple[int, int] = (10, 8),
    color: str = "steelblue",
    show_values: bool = True,
    save_path: Optional[Union[str, Path]] = None,
    dpi: int = 150,
) -> plt.Figure:
    """
    Create a horizontal bar chart of a codeframe's code statistics.

    Args:
        codeframe: Codeframe with recomputed statistics.
        title: Chart title (defaults to the question type).
        top_n: If set, only show top N codes.
        use_percentages: Plot percentages instead of raw counts.
        figsize: Figure size (width, height).
        color: Bar color.
        show_values: If True, show values next to the bars.
        save_path: If set, save figure to this path.
        dpi: Resolution for saved figure.

    Returns:
        matplotlib Figure object.
    """
    title = title or f"Code Frequencies: {codeframe.question_type or 'codeframe'}"

    def value_of(code):
        return code.percentage if use_percentages else code.count

    codes = sorted(codeframe.codes, key=value_of, reverse=True)
    if top_n:
        codes = codes[:top_n]
        title = f"{title} (Top {top_n})"

    # Top item at top
    codes = codes[::-1]
    names = [code.label for code in codes]
    values = np.array([value_of(code) for code in codes], dtype=float)
    positions = np.arange(len(codes))

    fig, ax = plt.subplots(figsize=figsize)
    bars = ax.barh(positions, values, color=color)
    ax.set_yticks(positions)
    ax.set_yticklabels(names)

    if show_values:
        offset = values.max() * 0.01 if len(values) else 0
        for bar, value in zip(bars, values):
            ax.text(
                bar.get_width() + offset,
                bar.get_y() + bar.get_height() / 2,
                f"{value:.1f}%" if use_percentages else str(int(value)),
                va="center",
                fontsize=9,
            )

    ax.set_xlabel("% of responses" if use_percentages else "Responses")
    ax.set_ylabel("Code")
    ax.set_title(title)
    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=dpi, bbox_inches="tight")
        logger.info(f"Saved frequency chart to {save_path}")

    return fig


def plot_tracking_trends(
    versions: list,
    codes: Optional[list[str]] = None,
    title: str = "Code Trends Across Waves",
    top_n: int = 8,
    figsize: tuple[int, int] = (12, 6),
    save_path: Optional[Union[str, Path]] = None,
    dpi: int = 150,
) -> plt.Figure:
    """
    Plot code percentages across the versions of a tracking study.

    Codes are matched across versions by id, the same way version diffs
    match them. A code missing from a wave leaves a gap in its line.

    Args:
        versions: StudyVersion objects in version order.
        codes: Code ids to plot. Defaults to the top_n codes by their
            peak percentage.
        title: Chart title.
        top_n: Number of codes plotted when none are given.
        figsize: Figure size.
        save_path: If set, save figure to this path.
        dpi: Resolution for saved figure.

    Returns:
        matplotlib Figure object.
    """
    waves = [v.wave or f"v{v.version_number}" for v in versions]
    series: dict[str, np.ndarray] = {}
    labels: dict[str, str] = {}
    for i, version in enumerate(versions):
        for code in version.codeframe_snapshot:
            if code.id not in series:
                series[code.id] = np.full(len(versions), np.nan)
            series[code.id][i] = code.percentage
            labels[code.id] = code.label

    if codes is None:
        ranked = sorted(series, key=lambda code_id: np.nanmax(series[code_id]), reverse=True)
        codes = ranked[:top_n]

    colors = list(mcolors.TABLEAU_COLORS.values())
    x = np.arange(len(versions))

    fig, ax = plt.subplots(figsize=figsize)

    plotted = 0
    for code_id in codes:
        if code_id not in series:
            logger.warning(f"Code '{code_id}' not present in any version, skipping")
            continue
        ax.plot(
            x,
            series[code_id],
            marker="o",
            linewidth=2,
            color=colors[plotted % len(colors)],
            label=labels[code_id],
        )
        plotted += 1

    ax.set_xticks(x)
    ax.set_xticklabels(waves)
    ax.set_xlabel("Wave")
    ax.set_ylabel("% of responses")
    ax.set_title(title)
    ax.grid(True, alpha=0.3)
    if plotted:
        ax.legend(loc="best", fontsize=9)

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=dpi, bbox_inches="tight")
        logger.info(f"Saved tracking trend chart to {save_path}")

    return fig
