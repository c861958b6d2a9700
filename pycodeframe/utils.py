"""Utility functions for pycodeframe."""

import random
import re
from typing import Optional


def clean_text(text: str) -> str:
    """
    Clean text by removing extra whitespace and normalizing.

    Args:
        text: Input text to clean.

    Returns:
        Cleaned text.
    """
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def truncate_text(text: str, max_length: int = 500, suffix: str = "...") -> str:
    """
    Truncate text to a maximum length.

    Args:
        text: Input text.
        max_length: Maximum length.
        suffix: Suffix to add if truncated.

    Returns:
        Truncated text.
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


def sanitize_label(label: str) -> str:
    """Replace every non-alphanumeric character with an underscore."""
    return re.sub(r'[^A-Za-z0-9]', '_', label)


def sample_responses(
    items: list,
    percentage: float = 100.0,
    min_size: int = 20,
    seed: Optional[int] = None,
) -> list:
    """
    Sample a share of items while keeping their original order.

    The sample size is ``round(len(items) * percentage / 100)``, raised to
    ``min_size`` and capped at ``len(items)``.

    Args:
        items: Items to sample from.
        percentage: Share of items to keep (0-100).
        min_size: Lower bound on the sample size.
        seed: Random seed for reproducible samples.

    Returns:
        The sampled items, in their original order.
    """
    if percentage >= 100 or len(items) <= min_size:
        return list(items)

    size = max(min_size, round(len(items) * percentage / 100))
    size = min(size, len(items))

    rng = random.Random(seed)
    keep = sorted(rng.sample(range(len(items)), size))
    return [items[i] for i in keep]


def format_time(seconds: float) -> str:
    """
    Format seconds into human-readable time string.

    Args:
        seconds: Number of seconds.

    Returns:
        Formatted time string (e.g., "2m 30s").
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"
