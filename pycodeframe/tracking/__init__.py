"""Codeframe version tracking across waves."""

from pycodeframe.tracking.store import (
    StudyVersion,
    VersionChanges,
    PercentageChange,
    VersionStore,
    InMemoryVersionStore,
    JsonVersionStore,
)
from pycodeframe.tracking.versions import (
    VersionTracker,
    InsufficientVersions,
    diff_codeframes,
)

__all__ = [
    "StudyVersion",
    "VersionChanges",
    "PercentageChange",
    "VersionStore",
    "InMemoryVersionStore",
    "JsonVersionStore",
    "VersionTracker",
    "InsufficientVersions",
    "diff_codeframes",
]
