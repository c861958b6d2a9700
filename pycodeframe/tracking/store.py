"""Version snapshots and the stores that keep them."""

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pycodeframe.core.codeframe import Codeframe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PercentageChange:
    """A code whose share moved by at least the significance threshold."""

    code_id: str
    label: str
    previous_percentage: float
    current_percentage: float
    delta: float

    def to_dict(self) -> dict:
        return {
            "code_id": self.code_id,
            "label": self.label,
            "previous_percentage": self.previous_percentage,
            "current_percentage": self.current_percentage,
            "delta": self.delta,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PercentageChange":
        return cls(**data)


@dataclass
class VersionChanges:
    """
    Differences between two codeframe snapshots, computed from -> to.

    Attributes:
        from_version: Version number of the older snapshot (if known).
        to_version: Version number of the newer snapshot (if known).
        new_codes: Ids present only in the newer snapshot.
        removed_codes: Ids present only in the older snapshot.
        modified_codes: Dicts ``{"code_id", "label", "changes"}`` for codes
            whose label or definition changed.
        percentage_changes: Significant share moves, largest first.
        significance_threshold: Percentage-point threshold used.
    """

    from_version: Optional[int] = None
    to_version: Optional[int] = None
    new_codes: list[str] = field(default_factory=list)
    removed_codes: list[str] = field(default_factory=list)
    modified_codes: list[dict] = field(default_factory=list)
    percentage_changes: list[PercentageChange] = field(default_factory=list)
    significance_threshold: float = 5.0

    @property
    def is_empty(self) -> bool:
        return not (self.new_codes or self.removed_codes or self.modified_codes or self.percentage_changes)

    def to_dict(self) -> dict:
        return {
            "from_version": self.from_version,
            "to_version": self.to_version,
            "new_codes": list(self.new_codes),
            "removed_codes": list(self.removed_codes),
            "modified_codes": [dict(m) for m in self.modified_codes],
            "percentage_changes": [c.to_dict() for c in self.percentage_changes],
            "significance_threshold": self.significance_threshold,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VersionChanges":
        return cls(
            from_version=data.get("from_version"),
            to_version=data.get("to_version"),
            new_codes=list(data.get("new_codes", [])),
            removed_codes=list(data.get("removed_codes", [])),
            modified_codes=list(data.get("modified_codes", [])),
            percentage_changes=[PercentageChange.from_dict(c) for c in data.get("percentage_changes", [])],
            significance_threshold=data.get("significance_threshold", 5.0),
        )


@dataclass(frozen=True)
class StudyVersion:
    """
    An immutable snapshot of a codeframe for one wave of a study.

    The snapshot is a deep copy taken at save time. Use :meth:`snapshot`
    to get a working copy instead of editing ``codeframe_snapshot``.
    """

    version_id: str
    study_id: str
    version_number: int
    wave: str
    created_at: datetime
    codeframe_snapshot: Codeframe
    metadata: dict = field(default_factory=dict)
    description: Optional[str] = None
    changes_summary: Optional[VersionChanges] = None

    def snapshot(self) -> Codeframe:
        """Return a deep copy of the stored codeframe."""
        return self.codeframe_snapshot.copy()

    def to_dict(self) -> dict:
        return {
            "version_id": self.version_id,
            "study_id": self.study_id,
            "version_number": self.version_number,
            "wave": self.wave,
            "created_at": self.created_at.isoformat(),
            "codeframe_snapshot": self.codeframe_snapshot.to_dict(),
            "metadata": self.metadata,
            "description": self.description,
            "changes_summary": self.changes_summary.to_dict() if self.changes_summary else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StudyVersion":
        changes = data.get("changes_summary")
        return cls(
            version_id=data["version_id"],
            study_id=data["study_id"],
            version_number=int(data["version_number"]),
            wave=data["wave"],
            created_at=datetime.fromisoformat(data["created_at"]),
            codeframe_snapshot=Codeframe.from_dict(data["codeframe_snapshot"]),
            metadata=data.get("metadata", {}),
            description=data.get("description"),
            changes_summary=VersionChanges.from_dict(changes) if changes else None,
        )

    def __repr__(self) -> str:
        return (
            f"StudyVersion(study='{self.study_id}', number={self.version_number}, "
            f"wave='{self.wave}', n_codes={len(self.codeframe_snapshot)})"
        )


class VersionStore(ABC):
    """
    Append-only storage of study versions, keyed by study id.

    Versions are only ever removed through an explicit :meth:`clear`.
    """

    @abstractmethod
    def list_versions(self, study_id: str) -> list[StudyVersion]:
        """Return a study's versions ordered by version number."""
        pass

    @abstractmethod
    def append(self, version: StudyVersion) -> None:
        """
        Store a new version.

        Raises:
            ValueError: If the study already has a version with that number.
        """
        pass

    @abstractmethod
    def clear(self, study_id: str) -> int:
        """Delete every version of a study and return how many were removed."""
        pass

    @abstractmethod
    def studies(self) -> list[str]:
        """Return the ids of all studies with at least one version."""
        pass

    @staticmethod
    def _check_new(existing: list[StudyVersion], version: StudyVersion) -> None:
        if any(v.version_number == version.version_number for v in existing):
            raise ValueError(
                f"Study '{version.study_id}' already has version {version.version_number}"
            )


class InMemoryVersionStore(VersionStore):
    """
    Version store held in process memory.

    Versions are deep-copied on the way in and out, so neither the caller
    that saved a version nor any reader can edit the stored snapshot.
    """

    def __init__(self):
        self._versions: dict[str, list[StudyVersion]] = {}
        self._lock = threading.Lock()

    def list_versions(self, study_id: str) -> list[StudyVersion]:
        with self._lock:
            versions = sorted(self._versions.get(study_id, []), key=lambda v: v.version_number)
            return copy.deepcopy(versions)

    def append(self, version: StudyVersion) -> None:
        with self._lock:
            existing = self._versions.setdefault(version.study_id, [])
            self._check_new(existing, version)
            existing.append(copy.deepcopy(version))

    def clear(self, study_id: str) -> int:
        with self._lock:
            return len(self._versions.pop(study_id, []))

    def studies(self) -> list[str]:
        with self._lock:
            return [s for s, versions in self._versions.items() if versions]

    def __repr__(self) -> str:
        return f"InMemoryVersionStore(studies={len(self._versions)})"


class JsonVersionStore(VersionStore):
    """
    Version store backed by a single JSON file.

    The file maps study ids to lists of serialized versions. It is read on
    every access and rewritten on every append, so several trackers can
    share one file sequentially.

    Example:
        >>> store = JsonVersionStore("versions.json")
        >>> tracker = VersionTracker(store, TrackingConfig(study_id="brand-tracker"))
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data.get("studies", {})

    def _write(self, studies: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"studies": studies}, f, indent=2, ensure_ascii=False, default=str)

    def list_versions(self, study_id: str) -> list[StudyVersion]:
        with self._lock:
            raw = self._read().get(study_id, [])
        versions = [StudyVersion.from_dict(v) for v in raw]
        return sorted(versions, key=lambda v: v.version_number)

    def append(self, version: StudyVersion) -> None:
        with self._lock:
            studies = self._read()
            existing = [StudyVersion.from_dict(v) for v in studies.get(version.study_id, [])]
            self._check_new(existing, version)
            studies.setdefault(version.study_id, []).append(version.to_dict())
            self._write(studies)
        logger.debug(f"Stored {version!r} in {self.path}")

    def clear(self, study_id: str) -> int:
        with self._lock:
            studies = self._read()
            removed = len(studies.pop(study_id, []))
            self._write(studies)
        return removed

    def studies(self) -> list[str]:
        with self._lock:
            return [s for s, versions in self._read().items() if versions]

    def __repr__(self) -> str:
        return f"JsonVersionStore(path='{self.path}')"
