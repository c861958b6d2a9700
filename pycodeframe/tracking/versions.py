"""Longitudinal tracking of codeframes across data-collection waves."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

import pandas as pd

from pycodeframe.config import TrackingConfig
from pycodeframe.core.codeframe import Codeframe
from pycodeframe.tracking.store import (
    InMemoryVersionStore,
    PercentageChange,
    StudyVersion,
    VersionChanges,
    VersionStore,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InsufficientVersions:
    """Returned instead of a diff when a study has fewer than two versions."""

    study_id: str
    available: int

    @property
    def message(self) -> str:
        return (
            f"Study '{self.study_id}' has {self.available} version(s); "
            f"at least 2 are needed for a comparison"
        )


def diff_codeframes(
    old: Codeframe,
    new: Codeframe,
    significance_threshold: float = 5.0,
    from_version: Optional[int] = None,
    to_version: Optional[int] = None,
) -> VersionChanges:
    """
    Compare two codeframes, from ``old`` to ``new``.

    Codes are matched by id. A code whose label or definition changed is
    reported as modified. For every code present in both, the share moved
    by ``new - old`` percentage points; moves whose absolute value reaches
    the threshold are reported, largest first.

    Args:
        old: The earlier codeframe.
        new: The later codeframe.
        significance_threshold: Percentage-point threshold (inclusive).
        from_version: Version number of ``old``, for the record.
        to_version: Version number of ``new``, for the record.

    Returns:
        VersionChanges describing the differences.
    """
    old_ids = [c.id for c in old]
    new_ids = [c.id for c in new]

    changes = VersionChanges(
        from_version=from_version,
        to_version=to_version,
        new_codes=[code_id for code_id in new_ids if code_id not in old],
        removed_codes=[code_id for code_id in old_ids if code_id not in new],
        significance_threshold=significance_threshold,
    )

    moves = []
    for new_code in new:
        old_code = old.get(new_code.id)
        if old_code is None:
            continue

        modifications = []
        if old_code.label != new_code.label:
            modifications.append(f'Label changed from "{old_code.label}" to "{new_code.label}"')
        if old_code.definition != new_code.definition:
            modifications.append("Definition updated")
        if modifications:
            changes.modified_codes.append({
                "code_id": new_code.id,
                "label": new_code.label,
                "changes": modifications,
            })

        delta = round(new_code.percentage - old_code.percentage, 6)
        if abs(delta) >= significance_threshold:
            moves.append(PercentageChange(
                code_id=new_code.id,
                label=new_code.label,
                previous_percentage=old_code.percentage,
                current_percentage=new_code.percentage,
                delta=delta,
            ))

    changes.percentage_changes = sorted(moves, key=lambda m: -abs(m.delta))
    return changes


class VersionTracker:
    """
    Saves codeframe snapshots per wave and compares them.

    Version numbers are sequential per study. Every saved version is an
    immutable deep copy. Depending on ``comparison_mode`` a new version is
    compared with the previous version ('wave-over-wave'), with a pinned
    baseline ('vs-baseline'), or only with an explicit ``compare_to``
    ('all-waves').

    Example:
        >>> tracker = VersionTracker(config=TrackingConfig(study_id="soft-drinks"))
        >>> tracker.save_version(wave1_frame, wave="Wave 1")
        >>> v2 = tracker.save_version(wave2_frame, wave="Wave 2")
        >>> [c.code_id for c in v2.changes_summary.percentage_changes]
        ['C03']
        >>> print(tracker.report())
    """

    def __init__(
        self,
        store: Optional[VersionStore] = None,
        config: Optional[TrackingConfig] = None,
    ):
        """
        Initialize the tracker.

        Args:
            store: Where versions are kept. Defaults to an in-memory store.
            config: Tracking configuration. Uses defaults if None.
        """
        self.store = store or InMemoryVersionStore()
        self.config = config or TrackingConfig()

    @property
    def study_id(self) -> str:
        return self.config.study_id

    def get_versions(self) -> list[StudyVersion]:
        """Return the study's versions, oldest first."""
        return self.store.list_versions(self.study_id)

    def get_version(self, version_number: int) -> StudyVersion:
        """
        Return one version by number.

        Raises:
            KeyError: If the study has no such version.
        """
        for version in self.get_versions():
            if version.version_number == version_number:
                return version
        raise KeyError(f"Study '{self.study_id}' has no version {version_number}")

    def latest(self) -> Optional[StudyVersion]:
        versions = self.get_versions()
        return versions[-1] if versions else None

    def save_version(
        self,
        codeframe: Codeframe,
        wave: str,
        description: Optional[str] = None,
        total_responses: Optional[int] = None,
        columns_processed: Optional[list[str]] = None,
        compare_to: Optional[int] = None,
    ) -> StudyVersion:
        """
        Snapshot a codeframe as the study's next version.

        Args:
            codeframe: The codeframe to snapshot (deep-copied).
            wave: Free-text wave label, e.g. 'Wave 3' or '2025 Q1'.
            description: Optional note stored with the version.
            total_responses: Responses behind the statistics. Defaults to
                the codeframe's own total.
            columns_processed: Columns that were coded.
            compare_to: Version number to compare against, overriding the
                configured comparison mode.

        Returns:
            The stored StudyVersion.
        """
        versions = self.get_versions()
        number = versions[-1].version_number + 1 if versions else 1
        snapshot = codeframe.copy()

        metadata = {
            "total_responses": codeframe.total_responses if total_responses is None else total_responses,
            "columns_processed": list(columns_processed or codeframe.metadata.get("columns", [])),
            "codeframe_size": len(snapshot),
            "processing_date": datetime.now().isoformat(),
        }

        changes = None
        if versions and (self.config.auto_detect_changes or compare_to is not None):
            base = self._comparison_base(versions, compare_to)
            if base is not None:
                changes = diff_codeframes(
                    base.codeframe_snapshot,
                    snapshot,
                    significance_threshold=self.config.significance_threshold,
                    from_version=base.version_number,
                    to_version=number,
                )

        version = StudyVersion(
            version_id=f"{self.study_id}-v{number}",
            study_id=self.study_id,
            version_number=number,
            wave=wave,
            created_at=datetime.now(),
            codeframe_snapshot=snapshot,
            metadata=metadata,
            description=description,
            changes_summary=changes,
        )
        self.store.append(version)
        logger.info(f"Saved version {number} ('{wave}') of study '{self.study_id}'")
        return version

    def _comparison_base(
        self,
        versions: list[StudyVersion],
        compare_to: Optional[int] = None,
    ) -> Optional[StudyVersion]:
        """Pick the version a new or selected version is compared against."""
        if compare_to is not None:
            return self.get_version(compare_to)

        mode = self.config.comparison_mode
        if mode == "wave-over-wave":
            return versions[-1]
        if mode == "vs-baseline":
            baseline = self.config.baseline_version
            for version in versions:
                if version.version_number == baseline:
                    return version
            return versions[0]
        return None

    def diff(
        self,
        v1: Union[StudyVersion, Codeframe],
        v2: Union[StudyVersion, Codeframe],
        significance_threshold: Optional[float] = None,
    ) -> VersionChanges:
        """
        Compare two versions (or codeframes), from v1 to v2.

        Args:
            v1: The earlier version.
            v2: The later version.
            significance_threshold: Overrides the configured threshold.
        """
        threshold = self.config.significance_threshold if significance_threshold is None else significance_threshold
        return diff_codeframes(
            _frame(v1),
            _frame(v2),
            significance_threshold=threshold,
            from_version=getattr(v1, "version_number", None),
            to_version=getattr(v2, "version_number", None),
        )

    def compare(
        self,
        v1_number: Optional[int] = None,
        v2_number: Optional[int] = None,
        significance_threshold: Optional[float] = None,
    ) -> Union[VersionChanges, InsufficientVersions]:
        """
        Compare two stored versions.

        Defaults to the latest version against its comparison base under
        the configured mode (the previous version in 'all-waves' mode).

        Returns:
            VersionChanges, or InsufficientVersions when the study has
            fewer than two versions.
        """
        versions = self.get_versions()
        if len(versions) < 2:
            return InsufficientVersions(study_id=self.study_id, available=len(versions))

        first, second = self._select_pair(versions, v1_number, v2_number)
        return self.diff(first, second, significance_threshold)

    def _select_pair(self, versions, v1_number, v2_number) -> tuple[StudyVersion, StudyVersion]:
        second = self.get_version(v2_number) if v2_number is not None else versions[-1]
        if v1_number is not None:
            return self.get_version(v1_number), second

        earlier = [v for v in versions if v.version_number < second.version_number]
        if not earlier:
            earlier = [v for v in versions if v.version_number != second.version_number]
        first = self._comparison_base(earlier) or earlier[-1]
        return first, second

    def report(
        self,
        v1_number: Optional[int] = None,
        v2_number: Optional[int] = None,
        significance_threshold: Optional[float] = None,
    ) -> str:
        """
        Render a human-readable comparison of two versions.

        Returns:
            The report text, or the insufficient-versions message.
        """
        versions = self.get_versions()
        if len(versions) < 2:
            return InsufficientVersions(study_id=self.study_id, available=len(versions)).message

        first, second = self._select_pair(versions, v1_number, v2_number)
        changes = self.diff(first, second, significance_threshold)
        old = first.codeframe_snapshot
        new = second.codeframe_snapshot

        lines = [
            "TRACKING STUDY COMPARISON REPORT",
            "=" * 50,
            "",
            f"Study: {self.config.study_name or self.study_id}",
            f"Comparing: {first.wave} → {second.wave}",
            f"Date Range: {first.created_at:%Y-%m-%d} → {second.created_at:%Y-%m-%d}",
            "",
            "SUMMARY",
            "-" * 20,
            f"Total Responses: {first.metadata.get('total_responses')} → {second.metadata.get('total_responses')}",
            f"Codeframe Size: {len(old)} → {len(new)}",
            "",
        ]

        if changes.new_codes:
            lines += ["NEW CODES ADDED", "-" * 20]
            for code_id in changes.new_codes:
                code = new.get(code_id)
                lines.append(f"• {code.label} ({code.percentage:.1f}%)")
            lines.append("")

        if changes.removed_codes:
            lines += ["CODES REMOVED", "-" * 20]
            for code_id in changes.removed_codes:
                lines.append(f"• {old.get(code_id).label}")
            lines.append("")

        if changes.modified_codes:
            lines += ["MODIFIED CODES", "-" * 20]
            for modified in changes.modified_codes:
                lines.append(f"• {modified['label']}: {'; '.join(modified['changes'])}")
            lines.append("")

        if changes.percentage_changes:
            lines += [f"SIGNIFICANT CHANGES (≥{changes.significance_threshold:g}% points)", "-" * 20]
            for change in changes.percentage_changes:
                arrow = "↑" if change.delta > 0 else "↓"
                sign = "+" if change.delta > 0 else ""
                lines.append(
                    f"• {change.label}: {change.previous_percentage:.1f}% → "
                    f"{change.current_percentage:.1f}% ({sign}{change.delta:.1f}% {arrow})"
                )
            lines.append("")

        if changes.is_empty:
            lines += ["No changes detected.", ""]

        return "\n".join(lines)

    def tracking_table(self) -> pd.DataFrame:
        """
        Build a wave-by-code table of percentages.

        Returns:
            DataFrame with columns Wave, Date, Total Responses, then one
            column per code label (sorted); codes absent from a wave are NaN.
        """
        versions = self.get_versions()

        labels = {}
        for version in versions:
            for code in version.codeframe_snapshot:
                labels[code.id] = code.label
        headers = {}
        for code_id, label in sorted(labels.items(), key=lambda item: (item[1].lower(), item[0])):
            header = label if label not in headers.values() else f"{label} ({code_id})"
            headers[code_id] = header

        records = []
        for version in versions:
            record = {
                "Wave": version.wave,
                "Date": f"{version.created_at:%Y-%m-%d}",
                "Total Responses": version.metadata.get("total_responses"),
            }
            for code_id, header in headers.items():
                code = version.codeframe_snapshot.get(code_id)
                record[header] = round(code.percentage, 1) if code is not None else None
            records.append(record)

        return pd.DataFrame(records, columns=["Wave", "Date", "Total Responses", *headers.values()])

    def clear(self) -> int:
        """Delete every version of the study."""
        removed = self.store.clear(self.study_id)
        logger.info(f"Cleared {removed} version(s) of study '{self.study_id}'")
        return removed

    def __repr__(self) -> str:
        return f"VersionTracker(study='{self.study_id}', mode='{self.config.comparison_mode}')"


def _frame(value: Union[StudyVersion, Codeframe]) -> Codeframe:
    if isinstance(value, StudyVersion):
        return value.codeframe_snapshot
    return value
