"""
Snapshot inventory for a host's backup directory.

Turns the raw listing of ``<backup-root>/<host>/`` into classified, aged
Snapshot records. A dated entry ``E`` is a successful backup when the listing
also holds its ``E-OK`` marker, and a failed one otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Iterator

from loguru import logger

from dailybak.exceptions import DataError

SNAPSHOT_ID_FORMAT = "%Y%m%d-%H%M%S"
SNAPSHOT_ID_WIDTH = 15  # len("YYYYMMDD-HHMMSS")
OK_SUFFIX = "-OK"
FAILED_SUFFIX = "-FAILED"  # Legacy marker, superseded by the absence of -OK
SECONDS_PER_DAY = 86400


@dataclass(frozen=True, order=True)
class SnapshotId:
    """
    Fixed-width ``YYYYMMDD-HHMMSS`` snapshot identifier.

    Ordering compares the raw text. Because every id built by
    ``from_datetime`` has the same width and most-significant-first fields,
    text order and chronological order are the same thing.
    """

    value: str

    @classmethod
    def from_datetime(cls, moment: datetime) -> SnapshotId:
        """Format a local datetime as a snapshot id."""
        return cls(moment.strftime(SNAPSHOT_ID_FORMAT))

    @property
    def timestamp(self) -> datetime | None:
        """Local time encoded in the id, or None if it does not parse."""
        try:
            return datetime.strptime(self.value[:SNAPSHOT_ID_WIDTH], SNAPSHOT_ID_FORMAT)
        except ValueError:
            return None

    def require_timestamp(self) -> datetime:
        """
        Return the encoded timestamp.

        Raises:
            DataError: If the id does not start with a valid timestamp
        """
        moment = self.timestamp
        if moment is None:
            raise DataError(f"Snapshot id does not carry a timestamp: {self.value!r}")
        return moment

    @property
    def ok_marker(self) -> str:
        return self.value + OK_SUFFIX

    @property
    def failed_marker(self) -> str:
        return self.value + FAILED_SUFFIX

    def __str__(self) -> str:
        return self.value


class SnapshotStatus(Enum):
    """Outcome of one backup attempt."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


@dataclass(frozen=True)
class Snapshot:
    """One dated backup attempt as seen on the remote store."""

    id: SnapshotId
    age_days: int
    status: SnapshotStatus

    @property
    def is_success(self) -> bool:
        return self.status is SnapshotStatus.SUCCESS


@dataclass(frozen=True)
class Inventory:
    """
    Classified snapshots of one host, sorted oldest first.

    Attributes:
        snapshots: Snapshot records in ascending id order
        legacy_markers: Ids that still carry an old ``-FAILED`` marker
        orphan_markers: ``-OK``/``-FAILED`` entry names whose snapshot is gone
    """

    snapshots: tuple[Snapshot, ...] = ()
    legacy_markers: frozenset[str] = field(default_factory=frozenset)
    orphan_markers: tuple[str, ...] = ()

    def __iter__(self) -> Iterator[Snapshot]:
        return iter(self.snapshots)

    def __len__(self) -> int:
        return len(self.snapshots)

    @property
    def successes(self) -> list[Snapshot]:
        return [s for s in self.snapshots if s.is_success]

    @property
    def failures(self) -> list[Snapshot]:
        return [s for s in self.snapshots if not s.is_success]


def compute_age(snapshot_id: SnapshotId, now: datetime) -> int:
    """
    Age of a snapshot in whole days, rounded half up.

    Malformed ids and timestamps in the future both yield 0.

    Args:
        snapshot_id: Snapshot to age
        now: Reference time of the run

    Returns:
        Non-negative age in days
    """
    try:
        elapsed = now.timestamp() - snapshot_id.require_timestamp().timestamp()
    except (DataError, ValueError, OverflowError, OSError) as e:
        # ValueError: dates near year 1 have no epoch timestamp
        logger.debug(f"Treating {snapshot_id} as age 0: {e}")
        return 0
    return max(0, int((elapsed + SECONDS_PER_DAY // 2) // SECONDS_PER_DAY))


def build_inventory(names: Iterable[str], now: datetime | None = None) -> Inventory:
    """
    Classify a raw directory listing into snapshots.

    Only names starting with a digit are considered, so ``LAST`` and other
    non-dated entries are skipped. ``-OK`` and ``-FAILED`` markers whose base
    entry is missing never become snapshots; they are reported in
    ``orphan_markers`` so the purge step can sweep them.

    Args:
        names: Entry names found under the host's backup directory
        now: Reference time for ages (defaults to now, local time)

    Returns:
        Inventory with snapshots sorted oldest first
    """
    now = now or datetime.now()

    legacy: set[str] = set()
    entries: list[str] = []
    for name in sorted(n for n in names if n[:1].isdigit()):
        if name.endswith(FAILED_SUFFIX):
            legacy.add(name[: -len(FAILED_SUFFIX)])
        else:
            entries.append(name)

    bases = {name for name in entries if not name.endswith(OK_SUFFIX)}
    orphans = sorted(
        [name for name in entries if name.endswith(OK_SUFFIX) and name[: -len(OK_SUFFIX)] not in bases]
        + [base + FAILED_SUFFIX for base in legacy if base not in bases]
    )
    for name in orphans:
        logger.warning(f"Orphaned marker {name} has no snapshot")

    snapshots: list[Snapshot] = []

    def classify(name: str, status: SnapshotStatus) -> None:
        snapshot_id = SnapshotId(name)
        snapshots.append(Snapshot(snapshot_id, compute_age(snapshot_id, now), status))

    pending: str | None = None
    for name in entries:
        if name.endswith(OK_SUFFIX):
            if pending is not None and pending == name[: -len(OK_SUFFIX)]:
                classify(pending, SnapshotStatus.SUCCESS)
            elif pending is not None:
                classify(pending, SnapshotStatus.FAILURE)
            pending = None
        else:
            if pending is not None:
                classify(pending, SnapshotStatus.FAILURE)
            pending = name
    if pending is not None:
        classify(pending, SnapshotStatus.FAILURE)

    return Inventory(
        snapshots=tuple(snapshots),
        legacy_markers=frozenset(legacy & bases),
        orphan_markers=tuple(orphans),
    )
