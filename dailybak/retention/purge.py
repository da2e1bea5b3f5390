"""
Purge execution for retention plans.

Applies the evaluator's decisions through the transport, or only reports
them in dry-run mode. This is the only part of the retention code that
modifies the remote store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from dailybak.exceptions import TransportError
from dailybak.retention.inventory import Inventory, Snapshot
from dailybak.retention.policy import RetentionPlan
from dailybak.transport.base import Transport


@dataclass
class PurgeResult:
    """
    Result of a purge operation.

    Attributes:
        dry_run: Whether this was a dry run
        planned: Remote entry names selected for removal
        removed: Entry names actually removed
        errors: One dict per failed removal (``name``, ``error``, ``status``)
    """

    dry_run: bool
    planned: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if every removal succeeded."""
        return len(self.errors) == 0

    @property
    def status(self) -> int:
        """Worst transport status observed, 0 if none failed."""
        return max((e["status"] for e in self.errors), default=0)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "dry_run": self.dry_run,
            "planned": self.planned,
            "removed": self.removed,
            "errors": self.errors,
            "status": self.status,
        }


def purge_targets(snapshot: Snapshot, legacy_markers: frozenset[str] = frozenset()) -> list[str]:
    """
    Remote entries to delete for one snapshot.

    The data directory goes first so that a failure to remove it leaves the
    markers, and thus the snapshot's status, intact.
    """
    targets = [str(snapshot.id)]
    if snapshot.is_success:
        targets.append(snapshot.id.ok_marker)
    if str(snapshot.id) in legacy_markers:
        targets.append(snapshot.id.failed_marker)
    return targets


class PurgeJob:
    """
    Remove purge-eligible snapshots of one host.

    Failures are recorded per entry and do not stop the remaining removals.
    """

    def __init__(
        self,
        transport: Transport,
        host_dir: str,
        dry_run: bool = True,
    ):
        """
        Initialize the purge job.

        Args:
            transport: Transport to the backup store
            host_dir: Remote directory holding the host's snapshots
            dry_run: If True, only report what would be removed
        """
        self._transport = transport
        self._host_dir = host_dir.rstrip("/")
        self._dry_run = dry_run

    def run(self, plan: RetentionPlan, inventory: Inventory | None = None) -> PurgeResult:
        """
        Apply a retention plan.

        Args:
            plan: Evaluated plan; its purge list is processed oldest first
            inventory: Inventory the plan came from, used for legacy and
                orphaned markers

        Returns:
            PurgeResult with planned, removed and failed entries
        """
        legacy = inventory.legacy_markers if inventory is not None else frozenset()
        result = PurgeResult(dry_run=self._dry_run)

        for snapshot in plan.purge:
            if snapshot.age_days < 1:
                # Today's snapshots are never part of a period
                logger.warning(f"Skipping {snapshot.id}: age {snapshot.age_days} is not purgeable")
                continue

            targets = purge_targets(snapshot, legacy)
            result.planned.extend(targets)
            if self._dry_run:
                logger.info(
                    f"Would remove {self._host_dir}/{snapshot.id} "
                    f"({snapshot.status.value}, age {snapshot.age_days}d) [dry-run]"
                )
                continue

            for name in targets:
                try:
                    self._transport.replace_empty(f"{self._host_dir}/{name}")
                except TransportError as e:
                    logger.error(f"Failed to remove {self._host_dir}/{name}: {e}")
                    result.errors.append({"name": name, "error": str(e), "status": e.returncode})
                    break
                result.removed.append(name)
                logger.info(f"Removed {self._host_dir}/{name} (age {snapshot.age_days}d)")

        # Markers left behind by an earlier partial purge
        orphans = inventory.orphan_markers if inventory is not None else ()
        for name in orphans:
            result.planned.append(name)
            if self._dry_run:
                logger.info(f"Would remove orphaned marker {self._host_dir}/{name} [dry-run]")
                continue
            try:
                self._transport.replace_empty(f"{self._host_dir}/{name}")
            except TransportError as e:
                logger.error(f"Failed to remove {self._host_dir}/{name}: {e}")
                result.errors.append({"name": name, "error": str(e), "status": e.returncode})
                continue
            result.removed.append(name)
            logger.info(f"Removed orphaned marker {self._host_dir}/{name}")

        logger.info(
            f"Purge complete (dry_run={self._dry_run}): planned={len(result.planned)}, "
            f"removed={len(result.removed)}, errors={len(result.errors)}"
        )
        return result
