"""
Snapshot retention for dailybak.

Classifies the snapshots found on the backup server and enforces a tiered
retention schedule on them.

Usage:
    from dailybak.retention import Period, RetentionEngine

    engine = RetentionEngine(transport, "backups/myhost", [Period(7, 2), Period(24, 1)])
    plan = engine.plan()
    result = engine.run(dry_run=False)
"""

from dailybak.retention.engine import RetentionEngine, RetentionResult
from dailybak.retention.inventory import (
    Inventory,
    Snapshot,
    SnapshotId,
    SnapshotStatus,
    build_inventory,
)
from dailybak.retention.policy import (
    Period,
    PeriodRange,
    PeriodTrace,
    RetentionPlan,
    RetentionState,
    derive_ranges,
    evaluate,
    evaluate_period,
)
from dailybak.retention.purge import PurgeJob, PurgeResult

__all__ = [
    "Inventory",
    "Snapshot",
    "SnapshotId",
    "SnapshotStatus",
    "build_inventory",
    "Period",
    "PeriodRange",
    "PeriodTrace",
    "RetentionPlan",
    "RetentionState",
    "derive_ranges",
    "evaluate",
    "evaluate_period",
    "PurgeJob",
    "PurgeResult",
    "RetentionEngine",
    "RetentionResult",
]
