"""
Retention run for one host: list, classify, evaluate, purge.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from loguru import logger

from dailybak.retention.inventory import Inventory, build_inventory
from dailybak.retention.policy import Period, RetentionPlan, evaluate
from dailybak.retention.purge import PurgeJob, PurgeResult
from dailybak.transport.base import Transport


@dataclass
class RetentionResult:
    """Everything a retention run looked at and did."""

    inventory: Inventory
    plan: RetentionPlan
    purge: PurgeResult

    @property
    def status(self) -> int:
        return self.purge.status


class RetentionEngine:
    """
    Engine applying a retention schedule to a host's snapshots.

    The remote listing is fetched once per call; a listing failure raises
    TransportError before anything is evaluated or removed.
    """

    def __init__(
        self,
        transport: Transport,
        host_dir: str,
        periods: Sequence[Period],
    ):
        """
        Initialize the retention engine.

        Args:
            transport: Transport to the backup store
            host_dir: Remote directory holding the host's snapshots
                (``<backup-module>/<host>``)
            periods: Retention periods, nearest to today first
        """
        self._transport = transport
        self._host_dir = host_dir.rstrip("/")
        self._periods = list(periods)
        logger.debug(
            f"Retention engine for {self._host_dir} with periods "
            f"{', '.join(str(p) for p in self._periods) or '(none)'}"
        )

    def inventory(self, now: datetime | None = None) -> Inventory:
        """
        Fetch and classify the host's snapshots.

        Raises:
            TransportError: If the listing cannot be obtained
        """
        names = self._transport.list(self._host_dir)
        inventory = build_inventory(names, now)
        logger.info(
            f"Found {len(inventory)} snapshots in {self._host_dir} "
            f"({len(inventory.successes)} ok, {len(inventory.failures)} failed)"
        )
        return inventory

    def plan(
        self,
        now: datetime | None = None,
        inventory: Inventory | None = None,
    ) -> RetentionPlan:
        """
        Evaluate the schedule against the current inventory.

        Args:
            now: Reference time for snapshot ages
            inventory: Already fetched inventory, to avoid listing again

        Returns:
            RetentionPlan for the host
        """
        inventory = inventory if inventory is not None else self.inventory(now)
        plan = evaluate(self._periods, inventory.snapshots)

        logger.info(f"Initial state from today's snapshots: {plan.initial_state.name}")
        for trace in plan.traces:
            promoted = f", promoted {trace.promoted.id}" if trace.promoted else ""
            logger.info(
                f"Period {trace.range}: {trace.good} ok, {trace.bad} failed, "
                f"purge {len(trace.purged)}{promoted} "
                f"({trace.prior_state.name} -> {trace.next_state.name})"
            )
        return plan

    def run(self, dry_run: bool = True, now: datetime | None = None) -> RetentionResult:
        """
        Evaluate and apply the schedule.

        Args:
            dry_run: If True, only report what would be removed
            now: Reference time for snapshot ages

        Returns:
            RetentionResult with the inventory, plan and purge outcome
        """
        logger.info(f"Running retention on {self._host_dir} (dry_run={dry_run})")
        inventory = self.inventory(now)
        plan = self.plan(now, inventory=inventory)
        purge = PurgeJob(self._transport, self._host_dir, dry_run=dry_run).run(plan, inventory)
        return RetentionResult(inventory=inventory, plan=plan, purge=purge)
