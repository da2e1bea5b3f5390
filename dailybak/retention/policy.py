"""
Tiered retention policy evaluation for dated snapshots.

A schedule is a list of periods, nearest to today first, each keeping a
number of snapshots over a span of days (e.g. ``7:2, 24:1, 60:1``). Periods
are laid end to end starting at day 1; an implicit terminal period with a
quota of zero covers everything older. Today's snapshots (age 0) belong to
no period.

Periods are evaluated from the most recent to the oldest. Each one reports a
RetentionState to the next: when a period ended short of its quota, the next
older period keeps one extra snapshot (a "promotion") instead of purging it,
so that a missed run does not silently widen the gap in coverage.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Sequence

from dailybak.exceptions import ConfigError
from dailybak.retention.inventory import Snapshot


class RetentionState(IntEnum):
    """Summary of one period's outcome, consumed by the next older period."""

    EMPTY = 0
    FAILURE_ONLY = 1
    HAS_SUCCESS = 2
    FULL = 3


@dataclass(frozen=True)
class Period:
    """
    One configured retention period.

    Attributes:
        span_days: Number of days covered by the period
        keep_count: Number of snapshots to keep within it
    """

    span_days: int
    keep_count: int

    def __post_init__(self) -> None:
        if self.span_days < 1:
            raise ConfigError(f"Period span must be at least 1 day, got {self.span_days}")
        if self.keep_count < 0:
            raise ConfigError(f"Period keep count cannot be negative, got {self.keep_count}")

    def __str__(self) -> str:
        return f"{self.span_days}:{self.keep_count}"


@dataclass(frozen=True)
class PeriodRange:
    """
    Absolute age range covered by a period, bounds inclusive.

    ``to_day`` is None for the terminal range, which has no upper bound.
    """

    from_day: int
    to_day: int | None
    keep_count: int

    @property
    def is_terminal(self) -> bool:
        return self.to_day is None

    def contains(self, age_days: int) -> bool:
        """Check whether a snapshot of the given age falls in this range."""
        if age_days < self.from_day:
            return False
        return self.to_day is None or age_days <= self.to_day

    def __str__(self) -> str:
        upper = "inf" if self.to_day is None else str(self.to_day)
        return f"[{self.from_day}..{upper}] keep {self.keep_count}"


def derive_ranges(periods: Sequence[Period]) -> list[PeriodRange]:
    """
    Lay periods end to end and append the terminal range.

    Args:
        periods: Configured periods, nearest to today first

    Returns:
        Ranges partitioning [1, inf) in increasing order
    """
    ranges = []
    start = 1
    for period in periods:
        end = start + period.span_days - 1
        ranges.append(PeriodRange(from_day=start, to_day=end, keep_count=period.keep_count))
        start = end + 1
    ranges.append(PeriodRange(from_day=start, to_day=None, keep_count=0))
    return ranges


def initial_state(snapshots: Iterable[Snapshot]) -> RetentionState:
    """State seeded by today's snapshots, before the first period."""
    state = RetentionState.EMPTY
    for snapshot in snapshots:
        if snapshot.age_days != 0:
            continue
        if snapshot.is_success:
            return RetentionState.HAS_SUCCESS
        state = RetentionState.FAILURE_ONLY
    return state


@dataclass(frozen=True)
class PeriodTrace:
    """
    Outcome of evaluating one period.

    Attributes:
        range: Age range that was evaluated
        prior_state: State received from the more recent period
        next_state: State handed to the next older period
        good: Successful snapshots found in range
        bad: Failed snapshots found in range
        purged: Snapshots selected for deletion, most recent first
        promoted: Snapshot kept to make up for the previous period, if any
    """

    range: PeriodRange
    prior_state: RetentionState
    next_state: RetentionState
    good: int
    bad: int
    purged: tuple[Snapshot, ...]
    promoted: Snapshot | None = None

    @property
    def kept(self) -> int:
        return self.good + self.bad - len(self.purged)


def evaluate_period(
    period_range: PeriodRange,
    snapshots: Iterable[Snapshot],
    prior_state: RetentionState,
) -> PeriodTrace:
    """
    Decide which snapshots of one period are purge-eligible.

    Excess successes are dropped most recent first, then excess failures.
    The first excess snapshot is kept instead of purged when the previous
    period did not reach the matching state (FULL for successes,
    FAILURE_ONLY for failures); at most one snapshot per period is promoted
    this way.

    Args:
        period_range: Range being evaluated
        snapshots: Candidate snapshots; those outside the range are ignored
        prior_state: State returned by the more recent period

    Returns:
        PeriodTrace with the purge selection and the state for the next period
    """
    in_range = [s for s in snapshots if period_range.contains(s.age_days)]
    successes = sorted((s for s in in_range if s.is_success), key=lambda s: s.id, reverse=True)
    failures = sorted((s for s in in_range if not s.is_success), key=lambda s: s.id, reverse=True)
    good, bad = len(successes), len(failures)
    keep = period_range.keep_count

    state = prior_state
    purged: list[Snapshot] = []
    promoted: Snapshot | None = None

    remaining_good = good
    for candidate in successes:
        if remaining_good <= keep:
            break
        if state == RetentionState.FULL:
            purged.append(candidate)
        else:
            promoted = candidate
            state = RetentionState.FULL
        remaining_good -= 1

    remaining_bad = bad
    for candidate in failures:
        if remaining_good + remaining_bad <= keep:
            break
        if state >= RetentionState.FAILURE_ONLY:
            purged.append(candidate)
        else:
            promoted = candidate
            state = RetentionState.FAILURE_ONLY
        remaining_bad -= 1

    # A promoted snapshot stands in for the previous period, so this period
    # needs one more than its quota to count as complete.
    needed = keep + (1 if promoted is not None else 0)
    if good and good >= needed:
        next_state = RetentionState.FULL
    elif good:
        next_state = RetentionState.HAS_SUCCESS
    elif bad and bad >= needed:
        next_state = RetentionState.FAILURE_ONLY
    else:
        next_state = RetentionState.EMPTY

    return PeriodTrace(
        range=period_range,
        prior_state=prior_state,
        next_state=next_state,
        good=good,
        bad=bad,
        purged=tuple(purged),
        promoted=promoted,
    )


@dataclass(frozen=True)
class RetentionPlan:
    """
    Result of evaluating a whole schedule against an inventory.

    Attributes:
        initial_state: State seeded by today's snapshots
        traces: One trace per range, nearest first, terminal range last
        purge: Purge-eligible snapshots, oldest first
        keep: Snapshots left untouched, oldest first
    """

    initial_state: RetentionState
    traces: tuple[PeriodTrace, ...]
    purge: tuple[Snapshot, ...]
    keep: tuple[Snapshot, ...]


def evaluate(periods: Sequence[Period], snapshots: Iterable[Snapshot]) -> RetentionPlan:
    """
    Evaluate a retention schedule.

    Each snapshot is assigned to exactly one range by age, then ranges are
    evaluated in order with the state of each feeding the next. The result
    depends only on the arguments.

    Args:
        periods: Configured periods, nearest to today first
        snapshots: Inventory to evaluate

    Returns:
        RetentionPlan with the purge-eligible snapshots and per-period traces
    """
    snapshots = sorted(snapshots, key=lambda s: s.id)
    ranges = derive_ranges(periods)
    starts = [r.from_day for r in ranges]

    buckets: list[list[Snapshot]] = [[] for _ in ranges]
    for snapshot in snapshots:
        if snapshot.age_days < 1:
            continue
        buckets[bisect_right(starts, snapshot.age_days) - 1].append(snapshot)

    seed = initial_state(snapshots)
    state = seed
    traces = []
    for period_range, bucket in zip(ranges, buckets):
        trace = evaluate_period(period_range, bucket, state)
        traces.append(trace)
        state = trace.next_state

    purged = {s.id for trace in traces for s in trace.purged}
    return RetentionPlan(
        initial_state=seed,
        traces=tuple(traces),
        purge=tuple(s for s in snapshots if s.id in purged),
        keep=tuple(s for s in snapshots if s.id not in purged),
    )
