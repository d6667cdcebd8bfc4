"""Value types shared by the allocation ledger.

Everything here is immutable. Occupancy is carried as a Decimal fraction so
that bucket arithmetic and threshold comparisons are exact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum

ZERO = Decimal(0)
ONE = Decimal(1)


class ContractRegime(StrEnum):
    """Employment regime of a staffed person."""

    FULL_TIME = "full_time"
    PART_TIME = "part_time"


class LifecycleState(StrEnum):
    """Lifecycle state of the project owning a work item."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Bucket(StrEnum):
    """Partition of recorded occupancy a value counts towards."""

    APPROVED = "approved"
    PENDING = "pending"


_PENDING_STATES = frozenset({LifecycleState.DRAFT, LifecycleState.SUBMITTED})


def bucket_for(state: LifecycleState) -> Bucket:
    """Return the bucket that values of a project in ``state`` are added to.

    DRAFT and SUBMITTED projects only ever contribute pending occupancy;
    APPROVED, IN_PROGRESS and COMPLETED projects contribute approved occupancy.
    """
    if state in _PENDING_STATES:
        return Bucket.PENDING
    return Bucket.APPROVED


@dataclass(frozen=True)
class Person:
    """A person who can be staffed on work items."""

    id: str
    display_name: str
    regime: ContractRegime = ContractRegime.FULL_TIME


@dataclass(frozen=True, order=True)
class TimeSlot:
    """A (month, year) unit of allocation capacity, ordered chronologically."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {self.month}")

    @classmethod
    def of(cls, value: date) -> TimeSlot:
        return cls(year=value.year, month=value.month)

    def next(self) -> TimeSlot:
        if self.month == 12:
            return TimeSlot(year=self.year + 1, month=1)
        return TimeSlot(year=self.year, month=self.month + 1)

    @property
    def key(self) -> str:
        """Stable text key, e.g. ``"3-2025"``."""
        return f"{self.month}-{self.year}"

    def __str__(self) -> str:
        return f"{self.month:02d}/{self.year}"


def slot_window(start: date, end: date) -> list[TimeSlot]:
    """Build the inclusive, contiguous month window between two dates.

    Args:
        start: First day of the work item's period
        end: Last day of the work item's period

    Returns:
        Ordered list of TimeSlots covering every month touched by the period

    Raises:
        ValueError: If ``end`` precedes ``start``
    """
    if end < start:
        raise ValueError(f"Work item period ends ({end.isoformat()}) before it starts ({start.isoformat()})")

    first = TimeSlot.of(start)
    last = TimeSlot.of(end)
    window = [first]
    while window[-1] < last:
        window.append(window[-1].next())
    return window


@dataclass(frozen=True, order=True)
class OccupancyValue:
    """Canonical occupancy fraction, always within [0, 1].

    Only the normalizer should build these from raw input; the constructor
    enforces the range so that a bad value can never travel downstream.
    """

    fraction: Decimal = ZERO

    def __post_init__(self) -> None:
        if not isinstance(self.fraction, Decimal):
            raise TypeError(f"OccupancyValue requires a Decimal, got {type(self.fraction).__name__}")
        if not (ZERO <= self.fraction <= ONE):
            raise ValueError(f"OccupancyValue must be within [0, 1], got {self.fraction}")

    @classmethod
    def zero(cls) -> OccupancyValue:
        return cls(ZERO)

    @property
    def is_zero(self) -> bool:
        return self.fraction == ZERO

    @property
    def percentage(self) -> Decimal:
        return self.fraction * 100


@dataclass(frozen=True)
class BaselineTotals:
    """Already-recorded occupancy for one person in one slot.

    Either bucket may exceed 1 when the recorded data is already inconsistent.
    """

    approved: Decimal = ZERO
    pending: Decimal = ZERO

    def get(self, bucket: Bucket) -> Decimal:
        return self.approved if bucket is Bucket.APPROVED else self.pending


EMPTY_BASELINE = BaselineTotals()


@dataclass(frozen=True)
class BaselineAllocation:
    """Previously persisted values of the allocation being edited.

    Attributes:
        values: Slot to previously committed occupancy
        recorded_state: Lifecycle state the values were recorded under, when known
    """

    values: dict[TimeSlot, OccupancyValue] = field(default_factory=dict)
    recorded_state: LifecycleState | None = None


@dataclass(frozen=True)
class AllocationRecord:
    """An allocation as already recorded by the persistence layer."""

    person_id: str
    work_item_id: str
    slot: TimeSlot
    occupancy: Decimal
    lifecycle_state: LifecycleState


@dataclass(frozen=True)
class Allocation:
    """A normalized allocation ready to be handed to persistence."""

    person_id: str
    work_item_id: str
    slot: TimeSlot
    occupancy: OccupancyValue


@dataclass(frozen=True)
class ProjectedTotals:
    """Per-slot totals after folding the edit into the baseline."""

    slot: TimeSlot
    approved: Decimal
    pending: Decimal

    @property
    def combined(self) -> Decimal:
        return self.approved + self.pending
