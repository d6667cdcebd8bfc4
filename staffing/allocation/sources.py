"""Capacity sources: where baseline occupancy totals come from.

A capacity source reports, per person and slot, how much occupancy is already
recorded in the approved and pending buckets. Sources report everything they
know about, including the allocation currently being edited; the edit
session removes that allocation's original values itself.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from decimal import Decimal
from typing import Protocol

from loguru import logger

from staffing.allocation.normalizer import coerce_stored
from staffing.allocation.types import (
    ZERO,
    AllocationRecord,
    BaselineTotals,
    Bucket,
    LifecycleState,
    TimeSlot,
    bucket_for,
)

BaselineMap = dict[TimeSlot, BaselineTotals]


class CapacitySource(Protocol):
    """Asynchronous supplier of baseline totals."""

    async def fetch_baseline(self, person_id: str, slots: Sequence[TimeSlot]) -> BaselineMap:
        """Return approved/pending totals for every requested slot.

        Raises:
            BaselineUnavailableError: When the totals cannot be obtained
        """
        ...


def aggregate_baseline(
    rows: Iterable[tuple[TimeSlot, object, LifecycleState]],
    slots: Sequence[TimeSlot],
) -> BaselineMap:
    """Sum recorded occupancy per slot into approved and pending buckets.

    Args:
        rows: (slot, stored occupancy, lifecycle state of the owning project)
        slots: Slots to report; each one appears in the result, zero if unrecorded

    Returns:
        Mapping of slot to BaselineTotals
    """
    wanted = set(slots)
    approved: dict[TimeSlot, Decimal] = defaultdict(lambda: ZERO)
    pending: dict[TimeSlot, Decimal] = defaultdict(lambda: ZERO)

    for slot, occupancy, state in rows:
        if slot not in wanted:
            continue
        fraction = coerce_stored(occupancy).fraction
        if bucket_for(state) is Bucket.APPROVED:
            approved[slot] += fraction
        else:
            pending[slot] += fraction

    return {slot: BaselineTotals(approved=approved[slot], pending=pending[slot]) for slot in slots}


class InMemoryCapacitySource:
    """Capacity source backed by a list of already-recorded allocations."""

    def __init__(self, records: Iterable[AllocationRecord] = ()):
        self._records: list[AllocationRecord] = list(records)

    def add(self, record: AllocationRecord) -> None:
        self._records.append(record)

    async def fetch_baseline(self, person_id: str, slots: Sequence[TimeSlot]) -> BaselineMap:
        rows = ((r.slot, r.occupancy, r.lifecycle_state) for r in self._records if r.person_id == person_id)
        baseline = aggregate_baseline(rows, slots)
        logger.debug(f"[CAPACITY_SOURCE] In-memory baseline person_id={person_id} slots={len(slots)}")
        return baseline
