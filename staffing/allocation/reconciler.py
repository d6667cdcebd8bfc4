"""Capacity ledger reconciliation engine.

Deterministic projection of a person's per-month occupancy that combines:
- Baseline totals already recorded by a capacity source
- The original values of the allocation being edited (removed from the baseline)
- The values currently entered in the edit session

and produces approved/pending projected totals per slot.

This logic is the source of truth for:
- Over-allocation checks before a commit
- Live preview of an edit before it is saved
- Threshold-crossing advisories

Pure and synchronous. No I/O, no shared state between calls.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from loguru import logger

from staffing.allocation.config import DEFAULT_CONFIG, LedgerConfig, SubtractionPolicy
from staffing.allocation.types import (
    EMPTY_BASELINE,
    ZERO,
    BaselineAllocation,
    BaselineTotals,
    Bucket,
    LifecycleState,
    OccupancyValue,
    ProjectedTotals,
    TimeSlot,
    bucket_for,
)


class CrossingDirection(StrEnum):
    """Direction of a projected approved total across the over-allocation threshold."""

    INTO_OVER_ALLOCATION = "into_over_allocation"
    OUT_OF_OVER_ALLOCATION = "out_of_over_allocation"


@dataclass(frozen=True)
class ThresholdCrossing:
    """One-shot event raised when a single edit moves a slot across the limit."""

    slot: TimeSlot
    direction: CrossingDirection
    previous_approved: Decimal
    approved: Decimal


@dataclass(frozen=True)
class ReconciliationInput:
    """Everything a projection depends on.

    Attributes:
        slots: Ordered slot window of the work item
        lifecycle_state: Current lifecycle state of the owning project
        baseline: Capacity source totals per slot (missing slots count as zero)
        entered: Derived values from the edit session (missing slots count as zero)
        baseline_allocation: Original values when editing an existing allocation
    """

    slots: Sequence[TimeSlot]
    lifecycle_state: LifecycleState
    baseline: Mapping[TimeSlot, BaselineTotals]
    entered: Mapping[TimeSlot, OccupancyValue]
    baseline_allocation: BaselineAllocation | None = None


def subtraction_bucket(
    lifecycle_state: LifecycleState,
    baseline_allocation: BaselineAllocation | None,
    config: LedgerConfig,
) -> Bucket:
    """Bucket the edited allocation's original values are removed from.

    Args:
        lifecycle_state: Current lifecycle state of the owning project
        baseline_allocation: Original allocation, if editing
        config: Ledger configuration carrying the subtraction policy

    Returns:
        The current state's bucket, unless the policy asks for the recorded
        state and the baseline allocation knows it
    """
    if (
        config.subtraction_policy is SubtractionPolicy.RECORDED_STATE
        and baseline_allocation is not None
        and baseline_allocation.recorded_state is not None
    ):
        return bucket_for(baseline_allocation.recorded_state)
    return bucket_for(lifecycle_state)


def reconcile(data: ReconciliationInput, config: LedgerConfig | None = None) -> list[ProjectedTotals]:
    """Project approved and pending totals for every slot in the window.

    For each slot:
    1. Start from the baseline totals (zero when unavailable)
    2. Remove the edited allocation's original value from its bucket, floored at 0
    3. Add the entered value to the bucket targeted by the current lifecycle state
    4. Floor both totals at 0

    Args:
        data: Reconciliation inputs
        config: Optional configuration (uses defaults if None)

    Returns:
        Projected totals in window order
    """
    if config is None:
        config = DEFAULT_CONFIG

    target = bucket_for(data.lifecycle_state)
    removal = subtraction_bucket(data.lifecycle_state, data.baseline_allocation, config)
    originals = data.baseline_allocation.values if data.baseline_allocation is not None else {}

    projections: list[ProjectedTotals] = []
    for slot in data.slots:
        baseline = data.baseline.get(slot, EMPTY_BASELINE)
        approved = baseline.approved
        pending = baseline.pending

        original = originals.get(slot)
        if original is not None:
            if removal is Bucket.APPROVED:
                approved = max(ZERO, approved - original.fraction)
            else:
                pending = max(ZERO, pending - original.fraction)

        entered = data.entered.get(slot)
        if entered is not None:
            if target is Bucket.APPROVED:
                approved += entered.fraction
            else:
                pending += entered.fraction

        projection = ProjectedTotals(slot=slot, approved=max(ZERO, approved), pending=max(ZERO, pending))
        projections.append(projection)

        logger.debug(
            f"[LEDGER] slot={slot} baseline=({baseline.approved}, {baseline.pending}) "
            f"original={original.fraction if original else None} entered={entered.fraction if entered else None} "
            f"target={target.value} projected=({projection.approved}, {projection.pending})"
        )

    return projections


def detect_crossings(
    previous: Sequence[ProjectedTotals],
    current: Sequence[ProjectedTotals],
    config: LedgerConfig | None = None,
) -> list[ThresholdCrossing]:
    """Find slots whose approved total crossed the over-allocation threshold.

    Slots absent from ``previous`` are not reported: there is nothing to cross from.
    """
    if config is None:
        config = DEFAULT_CONFIG

    limit = config.over_allocation_threshold
    before = {p.slot: p.approved for p in previous}
    crossings: list[ThresholdCrossing] = []
    for projection in current:
        if projection.slot not in before:
            continue
        was_over = before[projection.slot] >= limit
        is_over = projection.approved >= limit
        if was_over == is_over:
            continue
        direction = CrossingDirection.INTO_OVER_ALLOCATION if is_over else CrossingDirection.OUT_OF_OVER_ALLOCATION
        crossings.append(
            ThresholdCrossing(
                slot=projection.slot,
                direction=direction,
                previous_approved=before[projection.slot],
                approved=projection.approved,
            )
        )
    return crossings


class LedgerReconciler:
    """Stateful wrapper that remembers the last projection to report crossings.

    ``update`` recomputes the full projection from scratch every time; the
    only retained state is the previous projection and the pending crossing
    events, which ``drain_crossings`` hands out exactly once.
    """

    def __init__(self, config: LedgerConfig | None = None):
        self.config = config or DEFAULT_CONFIG
        self._projections: list[ProjectedTotals] = []
        self._crossings: list[ThresholdCrossing] = []

    @property
    def projections(self) -> list[ProjectedTotals]:
        return list(self._projections)

    def update(self, data: ReconciliationInput, *, track_crossings: bool = True) -> list[ProjectedTotals]:
        """Recompute projections and queue any threshold crossings.

        Args:
            data: Reconciliation inputs
            track_crossings: When False, the new projection becomes the
                reference point without raising events (e.g. after a
                baseline reload rather than a user edit)

        Returns:
            The new projections
        """
        projections = reconcile(data, self.config)
        if track_crossings:
            crossings = detect_crossings(self._projections, projections, self.config)
            for crossing in crossings:
                logger.info(
                    f"[LEDGER] Threshold crossing slot={crossing.slot} "
                    f"direction={crossing.direction.value} approved={crossing.approved}"
                )
            self._crossings.extend(crossings)
        self._projections = projections
        return list(projections)

    def drain_crossings(self) -> list[ThresholdCrossing]:
        """Return and forget the crossing events raised since the last drain."""
        crossings, self._crossings = self._crossings, []
        return crossings

    def clear(self) -> None:
        self._projections = []
        self._crossings = []
