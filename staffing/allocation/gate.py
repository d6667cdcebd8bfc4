"""Commit gate for staffing edits.

Decides whether an edit session may be persisted. Only the approved bucket
blocks: a slot whose projected approved occupancy reaches the
over-allocation threshold refuses the whole commit. Pending overcommitment
is reported through advisory findings and never blocks.

Commits are all-or-nothing; a refusal lists every offending slot.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from loguru import logger

from staffing.allocation.config import DEFAULT_CONFIG, LedgerConfig
from staffing.allocation.constraints import ConstraintStatus, classify
from staffing.allocation.errors import InvalidSessionStateError, OffendingSlot, OverAllocationError
from staffing.allocation.session import EditSession, SessionState
from staffing.allocation.types import Allocation, OccupancyValue, ProjectedTotals, TimeSlot


def offending_slots(projections: Sequence[ProjectedTotals], config: LedgerConfig | None = None) -> list[OffendingSlot]:
    """List every slot whose projected approved total is over-allocated."""
    if config is None:
        config = DEFAULT_CONFIG
    return [
        OffendingSlot(slot=p.slot, approved_percentage=p.approved * 100)
        for p in projections
        if classify(p.approved, config) is ConstraintStatus.OVER_ALLOCATED
    ]


def can_commit(projections: Sequence[ProjectedTotals], config: LedgerConfig | None = None) -> bool:
    """True iff no slot's projected approved total is over-allocated."""
    return not offending_slots(projections, config)


def build_allocations(
    person_id: str,
    work_item_id: str,
    slots: Sequence[TimeSlot],
    entered: Mapping[TimeSlot, OccupancyValue],
    *,
    keep_zero: bool,
) -> list[Allocation]:
    """Turn entered values into allocation records, one per slot in window order.

    Args:
        person_id: Staffed person
        work_item_id: Owning work item
        slots: Slot window
        entered: Derived values per slot (missing slots are zero)
        keep_zero: Keep zero-valued slots so persistence can delete them

    Returns:
        Allocation records
    """
    allocations = [
        Allocation(
            person_id=person_id,
            work_item_id=work_item_id,
            slot=slot,
            occupancy=entered.get(slot, OccupancyValue.zero()),
        )
        for slot in slots
    ]
    if keep_zero:
        return allocations
    return [a for a in allocations if not a.occupancy.is_zero]


def commit(session: EditSession) -> list[Allocation]:
    """Validate an edit session and hand back the allocations to persist.

    When the session edits an existing allocation every slot is returned,
    zero-valued ones included, so that persistence can remove slots the user
    cleared. New allocations only return non-zero slots. A successful commit
    closes the session.

    Args:
        session: Edit session to commit

    Returns:
        Normalized allocation records

    Raises:
        InvalidSessionStateError: If the session is closed, has no person,
            or is still waiting for its baseline
        OverAllocationError: If any slot's projected approved occupancy
            reaches the over-allocation threshold
    """
    if session.state is SessionState.CLOSED:
        raise InvalidSessionStateError("SESSION_CLOSED", f"Edit session for {session.work_item_id} is closed")
    if session.person is None:
        raise InvalidSessionStateError("NO_PERSON_SELECTED", "Select a person before committing")
    if session.state is not SessionState.READY:
        raise InvalidSessionStateError(
            "BASELINE_PENDING",
            f"Baseline for {session.person.id} has not been loaded yet",
        )

    log = logger.bind(work_item_id=session.work_item_id, person_id=session.person.id)
    offending = offending_slots(session.projections, session.config)
    if offending:
        log.warning(f"[COMMIT_GATE] Refused commit offending={[str(o.slot) for o in offending]}")
        raise OverAllocationError(offending)

    allocations = build_allocations(
        person_id=session.person.id,
        work_item_id=session.work_item_id,
        slots=session.slots,
        entered=session.entered,
        keep_zero=session.is_editing,
    )
    session.close()

    log.info(
        f"[COMMIT_GATE] Committed allocations={len(allocations)} editing={session.is_editing} degraded_baseline={session.baseline_degraded}"
    )
    return allocations
