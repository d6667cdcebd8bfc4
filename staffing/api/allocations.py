"""Allocation preview and commit-check endpoints.

Thin HTTP layer over the ledger: builds an edit session from the request,
loads the person's baseline from the capacity source and reports the
projection. Nothing is written here; the caller persists committed
allocations.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from staffing.allocation import gate
from staffing.allocation.config import LedgerConfig
from staffing.allocation.errors import InvalidSessionStateError, OverAllocationError
from staffing.allocation.normalizer import coerce_stored, format_occupancy
from staffing.allocation.session import EditSession
from staffing.allocation.sources import CapacitySource
from staffing.allocation.sql_source import SqlCapacitySource
from staffing.allocation.types import BaselineAllocation, Person, TimeSlot, slot_window
from staffing.api.schemas import (
    AllocationOut,
    CommitCheckResponse,
    FindingOut,
    PreviewResponse,
    SlotProjectionOut,
    StaffingRequest,
)
from staffing.config.settings import settings
from staffing.db.session import get_session_factory

router = APIRouter(prefix="/allocations", tags=["allocations"])


def get_capacity_source() -> CapacitySource:
    """FastAPI dependency providing the capacity source."""
    return SqlCapacitySource(get_session_factory())


def get_ledger_config() -> LedgerConfig:
    """FastAPI dependency providing ledger thresholds."""
    return LedgerConfig.from_settings()


async def _build_session(request: StaffingRequest, source: CapacitySource, config: LedgerConfig) -> EditSession:
    try:
        slots = slot_window(request.starts_on, request.ends_on)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    person = Person(id=request.person_id, display_name=request.person_name or request.person_id)
    baseline_allocation = None
    if request.baseline_allocation is not None:
        baseline_allocation = BaselineAllocation(
            values={TimeSlot(year=v.year, month=v.month): coerce_stored(v.occupancy) for v in request.baseline_allocation},
            recorded_state=request.recorded_state,
        )

    session = EditSession(
        work_item_id=request.work_item_id,
        slots=slots,
        lifecycle_state=request.lifecycle_state,
        source=source,
        baseline_allocation=baseline_allocation,
        editing_person=person if baseline_allocation is not None else None,
        config=config,
        fetch_timeout=settings.baseline_fetch_timeout_seconds,
        separator=settings.occupancy_decimal_separator,
    )
    await session.select_person(person)

    if request.fill_all is not None:
        session.fill_all(request.fill_all)
    for value in request.values:
        session.set_slot_value(TimeSlot(year=value.year, month=value.month), value.raw)
    return session


@router.post("/preview", response_model=PreviewResponse)
async def preview_allocation(
    request: StaffingRequest,
    source: CapacitySource = Depends(get_capacity_source),
    config: LedgerConfig = Depends(get_ledger_config),
) -> PreviewResponse:
    """Project a person's monthly occupancy with the edit folded in."""
    session = await _build_session(request, source, config)
    statuses = session.statuses()
    findings = session.findings
    degraded_slots = session.degraded_slots

    slots = []
    for projection in session.projections:
        slot = projection.slot
        slots.append(
            SlotProjectionOut(
                month=slot.month,
                year=slot.year,
                raw=session.raw_value(slot),
                occupancy=format_occupancy(session.value(slot), session.separator),
                degraded=slot in degraded_slots,
                approved=projection.approved,
                pending=projection.pending,
                status=statuses[slot],
                findings=[
                    FindingOut(
                        bucket=f.bucket,
                        status=f.status,
                        severity=f.severity,
                        percentage=f.percentage,
                        message=f.message,
                    )
                    for f in findings
                    if f.slot == slot
                ],
            )
        )

    can_commit = gate.can_commit(session.projections, config)
    logger.info(
        f"[ALLOCATIONS_API] Preview work_item_id={request.work_item_id} person_id={request.person_id} "
        f"slots={len(slots)} can_commit={can_commit}"
    )
    session.cancel()
    return PreviewResponse(
        work_item_id=request.work_item_id,
        person_id=request.person_id,
        can_commit=can_commit,
        baseline_degraded=session.baseline_degraded,
        slots=slots,
    )


@router.post("/commit-check", response_model=CommitCheckResponse)
async def commit_check(
    request: StaffingRequest,
    source: CapacitySource = Depends(get_capacity_source),
    config: LedgerConfig = Depends(get_ledger_config),
) -> CommitCheckResponse:
    """Validate an edit and return the normalized allocations to persist.

    Responds 409 with every offending month when the approved bucket would be
    over-allocated.
    """
    session = await _build_session(request, source, config)
    try:
        allocations = gate.commit(session)
    except OverAllocationError as e:
        raise HTTPException(
            status_code=409,
            detail={
                "code": e.code,
                "offending": [
                    {"month": o.slot.month, "year": o.slot.year, "approved_percentage": float(o.approved_percentage)}
                    for o in e.offending
                ],
            },
        ) from e
    except InvalidSessionStateError as e:
        raise HTTPException(status_code=409, detail={"code": e.code, "message": str(e)}) from e

    return CommitCheckResponse(
        work_item_id=request.work_item_id,
        person_id=request.person_id,
        baseline_degraded=session.baseline_degraded,
        allocations=[
            AllocationOut(
                person_id=a.person_id,
                work_item_id=a.work_item_id,
                month=a.slot.month,
                year=a.slot.year,
                occupancy=a.occupancy.fraction,
            )
            for a in allocations
        ],
    )
