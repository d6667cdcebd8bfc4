"""Edit session for staffing one person on one work item.

Lifecycle:
    NEW -> (person selected) -> POPULATING (baseline fetch in flight)
        -> READY (editable) -> CLOSED (commit or cancel)

A failed baseline fetch still moves the session to READY with a zero baseline
and ``baseline_degraded`` set, so editing is never blocked by the source.

Baselines are cached per generation. Every person selection starts a new
generation; a fetch result tagged with an older generation is dropped on
arrival, so the session always reflects the most recently selected person
whatever order the responses come back in.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from enum import StrEnum

from loguru import logger

from staffing.allocation.config import DEFAULT_CONFIG, LedgerConfig
from staffing.allocation.constraints import ConstraintFinding, ConstraintStatus, check, classify
from staffing.allocation.errors import InvalidSessionStateError
from staffing.allocation.normalizer import format_occupancy, normalize
from staffing.allocation.reconciler import LedgerReconciler, ReconciliationInput, ThresholdCrossing
from staffing.allocation.sources import BaselineMap, CapacitySource
from staffing.allocation.types import (
    BaselineAllocation,
    LifecycleState,
    OccupancyValue,
    Person,
    ProjectedTotals,
    TimeSlot,
)


class SessionState(StrEnum):
    """Edit session lifecycle state."""

    NEW = "new"
    POPULATING = "populating"
    READY = "ready"
    CLOSED = "closed"


def fill_window(
    slots: Sequence[TimeSlot],
    value: OccupancyValue,
    separator: str = ",",
) -> tuple[dict[TimeSlot, str], dict[TimeSlot, OccupancyValue]]:
    """Build raw and derived maps holding the same value for every slot.

    Args:
        slots: Slot window to fill
        value: Occupancy to apply
        separator: Decimal separator for the raw display text

    Returns:
        (raw text map, derived value map), both covering every slot
    """
    text = format_occupancy(value, separator)
    return {slot: text for slot in slots}, {slot: value for slot in slots}


class EditSession:
    """In-progress staffing edit for a single work item.

    Owned by a single caller and never mutated concurrently; the only
    suspending operation is the baseline fetch inside ``select_person``.
    Projections are recomputed eagerly after every mutation.
    """

    def __init__(
        self,
        work_item_id: str,
        slots: Sequence[TimeSlot],
        lifecycle_state: LifecycleState,
        source: CapacitySource,
        *,
        baseline_allocation: BaselineAllocation | None = None,
        editing_person: Person | None = None,
        config: LedgerConfig | None = None,
        fetch_timeout: float | None = None,
        separator: str = ",",
    ):
        if baseline_allocation is not None and editing_person is None:
            raise ValueError("Editing an existing allocation requires the person it belongs to")

        self.work_item_id = work_item_id
        self.slots: tuple[TimeSlot, ...] = tuple(sorted(set(slots)))
        self.lifecycle_state = lifecycle_state
        self.baseline_allocation = baseline_allocation
        self.config = config or DEFAULT_CONFIG
        self.separator = separator
        self._source = source
        self._fetch_timeout = fetch_timeout
        self._locked_person = editing_person
        self._reconciler = LedgerReconciler(self.config)
        self._log = logger.bind(work_item_id=work_item_id, person_id="-")

        self.state = SessionState.NEW
        self.person: Person | None = None
        self.baseline_degraded = False
        self._generation = 0
        self._baselines: dict[int, BaselineMap] = {}
        self._raw: dict[TimeSlot, str] = {}
        self._derived: dict[TimeSlot, OccupancyValue] = {}
        self._degraded_slots: set[TimeSlot] = set()

        self._prefill_from_baseline_allocation()
        self._recompute(track_crossings=False)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def is_editing(self) -> bool:
        """True when the session replaces a previously persisted allocation."""
        return self.baseline_allocation is not None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def baseline(self) -> BaselineMap:
        return dict(self._baselines.get(self._generation, {}))

    @property
    def entered(self) -> dict[TimeSlot, OccupancyValue]:
        return dict(self._derived)

    @property
    def degraded_slots(self) -> set[TimeSlot]:
        return set(self._degraded_slots)

    @property
    def projections(self) -> list[ProjectedTotals]:
        return self._reconciler.projections

    @property
    def findings(self) -> list[ConstraintFinding]:
        return check(self.projections, self.config)

    def raw_value(self, slot: TimeSlot) -> str:
        return self._raw.get(slot, "")

    def value(self, slot: TimeSlot) -> OccupancyValue:
        return self._derived.get(slot, OccupancyValue.zero())

    def statuses(self) -> dict[TimeSlot, ConstraintStatus]:
        return {p.slot: classify(p.approved, self.config) for p in self.projections}

    def drain_crossings(self) -> list[ThresholdCrossing]:
        """Return the threshold crossings raised since the last call, once."""
        return self._reconciler.drain_crossings()

    # ------------------------------------------------------------------
    # Person selection and baseline loading
    # ------------------------------------------------------------------

    async def select_person(self, person: Person) -> bool:
        """Select the person being staffed and load their baseline.

        Args:
            person: Person to staff

        Returns:
            True if this call's baseline was applied, False if a later
            selection superseded it before it arrived

        Raises:
            InvalidSessionStateError: If the session is closed, or it edits an
                existing allocation and ``person`` is not its owner
        """
        self._ensure_open()
        if self._locked_person is not None and person.id != self._locked_person.id:
            raise InvalidSessionStateError(
                "PERSON_LOCKED",
                f"Session edits the allocation of {self._locked_person.id}, cannot switch to {person.id}",
            )

        if self.person is not None and self.person.id != person.id:
            self._clear_inputs()

        self._generation += 1
        generation = self._generation
        self.person = person
        self.state = SessionState.POPULATING
        self._log = log = logger.bind(work_item_id=self.work_item_id, person_id=person.id)
        self.baseline_degraded = False
        self._baselines.clear()
        self._reconciler.clear()
        self._recompute(track_crossings=False)

        log.info(f"[EDIT_SESSION] Fetching baseline generation={generation} slots={len(self.slots)}")

        degraded = False
        try:
            baseline = await self._fetch(person.id)
        except Exception as e:
            degraded = True
            baseline = {}
            if generation == self._generation:
                log.warning(f"[EDIT_SESSION] Baseline unavailable, using zero baseline: {e}")

        if generation != self._generation:
            log.info(
                "[EDIT_SESSION] Discarding stale baseline "
                f"generation={generation} current_generation={self._generation}"
            )
            return False

        self._baselines[generation] = baseline
        self.baseline_degraded = degraded
        self.state = SessionState.READY
        self._recompute(track_crossings=False)
        log.info(f"[EDIT_SESSION] Session ready generation={generation} degraded={degraded}")
        return True

    async def refresh_baseline(self) -> bool:
        """Re-fetch the baseline for the currently selected person."""
        if self.person is None:
            raise InvalidSessionStateError("NO_PERSON_SELECTED", "Cannot refresh a baseline before selecting a person")
        return await self.select_person(self.person)

    async def _fetch(self, person_id: str) -> BaselineMap:
        request = self._source.fetch_baseline(person_id, self.slots)
        if self._fetch_timeout is None:
            return await request
        return await asyncio.wait_for(request, timeout=self._fetch_timeout)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def set_slot_value(self, slot: TimeSlot, raw: str) -> OccupancyValue:
        """Record typed input for one slot.

        The raw text is always kept for display. Empty input removes the
        slot's contribution; unparsable input contributes zero.

        Returns:
            The derived occupancy now in effect for the slot
        """
        self._ensure_open()
        if slot not in self.slots:
            self._log.warning(f"[EDIT_SESSION] Ignoring value for slot {slot} outside work item window")
            return OccupancyValue.zero()

        normalized = normalize(raw)
        self._raw[slot] = raw
        if raw is None or not raw.strip():
            self._derived.pop(slot, None)
        else:
            self._derived[slot] = normalized.value

        if normalized.degraded:
            self._degraded_slots.add(slot)
            self._log.warning(f"[EDIT_SESSION] Degraded occupancy input slot={slot} raw={raw!r} -> {normalized.value.fraction}")
        else:
            self._degraded_slots.discard(slot)

        self._recompute()
        return normalized.value

    def fill_all(self, raw: str) -> OccupancyValue | None:
        """Apply one typed value to every slot in the window.

        Blank input leaves the session untouched.

        Returns:
            The applied occupancy, or None when nothing was applied
        """
        self._ensure_open()
        if raw is None or not raw.strip():
            return None

        normalized = normalize(raw)
        raw_map, derived_map = fill_window(self.slots, normalized.value, self.separator)
        self._raw = raw_map
        self._derived = derived_map
        self._degraded_slots = set(self.slots) if normalized.degraded else set()

        self._log.debug(f"[EDIT_SESSION] Filled {len(self.slots)} slots with {normalized.value.fraction}")
        self._recompute()
        return normalized.value

    def reset(self) -> None:
        """Clear person selection, inputs and baselines, returning to NEW.

        In-flight baseline fetches are invalidated.
        """
        self._ensure_open()
        self._generation += 1
        self.person = None
        self.state = SessionState.NEW
        self._log = logger.bind(work_item_id=self.work_item_id, person_id="-")
        self.baseline_degraded = False
        self._baselines.clear()
        self._clear_inputs()
        self._reconciler.clear()
        self._recompute(track_crossings=False)
        self._log.debug("[EDIT_SESSION] Session reset")

    def cancel(self) -> None:
        """Abandon the edit."""
        self._close("cancelled")

    def close(self) -> None:
        """Mark the session as committed."""
        self._close("committed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _close(self, reason: str) -> None:
        self._ensure_open()
        self._generation += 1
        self.state = SessionState.CLOSED
        self._baselines.clear()
        self._log.info(f"[EDIT_SESSION] Session {reason}")

    def _ensure_open(self) -> None:
        if self.state is SessionState.CLOSED:
            raise InvalidSessionStateError("SESSION_CLOSED", f"Edit session for {self.work_item_id} is closed")

    def _clear_inputs(self) -> None:
        self._raw = {}
        self._derived = {}
        self._degraded_slots = set()

    def _prefill_from_baseline_allocation(self) -> None:
        if self.baseline_allocation is None:
            return
        for slot, value in self.baseline_allocation.values.items():
            if slot in self.slots:
                self._raw[slot] = format_occupancy(value, self.separator)
                self._derived[slot] = value

    def _recompute(self, *, track_crossings: bool = True) -> None:
        data = ReconciliationInput(
            slots=self.slots,
            lifecycle_state=self.lifecycle_state,
            baseline=self._baselines.get(self._generation, {}),
            entered=self._derived,
            baseline_allocation=self.baseline_allocation,
        )
        self._reconciler.update(data, track_crossings=track_crossings)
