"""SQLAlchemy-backed capacity source.

Read-only: sums a person's recorded allocations per month across every work
item, split by the lifecycle state of the owning project.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from staffing.allocation.errors import BaselineUnavailableError
from staffing.allocation.sources import BaselineMap, aggregate_baseline
from staffing.allocation.types import LifecycleState, TimeSlot
from staffing.db.models import AllocationRow, Project, WorkItem


class SqlCapacitySource:
    """Capacity source reading the allocations table.

    The query is blocking, so it runs in a worker thread to keep the edit
    session's event loop free.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    async def fetch_baseline(self, person_id: str, slots: Sequence[TimeSlot]) -> BaselineMap:
        return await asyncio.to_thread(self._fetch_sync, person_id, list(slots))

    def _fetch_sync(self, person_id: str, slots: list[TimeSlot]) -> BaselineMap:
        if not slots:
            return {}

        years = sorted({slot.year for slot in slots})
        session = self._session_factory()
        try:
            result = session.execute(
                select(AllocationRow.month, AllocationRow.year, AllocationRow.occupancy, Project.state)
                .join(WorkItem, WorkItem.id == AllocationRow.work_item_id)
                .join(Project, Project.id == WorkItem.project_id)
                .where(
                    AllocationRow.person_id == person_id,
                    AllocationRow.year.in_(years),
                )
            )
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"[CAPACITY_SOURCE] Baseline query failed for person_id={person_id}: {e}")
            raise BaselineUnavailableError(person_id, str(e)) from e
        finally:
            session.close()

        recorded = []
        for month, year, occupancy, state in rows:
            try:
                lifecycle_state = LifecycleState(state)
            except ValueError:
                logger.warning(f"[CAPACITY_SOURCE] Skipping allocation with unknown project state {state!r}")
                continue
            recorded.append((TimeSlot(year=year, month=month), occupancy, lifecycle_state))

        logger.debug(f"[CAPACITY_SOURCE] SQL baseline person_id={person_id} rows={len(recorded)} slots={len(slots)}")
        return aggregate_baseline(recorded, slots)
