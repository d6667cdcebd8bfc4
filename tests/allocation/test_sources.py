"""Unit tests for capacity sources.

Tests cover:
- Bucket aggregation by lifecycle state
- Slots outside the requested window are ignored
- Legacy percentage rows
- SQL-backed source against an in-memory database
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from staffing.allocation.errors import BaselineUnavailableError
from staffing.allocation.sources import InMemoryCapacitySource, aggregate_baseline
from staffing.allocation.sql_source import SqlCapacitySource
from staffing.allocation.types import AllocationRecord, BaselineTotals, LifecycleState, TimeSlot
from staffing.db.models import AllocationRow, Project, StaffMember, WorkItem

MARCH = TimeSlot(year=2025, month=3)
APRIL = TimeSlot(year=2025, month=4)


class TestAggregateBaseline:
    """Test bucket aggregation."""

    def test_sums_per_bucket(self):
        rows = [
            (MARCH, Decimal("0.3"), LifecycleState.APPROVED),
            (MARCH, Decimal("0.2"), LifecycleState.IN_PROGRESS),
            (MARCH, Decimal("0.1"), LifecycleState.COMPLETED),
            (MARCH, Decimal("0.4"), LifecycleState.DRAFT),
            (MARCH, Decimal("0.1"), LifecycleState.SUBMITTED),
        ]

        baseline = aggregate_baseline(rows, [MARCH])

        assert baseline[MARCH] == BaselineTotals(approved=Decimal("0.6"), pending=Decimal("0.5"))

    def test_every_requested_slot_is_present(self):
        baseline = aggregate_baseline([], [MARCH, APRIL])
        assert baseline == {MARCH: BaselineTotals(), APRIL: BaselineTotals()}

    def test_rows_outside_window_are_ignored(self):
        rows = [(TimeSlot(year=2024, month=3), Decimal("0.5"), LifecycleState.APPROVED)]
        assert aggregate_baseline(rows, [MARCH])[MARCH].approved == Decimal("0")

    def test_legacy_percentage_rows_are_scaled(self):
        rows = [(MARCH, Decimal("40"), LifecycleState.APPROVED)]
        assert aggregate_baseline(rows, [MARCH])[MARCH].approved == Decimal("0.4")

    def test_totals_may_exceed_one(self):
        rows = [
            (MARCH, Decimal("0.7"), LifecycleState.APPROVED),
            (MARCH, Decimal("0.6"), LifecycleState.APPROVED),
        ]
        assert aggregate_baseline(rows, [MARCH])[MARCH].approved == Decimal("1.3")


class TestInMemoryCapacitySource:
    """Test the in-memory source."""

    @pytest.mark.asyncio
    async def test_filters_by_person(self):
        source = InMemoryCapacitySource(
            [
                AllocationRecord("ana", "wp-1", MARCH, Decimal("0.5"), LifecycleState.APPROVED),
                AllocationRecord("rui", "wp-1", MARCH, Decimal("0.9"), LifecycleState.APPROVED),
            ]
        )
        source.add(AllocationRecord("ana", "wp-2", MARCH, Decimal("0.2"), LifecycleState.SUBMITTED))

        baseline = await source.fetch_baseline("ana", [MARCH])

        assert baseline[MARCH] == BaselineTotals(approved=Decimal("0.5"), pending=Decimal("0.2"))


def _seed(factory) -> None:
    with factory() as session:
        session.add_all(
            [
                Project(id="p-approved", name="Approved", state="approved"),
                Project(id="p-draft", name="Draft", state="draft"),
                Project(id="p-legacy", name="Legacy", state="archived"),
                WorkItem(id="wp-1", project_id="p-approved", name="WP1", starts_on=date(2025, 1, 1), ends_on=date(2025, 6, 30)),
                WorkItem(id="wp-2", project_id="p-draft", name="WP2", starts_on=date(2025, 1, 1), ends_on=date(2025, 6, 30)),
                WorkItem(id="wp-3", project_id="p-legacy", name="WP3", starts_on=date(2025, 1, 1), ends_on=date(2025, 6, 30)),
                StaffMember(id="ana", display_name="Ana"),
                StaffMember(id="rui", display_name="Rui", regime="part_time"),
            ]
        )
        session.flush()
        session.add_all(
            [
                AllocationRow(work_item_id="wp-1", person_id="ana", month=3, year=2025, occupancy=Decimal("0.6")),
                AllocationRow(work_item_id="wp-2", person_id="ana", month=3, year=2025, occupancy=Decimal("0.2")),
                AllocationRow(work_item_id="wp-3", person_id="ana", month=3, year=2025, occupancy=Decimal("0.5")),
                AllocationRow(work_item_id="wp-1", person_id="ana", month=3, year=2024, occupancy=Decimal("0.9")),
                AllocationRow(work_item_id="wp-1", person_id="rui", month=3, year=2025, occupancy=Decimal("0.7")),
            ]
        )
        session.commit()


class TestSqlCapacitySource:
    """Test the SQL-backed source."""

    @pytest.mark.asyncio
    async def test_aggregates_person_baseline(self, db_session_factory):
        _seed(db_session_factory)
        source = SqlCapacitySource(db_session_factory)

        baseline = await source.fetch_baseline("ana", [MARCH, APRIL])

        assert baseline[MARCH].approved == Decimal("0.6")
        assert baseline[MARCH].pending == Decimal("0.2")
        assert baseline[APRIL] == BaselineTotals()

    @pytest.mark.asyncio
    async def test_empty_window(self, db_session_factory):
        source = SqlCapacitySource(db_session_factory)
        assert await source.fetch_baseline("ana", []) == {}

    @pytest.mark.asyncio
    async def test_database_errors_become_baseline_unavailable(self):
        class BrokenSession:
            def execute(self, *args, **kwargs):
                raise OperationalError("SELECT", {}, Exception("database is locked"))

            def close(self):
                pass

        source = SqlCapacitySource(BrokenSession)

        with pytest.raises(BaselineUnavailableError) as exc_info:
            await source.fetch_baseline("ana", [MARCH])
        assert exc_info.value.person_id == "ana"
