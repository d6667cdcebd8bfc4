from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""


class Project(Base):
    """Project owning work items.

    Stores:
    - id: Project ID (string UUID format)
    - name: Display name
    - state: Lifecycle state (draft, submitted, approved, in_progress, completed)
    """

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    state: Mapped[str] = mapped_column(String, nullable=False, default="draft", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))


class WorkItem(Base):
    """Work item (work package) people are staffed on.

    The staffing window is every month between starts_on and ends_on, inclusive.
    """

    __tablename__ = "work_items"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    project_id: Mapped[str] = mapped_column(String, ForeignKey("projects.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    starts_on: Mapped[date] = mapped_column(Date, nullable=False)
    ends_on: Mapped[date] = mapped_column(Date, nullable=False)


class StaffMember(Base):
    """Person that can be allocated to work items."""

    __tablename__ = "staff_members"

    id: Mapped[str] = mapped_column(String, primary_key=True, index=True)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    regime: Mapped[str] = mapped_column(String, nullable=False, default="full_time")


class AllocationRow(Base):
    """Recorded monthly occupancy of one person on one work item.

    Schema:
    - work_item_id / person_id: What and who
    - month / year: Slot (month 1-12)
    - occupancy: Fraction of full-time capacity (0-1; legacy rows may hold 0-100)

    Constraints:
    - Unique constraint: (work_item_id, person_id, month, year)
    """

    __tablename__ = "allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_item_id: Mapped[str] = mapped_column(String, ForeignKey("work_items.id"), nullable=False, index=True)
    person_id: Mapped[str] = mapped_column(String, ForeignKey("staff_members.id"), nullable=False, index=True)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    occupancy: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)

    __table_args__ = (
        UniqueConstraint("work_item_id", "person_id", "month", "year", name="uq_allocation_slot"),
        Index("idx_allocations_person_slot", "person_id", "year", "month"),  # Common query: person baseline per month
    )
