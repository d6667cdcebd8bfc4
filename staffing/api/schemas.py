"""Staffing preview and commit-check schemas."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from staffing.allocation.constraints import ConstraintStatus, Severity
from staffing.allocation.types import Bucket, LifecycleState


class SlotValueIn(BaseModel):
    """Raw value typed for one month."""

    month: int = Field(..., ge=1, le=12, description="Month (1-12)")
    year: int = Field(..., ge=2000, description="Year")
    raw: str = Field(default="", description="Typed occupancy, comma or dot separated (e.g. '0,5')")


class StoredSlotValueIn(BaseModel):
    """Previously persisted value of the allocation being edited."""

    month: int = Field(..., ge=1, le=12, description="Month (1-12)")
    year: int = Field(..., ge=2000, description="Year")
    occupancy: Decimal | str = Field(..., description="Stored occupancy (fraction, or legacy percentage)")


class StaffingRequest(BaseModel):
    """An in-progress staffing edit for one person on one work item."""

    work_item_id: str = Field(..., description="Work item being staffed")
    person_id: str = Field(..., description="Person being staffed")
    person_name: str = Field(default="", description="Display name of the person")
    starts_on: date = Field(..., description="First day of the work item period")
    ends_on: date = Field(..., description="Last day of the work item period")
    lifecycle_state: LifecycleState = Field(..., description="Current lifecycle state of the owning project")
    fill_all: str | None = Field(default=None, description="Value applied to every month before per-month values")
    values: list[SlotValueIn] = Field(default_factory=list, description="Per-month typed values")
    baseline_allocation: list[StoredSlotValueIn] | None = Field(
        default=None,
        description="Original values when editing an existing allocation",
    )
    recorded_state: LifecycleState | None = Field(
        default=None,
        description="Lifecycle state the original values were recorded under",
    )


class FindingOut(BaseModel):
    bucket: Bucket
    status: ConstraintStatus
    severity: Severity
    percentage: Decimal
    message: str


class SlotProjectionOut(BaseModel):
    """Projected occupancy for one month."""

    month: int
    year: int
    raw: str = Field(..., description="Raw text as typed")
    occupancy: str = Field(..., description="Entered occupancy, two decimals")
    degraded: bool = Field(default=False, description="True when the typed value was unparsable or clamped")
    approved: Decimal = Field(..., description="Projected approved fraction")
    pending: Decimal = Field(..., description="Projected pending fraction")
    status: ConstraintStatus
    findings: list[FindingOut] = Field(default_factory=list)


class PreviewResponse(BaseModel):
    work_item_id: str
    person_id: str
    can_commit: bool
    baseline_degraded: bool = Field(..., description="True when baseline totals could not be loaded and zero was used")
    slots: list[SlotProjectionOut]


class AllocationOut(BaseModel):
    person_id: str
    work_item_id: str
    month: int
    year: int
    occupancy: Decimal


class CommitCheckResponse(BaseModel):
    work_item_id: str
    person_id: str
    baseline_degraded: bool
    allocations: list[AllocationOut]
