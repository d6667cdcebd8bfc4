"""Constraint classification for projected occupancy.

Pure and side-effect free. Approved occupancy is classified into three
ordered tiers; findings then split into two severities so the asymmetric
commit rule stays explicit: only the approved bucket can block, pending
overcommitment is advisory.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from staffing.allocation.config import DEFAULT_CONFIG, LedgerConfig
from staffing.allocation.normalizer import format_percentage
from staffing.allocation.types import Bucket, ProjectedTotals, TimeSlot


class ConstraintStatus(StrEnum):
    """Classification of a projected approved total, in increasing severity."""

    NORMAL = "normal"
    NEAR_LIMIT = "near_limit"
    OVER_ALLOCATED = "over_allocated"

    @property
    def ordinal(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = (ConstraintStatus.NORMAL, ConstraintStatus.NEAR_LIMIT, ConstraintStatus.OVER_ALLOCATED)


class Severity(StrEnum):
    """How a finding affects the commit."""

    BLOCKING = "blocking"
    ADVISORY = "advisory"


@dataclass(frozen=True)
class ConstraintFinding:
    """A single constraint observation for one slot.

    Attributes:
        slot: Slot the finding applies to
        bucket: Bucket whose total triggered the finding
        status: Classification of the triggering total
        severity: BLOCKING findings refuse the commit, ADVISORY ones only warn
        amount: Triggering total as a fraction
        message: Human-readable description
    """

    slot: TimeSlot
    bucket: Bucket
    status: ConstraintStatus
    severity: Severity
    amount: Decimal
    message: str

    @property
    def percentage(self) -> Decimal:
        return self.amount * 100


def classify(approved: Decimal | float, config: LedgerConfig | None = None) -> ConstraintStatus:
    """Classify a projected approved total.

    Args:
        approved: Projected approved occupancy as a fraction
        config: Optional thresholds (defaults to 0.8 / 1.0)

    Returns:
        NORMAL below the near-limit threshold, NEAR_LIMIT up to the
        over-allocation threshold, OVER_ALLOCATED at or above it
        (NaN cannot be shown to fit, so it is OVER_ALLOCATED)
    """
    if config is None:
        config = DEFAULT_CONFIG

    amount = approved if isinstance(approved, Decimal) else Decimal(str(approved))
    if amount.is_nan():
        return ConstraintStatus.OVER_ALLOCATED
    if amount >= config.over_allocation_threshold:
        return ConstraintStatus.OVER_ALLOCATED
    if amount >= config.near_limit_threshold:
        return ConstraintStatus.NEAR_LIMIT
    return ConstraintStatus.NORMAL


def check(projections: list[ProjectedTotals], config: LedgerConfig | None = None) -> list[ConstraintFinding]:
    """Produce constraint findings for every slot that needs attention.

    Args:
        projections: Projected totals, one per slot
        config: Optional thresholds

    Returns:
        Findings in slot order; slots that are comfortably NORMAL yield none
    """
    if config is None:
        config = DEFAULT_CONFIG

    findings: list[ConstraintFinding] = []
    for projection in projections:
        findings.extend(_check_slot(projection, config))
    return findings


def _check_slot(projection: ProjectedTotals, config: LedgerConfig) -> list[ConstraintFinding]:
    findings: list[ConstraintFinding] = []
    status = classify(projection.approved, config)

    if status is ConstraintStatus.OVER_ALLOCATED:
        findings.append(
            ConstraintFinding(
                slot=projection.slot,
                bucket=Bucket.APPROVED,
                status=status,
                severity=Severity.BLOCKING,
                amount=projection.approved,
                message=f"Approved occupancy for {projection.slot} would be {format_percentage(projection.approved)}",
            )
        )
    elif status is ConstraintStatus.NEAR_LIMIT:
        findings.append(
            ConstraintFinding(
                slot=projection.slot,
                bucket=Bucket.APPROVED,
                status=status,
                severity=Severity.ADVISORY,
                amount=projection.approved,
                message=f"Approved occupancy for {projection.slot} is close to the limit ({format_percentage(projection.approved)})",
            )
        )

    if projection.pending >= config.over_allocation_threshold:
        findings.append(
            ConstraintFinding(
                slot=projection.slot,
                bucket=Bucket.PENDING,
                status=ConstraintStatus.OVER_ALLOCATED,
                severity=Severity.ADVISORY,
                amount=projection.pending,
                message=f"Pending occupancy for {projection.slot} would be {format_percentage(projection.pending)}",
            )
        )
    elif status is not ConstraintStatus.OVER_ALLOCATED and projection.combined >= config.over_allocation_threshold:
        findings.append(
            ConstraintFinding(
                slot=projection.slot,
                bucket=Bucket.PENDING,
                status=ConstraintStatus.OVER_ALLOCATED,
                severity=Severity.ADVISORY,
                amount=projection.combined,
                message=(
                    f"Approved and pending occupancy for {projection.slot} "
                    f"add up to {format_percentage(projection.combined)}"
                ),
            )
        )

    return findings


def blocking(findings: list[ConstraintFinding]) -> list[ConstraintFinding]:
    """Return only the findings that refuse a commit."""
    return [f for f in findings if f.severity is Severity.BLOCKING]
