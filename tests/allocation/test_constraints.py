"""Unit tests for constraint classification and findings.

Tests cover:
- Threshold boundaries (0.8 and 1.0 inclusive)
- Monotonic ordering of statuses
- Blocking vs advisory severity
- Custom thresholds
- Non-finite totals
"""

from decimal import Decimal

import pytest

from staffing.allocation.config import LedgerConfig
from staffing.allocation.constraints import (
    ConstraintStatus,
    Severity,
    blocking,
    check,
    classify,
)
from staffing.allocation.types import Bucket, ProjectedTotals, TimeSlot

SLOT = TimeSlot(year=2025, month=3)


class TestClassify:
    """Test approved-total classification."""

    @pytest.mark.parametrize(
        ("approved", "expected"),
        [
            (Decimal("0"), ConstraintStatus.NORMAL),
            (Decimal("0.79"), ConstraintStatus.NORMAL),
            (Decimal("0.8"), ConstraintStatus.NEAR_LIMIT),
            (Decimal("0.99"), ConstraintStatus.NEAR_LIMIT),
            (Decimal("1.0"), ConstraintStatus.OVER_ALLOCATED),
            (Decimal("1.5"), ConstraintStatus.OVER_ALLOCATED),
        ],
    )
    def test_thresholds(self, approved, expected):
        assert classify(approved) is expected

    def test_accepts_float(self):
        assert classify(0.9) is ConstraintStatus.NEAR_LIMIT

    @pytest.mark.parametrize(
        ("approved", "expected"),
        [
            (float("nan"), ConstraintStatus.OVER_ALLOCATED),
            (Decimal("NaN"), ConstraintStatus.OVER_ALLOCATED),
            (float("inf"), ConstraintStatus.OVER_ALLOCATED),
            (Decimal("-Infinity"), ConstraintStatus.NORMAL),
        ],
    )
    def test_non_finite_values_are_classified(self, approved, expected):
        assert classify(approved) is expected

    def test_monotonic(self):
        values = [Decimal(n) / 100 for n in range(0, 151, 5)]
        ordinals = [classify(v).ordinal for v in values]
        assert ordinals == sorted(ordinals)

    def test_custom_thresholds(self):
        config = LedgerConfig(near_limit_threshold=Decimal("0.5"), over_allocation_threshold=Decimal("0.9"))
        assert classify(Decimal("0.6"), config) is ConstraintStatus.NEAR_LIMIT
        assert classify(Decimal("0.9"), config) is ConstraintStatus.OVER_ALLOCATED

    def test_inverted_thresholds_rejected(self):
        with pytest.raises(ValueError):
            LedgerConfig(near_limit_threshold=Decimal("1.2"), over_allocation_threshold=Decimal("1.0"))


class TestCheck:
    """Test findings produced per slot."""

    def test_normal_slot_has_no_findings(self):
        assert check([ProjectedTotals(SLOT, approved=Decimal("0.5"), pending=Decimal("0.2"))]) == []

    def test_over_allocated_approved_blocks(self):
        findings = check([ProjectedTotals(SLOT, approved=Decimal("1.1"), pending=Decimal("0"))])
        assert len(findings) == 1
        assert findings[0].severity is Severity.BLOCKING
        assert findings[0].bucket is Bucket.APPROVED
        assert findings[0].percentage == Decimal("110.0")

    def test_near_limit_is_advisory(self):
        findings = check([ProjectedTotals(SLOT, approved=Decimal("0.9"), pending=Decimal("0"))])
        assert [f.status for f in findings] == [ConstraintStatus.NEAR_LIMIT]
        assert blocking(findings) == []

    def test_pending_overcommitment_is_advisory(self):
        findings = check([ProjectedTotals(SLOT, approved=Decimal("0"), pending=Decimal("1.2"))])
        assert len(findings) == 1
        assert findings[0].bucket is Bucket.PENDING
        assert findings[0].severity is Severity.ADVISORY

    def test_combined_overcommitment_is_advisory(self):
        findings = check([ProjectedTotals(SLOT, approved=Decimal("0.9"), pending=Decimal("0.7"))])
        severities = {(f.bucket, f.severity) for f in findings}
        assert severities == {(Bucket.APPROVED, Severity.ADVISORY), (Bucket.PENDING, Severity.ADVISORY)}
        assert blocking(findings) == []

    def test_combined_not_reported_when_approved_already_blocks(self):
        findings = check([ProjectedTotals(SLOT, approved=Decimal("1.0"), pending=Decimal("0.5"))])
        assert [f.bucket for f in findings] == [Bucket.APPROVED]
