"""Tests for the allocation preview and commit-check endpoints."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from staffing.allocation.config import LedgerConfig, SubtractionPolicy
from staffing.allocation.errors import BaselineUnavailableError
from staffing.allocation.sources import InMemoryCapacitySource
from staffing.allocation.types import AllocationRecord, LifecycleState, TimeSlot
from staffing.api.allocations import get_capacity_source, get_ledger_config
from staffing.config.settings import settings
from staffing.main import app
from tests.fakes import StaticCapacitySource

MARCH = TimeSlot(year=2025, month=3)
APRIL = TimeSlot(year=2025, month=4)


@pytest.fixture
def records_source():
    return InMemoryCapacitySource(
        [
            AllocationRecord("ana", "wp-other", MARCH, Decimal("0.6"), LifecycleState.APPROVED),
            AllocationRecord("ana", "wp-1", MARCH, Decimal("0.4"), LifecycleState.APPROVED),
            AllocationRecord("ana", "wp-draft", APRIL, Decimal("0.3"), LifecycleState.DRAFT),
        ]
    )


@pytest.fixture
def client(records_source):
    app.dependency_overrides[get_capacity_source] = lambda: records_source
    yield TestClient(app)
    app.dependency_overrides.clear()


def _request(**overrides) -> dict:
    body = {
        "work_item_id": "wp-new",
        "person_id": "ana",
        "starts_on": "2025-03-01",
        "ends_on": "2025-04-30",
        "lifecycle_state": "approved",
        "values": [],
    }
    body.update(overrides)
    return body


class TestPreview:
    """Test the preview endpoint."""

    def test_reports_projection_per_month(self, client):
        response = client.post("/allocations/preview", json=_request(values=[{"month": 3, "year": 2025, "raw": "0,3"}]))

        assert response.status_code == 200
        data = response.json()
        assert data["can_commit"] is False  # baseline already holds 1.0 approved in March
        assert data["baseline_degraded"] is False
        march, april = data["slots"]
        assert (march["month"], march["year"]) == (3, 2025)
        assert Decimal(march["approved"]) == Decimal("1.3")
        assert march["status"] == "over_allocated"
        assert march["occupancy"] == "0,30"
        assert Decimal(april["pending"]) == Decimal("0.3")
        assert april["status"] == "normal"

    def test_editing_removes_original_value(self, client):
        body = _request(
            work_item_id="wp-1",
            values=[{"month": 3, "year": 2025, "raw": "0,4"}],
            baseline_allocation=[{"month": 3, "year": 2025, "occupancy": "0.4"}],
        )

        response = client.post("/allocations/preview", json=body)

        assert response.status_code == 200
        march = response.json()["slots"][0]
        assert Decimal(march["approved"]) == Decimal("1.0")

    def test_fill_all_then_override(self, client):
        body = _request(fill_all="0.1", values=[{"month": 4, "year": 2025, "raw": "abc"}])

        response = client.post("/allocations/preview", json=body)

        slots = response.json()["slots"]
        assert slots[0]["raw"] == "0,10"
        assert slots[1]["raw"] == "abc"
        assert slots[1]["occupancy"] == "0,00"
        assert slots[0]["degraded"] is False
        assert slots[1]["degraded"] is True

    def test_pending_overcommitment_is_advisory(self, client):
        body = _request(lifecycle_state="draft", values=[{"month": 4, "year": 2025, "raw": "0,8"}])

        response = client.post("/allocations/preview", json=body)

        april = response.json()["slots"][1]
        assert Decimal(april["pending"]) == Decimal("1.1")
        assert [f["severity"] for f in april["findings"]] == ["advisory"]

    def test_invalid_period_is_rejected(self, client):
        response = client.post("/allocations/preview", json=_request(starts_on="2025-05-01", ends_on="2025-04-01"))
        assert response.status_code == 422

    def test_source_failure_is_degraded(self):
        app.dependency_overrides[get_capacity_source] = lambda: StaticCapacitySource(
            error=BaselineUnavailableError("ana", "source offline")
        )
        try:
            response = TestClient(app).post("/allocations/preview", json=_request())
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        assert response.json()["baseline_degraded"] is True
        assert response.json()["can_commit"] is True


class TestCommitCheck:
    """Test the commit-check endpoint."""

    def test_returns_normalized_allocations(self, client):
        body = _request(values=[{"month": 4, "year": 2025, "raw": "0,5"}, {"month": 3, "year": 2025, "raw": ""}])

        response = client.post("/allocations/commit-check", json=body)

        assert response.status_code == 409  # March baseline already at 100% approved

        body = _request(starts_on="2025-04-01", values=[{"month": 4, "year": 2025, "raw": "0,5"}])
        response = client.post("/allocations/commit-check", json=body)

        assert response.status_code == 200
        allocations = response.json()["allocations"]
        assert len(allocations) == 1
        assert allocations[0]["month"] == 4
        assert Decimal(allocations[0]["occupancy"]) == Decimal("0.5")

    def test_refusal_lists_offending_months(self, client):
        body = _request(values=[{"month": 3, "year": 2025, "raw": "0,1"}])

        response = client.post("/allocations/commit-check", json=body)

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["code"] == "OVER_ALLOCATED"
        assert detail["offending"] == [{"month": 3, "year": 2025, "approved_percentage": 110.0}]

    def test_edit_returns_zero_slots(self, client):
        body = _request(
            work_item_id="wp-1",
            starts_on="2025-03-01",
            ends_on="2025-04-30",
            values=[{"month": 3, "year": 2025, "raw": "0"}],
            baseline_allocation=[{"month": 3, "year": 2025, "occupancy": "40"}],
        )

        response = client.post("/allocations/commit-check", json=body)

        assert response.status_code == 200
        allocations = response.json()["allocations"]
        assert [(a["month"], Decimal(a["occupancy"])) for a in allocations] == [(3, Decimal("0")), (4, Decimal("0"))]


class TestSubtractionPolicy:
    """Test that the configured subtraction policy reaches the preview."""

    @pytest.fixture
    def promoted_source(self):
        # wp-1 was recorded while its project was a draft and has since been approved.
        return InMemoryCapacitySource(
            [
                AllocationRecord("ana", "wp-other", MARCH, Decimal("0.6"), LifecycleState.APPROVED),
                AllocationRecord("ana", "wp-1", MARCH, Decimal("0.4"), LifecycleState.DRAFT),
            ]
        )

    def _preview(self, source, config, **overrides):
        app.dependency_overrides[get_capacity_source] = lambda: source
        app.dependency_overrides[get_ledger_config] = lambda: config
        try:
            body = _request(
                work_item_id="wp-1",
                ends_on="2025-03-31",
                values=[{"month": 3, "year": 2025, "raw": "0,4"}],
                baseline_allocation=[{"month": 3, "year": 2025, "occupancy": "0.4"}],
                **overrides,
            )
            response = TestClient(app).post("/allocations/preview", json=body)
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 200
        return response.json()["slots"][0]

    def test_current_state_ignores_recorded_state(self, promoted_source):
        march = self._preview(promoted_source, LedgerConfig(), recorded_state="draft")

        assert Decimal(march["approved"]) == Decimal("0.6")
        assert Decimal(march["pending"]) == Decimal("0.4")

    def test_recorded_state_moves_original_out_of_pending(self, promoted_source):
        config = LedgerConfig(subtraction_policy=SubtractionPolicy.RECORDED_STATE)

        march = self._preview(promoted_source, config, recorded_state="draft")

        assert Decimal(march["approved"]) == Decimal("1.0")
        assert Decimal(march["pending"]) == Decimal("0")
        assert march["status"] == "over_allocated"

    def test_ledger_config_reads_policy_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "subtraction_policy", SubtractionPolicy.RECORDED_STATE)

        assert get_ledger_config().subtraction_policy is SubtractionPolicy.RECORDED_STATE
