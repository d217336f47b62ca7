"""
API tests for the scheduling router
"""

import pytest
from fastapi.testclient import TestClient

from therapy_scheduler.api.scheduling_routes import get_scheduling_engine
from therapy_scheduler.main import create_app
from tests.fixtures import (
    TEST_PATIENT_ID,
    TEST_THERAPIST_ID,
    create_booking,
    create_engine,
    create_plan,
    create_store,
)

MONDAY = '2025-03-03'


@pytest.fixture
def store():
    store = create_store()
    store.add_plan(create_plan())
    return store


@pytest.fixture
def client(store):
    app = create_app()
    engine = create_engine(store)
    app.dependency_overrides[get_scheduling_engine] = lambda: engine
    return TestClient(app)


class TestAvailabilityRoutes:

    def test_check_available(self, client):
        response = client.post("/api/scheduling/availability/check", json={
            "therapist_id": TEST_THERAPIST_ID,
            "scheduled_date": MONDAY,
            "start_time": "10:00",
            "duration": 60,
        })

        assert response.status_code == 200
        assert response.json()["available"] is True

    def test_check_break_time(self, client):
        response = client.post("/api/scheduling/availability/check", json={
            "therapist_id": TEST_THERAPIST_ID,
            "scheduled_date": MONDAY,
            "start_time": "12:30",
            "duration": 60,
        })

        data = response.json()
        assert data["available"] is False
        assert data["reason"] == "break-time"
        assert data["suggested_times"] == ["09:00", "10:15", "14:00", "15:15"]

    def test_check_invalid_duration(self, client):
        response = client.post("/api/scheduling/availability/check", json={
            "therapist_id": TEST_THERAPIST_ID,
            "scheduled_date": MONDAY,
            "start_time": "10:00",
            "duration": 5,
        })

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_scheduling_request"

    def test_check_unknown_therapist(self, client):
        response = client.post("/api/scheduling/availability/check", json={
            "therapist_id": "ghost",
            "scheduled_date": MONDAY,
            "start_time": "10:00",
            "duration": 60,
        })

        assert response.status_code == 404

    def test_bulk_check(self, client, store):
        booking = store.add_booking(create_booking(scheduled_time='10:00'))

        response = client.post("/api/scheduling/availability/bulk-check", json={
            "therapist_id": TEST_THERAPIST_ID,
            "scheduled_date": MONDAY,
            "time_slots": [
                {"time": "09:00", "duration": 60},
                {"time": "10:00", "duration": 60},
            ],
        })
        excluded = client.post("/api/scheduling/availability/bulk-check", json={
            "therapist_id": TEST_THERAPIST_ID,
            "scheduled_date": MONDAY,
            "time_slots": [{"time": "10:00", "duration": 60}],
            "exclude_booking_ids": [booking.id],
        })

        data = response.json()
        assert response.status_code == 200
        assert data["available_count"] == 1
        assert data["results"]["10:00-11:00"]["reason"] == "conflict"
        assert excluded.json()["results"]["10:00-11:00"]["available"] is True

    def test_bulk_check_invalid_slot(self, client):
        response = client.post("/api/scheduling/availability/bulk-check", json={
            "therapist_id": TEST_THERAPIST_ID,
            "scheduled_date": MONDAY,
            "time_slots": [{"time": "09:00", "duration": 600}],
        })

        assert response.status_code == 400

    def test_slots(self, client):
        response = client.get("/api/scheduling/availability/slots", params={
            "therapist_id": TEST_THERAPIST_ID,
            "date": MONDAY,
        })

        assert response.status_code == 200
        assert response.json()["slots"] == ["09:00", "10:15", "14:00", "15:15"]

    def test_resolve(self, client, store):
        store.add_booking(create_booking(scheduled_time='10:00'))

        response = client.post("/api/scheduling/conflicts/resolve", json={
            "therapist_id": TEST_THERAPIST_ID,
            "scheduled_date": MONDAY,
            "duration": 60,
            "preferred_time": "10:00",
            "max_time_shift": 60,
        })

        data = response.json()
        assert data["resolved"] is True
        assert data["suggested_time_label"] == "11:00"


class TestSessionRoutes:

    def test_book_and_conflict(self, client):
        body = {
            "therapist_id": TEST_THERAPIST_ID,
            "patient_id": TEST_PATIENT_ID,
            "scheduled_date": MONDAY,
            "scheduled_time": "10:00",
            "duration": 60,
        }

        first = client.post("/api/scheduling/sessions", json=body)
        second = client.post("/api/scheduling/sessions", json=body)

        assert first.status_code == 201
        assert first.json()["status"] == "SCHEDULED"
        assert second.status_code == 409
        assert second.json()["detail"]["error"] == "slot_not_available"

    def test_status_and_cancel(self, client, store):
        booking = store.add_booking(create_booking(scheduled_time='10:00'))

        confirmed = client.post(f"/api/scheduling/sessions/{booking.id}/status", json={"status": "CONFIRMED"})
        cancelled = client.post(f"/api/scheduling/sessions/{booking.id}/cancel", json={"reason": "sick"})
        again = client.post(f"/api/scheduling/sessions/{booking.id}/cancel")

        assert confirmed.json()["status"] == "CONFIRMED"
        assert cancelled.json()["cancellation_reason"] == "sick"
        assert again.status_code == 400

    def test_cancel_unknown(self, client):
        response = client.post("/api/scheduling/sessions/missing/cancel")

        assert response.status_code == 404

    def test_reschedule(self, client, store):
        booking = store.add_booking(create_booking(scheduled_time='10:00'))

        response = client.post(f"/api/scheduling/sessions/{booking.id}/reschedule", json={
            "new_date": "2025-03-04",
            "new_time": "14:00",
        })

        assert response.status_code == 200
        assert response.json()["scheduled_date"] == "2025-03-04"


class TestAssignmentAndBulkRoutes:

    def test_assign(self, client):
        response = client.post("/api/scheduling/assignments", json={
            "specialty_id": "speech-therapy",
            "requested_date": MONDAY,
            "requested_time": "10:00",
            "patient_id": TEST_PATIENT_ID,
        })

        data = response.json()
        assert data["assigned_therapist_id"] == TEST_THERAPIST_ID
        assert data["booking"]["patient_id"] == TEST_PATIENT_ID

    def test_bulk_schedule(self, client):
        response = client.post("/api/scheduling/plans/plan-001/bulk-schedule", json={
            "date_range": {"start": MONDAY, "end": "2025-05-05"},
            "frequency": "WEEKLY",
            "time_slots": [{"time": "10:00", "duration": 60}],
        })

        assert response.status_code == 200
        assert response.json()["sessions_created"] == 10

    def test_bulk_schedule_validation(self, client):
        response = client.post("/api/scheduling/plans/plan-001/bulk-schedule", json={
            "date_range": {"start": MONDAY, "end": "2025-05-05"},
            "frequency": "MONTHLY",
            "time_slots": [{"time": "10:00", "duration": 60}],
        })

        assert response.status_code == 422

    def test_bulk_schedule_short_slot(self, client):
        response = client.post("/api/scheduling/plans/plan-001/bulk-schedule", json={
            "date_range": {"start": MONDAY, "end": "2025-05-05"},
            "frequency": "WEEKLY",
            "time_slots": [{"time": "10:00", "duration": 10}],
        })

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_scheduling_request"

    def test_bulk_schedule_unknown_plan(self, client):
        response = client.post("/api/scheduling/plans/nope/bulk-schedule", json={
            "date_range": {"start": MONDAY, "end": "2025-05-05"},
            "frequency": "WEEKLY",
            "time_slots": [{"time": "10:00", "duration": 60}],
        })

        assert response.status_code == 404


class TestCapacityRoutes:

    def test_utilization(self, client, store):
        store.add_booking(create_booking(scheduled_time='09:00', duration=240))

        response = client.get(f"/api/scheduling/capacity/{TEST_THERAPIST_ID}", params={"reference_date": MONDAY})

        data = response.json()
        assert data["utilization"] == pytest.approx(50.0)
        assert data["severity"] == "normal"

    def test_threshold_and_alerts(self, client, store):
        store.add_booking(create_booking(scheduled_time='09:00', duration=240))

        put = client.put("/api/scheduling/capacity/thresholds", json={
            "therapist_id": TEST_THERAPIST_ID,
            "alert_type": "WORKLOAD_HIGH",
            "threshold": 40,
        })
        alerts = client.get(f"/api/scheduling/capacity/{TEST_THERAPIST_ID}/alerts", params={"reference_date": MONDAY})

        assert put.status_code == 200
        assert [a["alert_type"] for a in alerts.json()] == ["WORKLOAD_HIGH"]

    def test_threshold_unknown_therapist(self, client):
        response = client.put("/api/scheduling/capacity/thresholds", json={
            "therapist_id": "ghost",
            "alert_type": "WORKLOAD_HIGH",
            "threshold": 40,
        })

        assert response.status_code == 404

    def test_overview(self, client):
        response = client.get("/api/scheduling/capacity", params={"reference_date": MONDAY})

        data = response.json()
        assert len(data["therapists"]) == 1
        assert data["underutilized_therapists"] == 1

    def test_workload(self, client, store):
        store.add_booking(create_booking(scheduled_time='09:00', duration=90))

        response = client.get(f"/api/scheduling/capacity/{TEST_THERAPIST_ID}/workload", params={
            "start": MONDAY,
            "end": "2025-03-09",
        })

        data = response.json()
        assert data["total_sessions"] == 1
        assert data["daily"][MONDAY]["hours"] == pytest.approx(1.5)
        assert data["weekly"]["2025-W10"]["sessions"] == 1
        assert data["projection"]["next_week_hours"] == pytest.approx(1.65)

    def test_health(self, client):
        response = client.get("/api/scheduling/health")

        assert response.json()["status"] == "healthy"
