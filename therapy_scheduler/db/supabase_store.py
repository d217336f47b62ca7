"""
Supabase-backed scheduling store.

Reads go through the PostgREST table builder. Session writes go through
Postgres RPCs (``book_session_atomic`` / ``update_session_atomic``) because the
REST API cannot run a multi-statement transaction: the stored procedures take a
row lock on the therapist, re-run the overlap check and write in one
transaction, returning ``{"success": false, "error": "slot_conflict"}`` when an
overlapping active session already exists.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from ..exceptions import BookingNotFoundError, SchedulingError, WriteConflictError
from ..models.scheduling import (
    ACTIVE_STATUSES,
    Booking,
    BookingQuery,
    CapacityAlertThreshold,
    CapacityConfig,
    DayOfWeek,
    PlanService,
    ScheduleConfig,
    Therapist,
    TherapistQuery,
    TreatmentPlan,
)
from ..utils.time_utils import minutes_to_time
from .store import SchedulingStore

logger = logging.getLogger(__name__)

THERAPISTS_TABLE = "therapists"
SCHEDULE_CONFIGS_TABLE = "therapist_schedule_configs"
SESSIONS_TABLE = "patient_sessions"
CAPACITY_TABLE = "therapist_capacity"
ALERTS_TABLE = "capacity_alerts"
PLANS_TABLE = "treatment_plans"

SLOT_CONFLICT = "slot_conflict"
NOT_FOUND = "not_found"


def _time_in(value: Any) -> Any:
    """Postgres TIME columns come back as HH:MM:SS; the models take HH:MM."""
    if isinstance(value, str) and len(value) > 5:
        return value[:5]
    return value


def _row_to_therapist(row: Dict[str, Any]) -> Therapist:
    return Therapist(
        id=row["id"],
        name=row.get("name"),
        specialties=set(row.get("specialties") or []),
        active=row.get("is_active", True),
        can_take_consultations=row.get("can_take_consultations", True),
    )


def _row_to_schedule_config(row: Dict[str, Any]) -> ScheduleConfig:
    data = dict(row)
    data["day_of_week"] = str(data["day_of_week"]).upper()
    for key in ("start_time", "end_time", "break_start", "break_end"):
        data[key] = _time_in(data.get(key))
    return ScheduleConfig.model_validate(data)


def _row_to_booking(row: Dict[str, Any]) -> Booking:
    data = dict(row)
    data["scheduled_time"] = _time_in(data.get("scheduled_time"))
    data["status"] = str(data.get("status", "SCHEDULED")).upper()
    return Booking.model_validate(data)


def _booking_to_row(booking: Booking) -> Dict[str, Any]:
    row = booking.model_dump(mode="json")
    row["scheduled_time"] = minutes_to_time(booking.scheduled_time)
    return row


class SupabaseSchedulingStore(SchedulingStore):
    """Scheduling store on top of a (sync) Supabase client."""

    def __init__(self, supabase_client):
        """
        Args:
            supabase_client: Supabase client bound to the scheduling schema
        """
        self.supabase = supabase_client

    async def get_therapist(self, therapist_id: str) -> Optional[Therapist]:
        result = self.supabase.table(THERAPISTS_TABLE).select("*").eq(
            "id", therapist_id
        ).limit(1).execute()
        if not result.data:
            return None
        return _row_to_therapist(result.data[0])

    async def list_therapists(self, query: TherapistQuery) -> List[Therapist]:
        builder = self.supabase.table(THERAPISTS_TABLE).select("*")
        if query.active is not None:
            builder = builder.eq("is_active", query.active)
        if query.can_take_consultations is not None:
            builder = builder.eq("can_take_consultations", query.can_take_consultations)
        if query.specialty_id is not None:
            builder = builder.contains("specialties", [query.specialty_id])
        result = builder.execute()

        therapists = [_row_to_therapist(row) for row in (result.data or [])]
        # Exclusions are applied locally; PostgREST's not.in syntax varies by version
        return sorted((t for t in therapists if query.matches(t)), key=lambda t: t.id)

    async def list_schedule_configs(self, therapist_id: str, day_of_week: DayOfWeek) -> List[ScheduleConfig]:
        result = self.supabase.table(SCHEDULE_CONFIGS_TABLE).select("*").eq(
            "therapist_id", therapist_id
        ).eq(
            "day_of_week", day_of_week.value
        ).execute()
        return [_row_to_schedule_config(row) for row in (result.data or [])]

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        result = self.supabase.table(SESSIONS_TABLE).select("*").eq(
            "id", booking_id
        ).limit(1).execute()
        if not result.data:
            return None
        return _row_to_booking(result.data[0])

    async def list_bookings(self, query: BookingQuery) -> List[Booking]:
        builder = self.supabase.table(SESSIONS_TABLE).select("*")
        if query.therapist_id is not None:
            builder = builder.eq("therapist_id", query.therapist_id)
        if query.plan_id is not None:
            builder = builder.eq("plan_id", query.plan_id)
        if query.date_from is not None:
            builder = builder.gte("scheduled_date", query.date_from.isoformat())
        if query.date_to is not None:
            builder = builder.lte("scheduled_date", query.date_to.isoformat())
        if query.statuses is not None:
            builder = builder.in_("status", sorted(s.value for s in query.statuses))
        result = builder.order("scheduled_date").order("scheduled_time").execute()

        bookings = [_row_to_booking(row) for row in (result.data or [])]
        return [b for b in bookings if query.matches(b)]

    async def insert_booking(self, booking: Booking) -> Booking:
        payload = self._call_atomic("book_session_atomic", booking)
        if payload.get("session_id"):
            booking = booking.model_copy(update={"id": payload["session_id"]})
        logger.info("session.inserted", extra={
            "session_id": booking.id,
            "therapist_id": booking.therapist_id,
        })
        return booking

    async def update_booking(self, booking: Booking) -> Booking:
        self._call_atomic("update_session_atomic", booking)
        return booking

    async def count_active_bookings(self, therapist_id: str, day: date) -> int:
        result = self.supabase.table(SESSIONS_TABLE).select("id", count="exact").eq(
            "therapist_id", therapist_id
        ).eq(
            "scheduled_date", day.isoformat()
        ).in_(
            "status", sorted(s.value for s in ACTIVE_STATUSES)
        ).execute()
        if result.count is not None:
            return result.count
        return len(result.data or [])

    async def get_capacity_config(self, therapist_id: str) -> Optional[CapacityConfig]:
        result = self.supabase.table(CAPACITY_TABLE).select("*").eq(
            "therapist_id", therapist_id
        ).limit(1).execute()
        if not result.data:
            return None
        return CapacityConfig.model_validate(result.data[0])

    async def list_alert_thresholds(self, therapist_id: str) -> List[CapacityAlertThreshold]:
        result = self.supabase.table(ALERTS_TABLE).select("*").eq(
            "therapist_id", therapist_id
        ).execute()
        return [CapacityAlertThreshold.model_validate(row) for row in (result.data or [])]

    async def save_alert_threshold(self, threshold: CapacityAlertThreshold) -> CapacityAlertThreshold:
        result = self.supabase.table(ALERTS_TABLE).upsert(
            threshold.model_dump(mode="json"),
            on_conflict="therapist_id,alert_type"
        ).execute()
        if result.data:
            return CapacityAlertThreshold.model_validate(result.data[0])
        return threshold

    async def get_treatment_plan(self, plan_id: str) -> Optional[TreatmentPlan]:
        result = self.supabase.table(PLANS_TABLE).select("*").eq(
            "id", plan_id
        ).limit(1).execute()
        if not result.data:
            return None
        row = result.data[0]
        return TreatmentPlan(
            id=row["id"],
            patient_id=row["patient_id"],
            therapist_id=row["therapist_id"],
            status=str(row.get("status", "APPROVED")).upper(),
            services=[PlanService.model_validate(s) for s in (row.get("services") or [])],
        )

    def _call_atomic(self, rpc_name: str, booking: Booking) -> Dict[str, Any]:
        result = self.supabase.rpc(rpc_name, {"p_session": _booking_to_row(booking)}).execute()
        payload = result.data
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not payload:
            logger.error(f"{rpc_name} RPC returned no data")
            raise SchedulingError(f"Unexpected empty response from {rpc_name}")

        if payload.get("success"):
            return payload

        error = payload.get("error")
        if error == SLOT_CONFLICT:
            raise WriteConflictError(booking.therapist_id)
        if error == NOT_FOUND:
            raise BookingNotFoundError(booking.id)
        raise SchedulingError(f"{rpc_name} failed: {error}")
