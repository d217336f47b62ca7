"""
In-memory scheduling store.

Used for tests and local development. Enforces the same overlap rule a
database exclusion constraint would, under a single mutex.
"""

import logging
import threading
from typing import Dict, List, Optional

from ..exceptions import BookingNotFoundError, WriteConflictError
from ..models.scheduling import (
    Booking,
    BookingQuery,
    CapacityAlertThreshold,
    CapacityConfig,
    DayOfWeek,
    ScheduleConfig,
    Therapist,
    TherapistQuery,
    TreatmentPlan,
)
from .store import SchedulingStore

logger = logging.getLogger(__name__)


class InMemorySchedulingStore(SchedulingStore):
    """Dictionary-backed store with atomic overlap rejection."""

    def __init__(self):
        self._lock = threading.Lock()
        self.therapists: Dict[str, Therapist] = {}
        self.schedule_configs: Dict[str, ScheduleConfig] = {}
        self.bookings: Dict[str, Booking] = {}
        self.capacity_configs: Dict[str, CapacityConfig] = {}
        self.alert_thresholds: Dict[str, CapacityAlertThreshold] = {}
        self.plans: Dict[str, TreatmentPlan] = {}

    # Seeding helpers (synchronous, for fixtures and admin tooling)

    def add_therapist(self, therapist: Therapist) -> Therapist:
        self.therapists[therapist.id] = therapist
        return therapist

    def add_schedule_config(self, config: ScheduleConfig) -> ScheduleConfig:
        self.schedule_configs[config.id] = config
        return config

    def add_booking(self, booking: Booking) -> Booking:
        """Insert a session, still rejecting overlaps."""
        with self._lock:
            self._assert_no_overlap(booking)
            self.bookings[booking.id] = booking.model_copy(deep=True)
        return booking

    def add_capacity_config(self, config: CapacityConfig) -> CapacityConfig:
        self.capacity_configs[config.therapist_id] = config
        return config

    def add_plan(self, plan: TreatmentPlan) -> TreatmentPlan:
        self.plans[plan.id] = plan
        return plan

    # SchedulingStore

    async def get_therapist(self, therapist_id: str) -> Optional[Therapist]:
        return self.therapists.get(therapist_id)

    async def list_therapists(self, query: TherapistQuery) -> List[Therapist]:
        return sorted(
            (t for t in self.therapists.values() if query.matches(t)),
            key=lambda t: t.id,
        )

    async def list_schedule_configs(self, therapist_id: str, day_of_week: DayOfWeek) -> List[ScheduleConfig]:
        return [
            c for c in self.schedule_configs.values()
            if c.therapist_id == therapist_id and c.day_of_week == day_of_week
        ]

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        booking = self.bookings.get(booking_id)
        return booking.model_copy(deep=True) if booking else None

    async def list_bookings(self, query: BookingQuery) -> List[Booking]:
        with self._lock:
            found = [b.model_copy(deep=True) for b in self.bookings.values() if query.matches(b)]
        return sorted(found, key=lambda b: (b.scheduled_date, b.scheduled_time, b.id))

    async def insert_booking(self, booking: Booking) -> Booking:
        with self._lock:
            if booking.id in self.bookings:
                raise WriteConflictError(booking.therapist_id, f"Session {booking.id} already exists")
            self._assert_no_overlap(booking)
            self.bookings[booking.id] = booking.model_copy(deep=True)
        logger.debug(f"Inserted session {booking.id} for therapist {booking.therapist_id}")
        return booking

    async def update_booking(self, booking: Booking) -> Booking:
        with self._lock:
            if booking.id not in self.bookings:
                raise BookingNotFoundError(booking.id)
            self._assert_no_overlap(booking)
            self.bookings[booking.id] = booking.model_copy(deep=True)
        return booking

    async def get_capacity_config(self, therapist_id: str) -> Optional[CapacityConfig]:
        return self.capacity_configs.get(therapist_id)

    async def list_alert_thresholds(self, therapist_id: str) -> List[CapacityAlertThreshold]:
        return [t for t in self.alert_thresholds.values() if t.therapist_id == therapist_id]

    async def save_alert_threshold(self, threshold: CapacityAlertThreshold) -> CapacityAlertThreshold:
        # One threshold per (therapist, alert type)
        with self._lock:
            for existing in list(self.alert_thresholds.values()):
                if existing.therapist_id == threshold.therapist_id and existing.alert_type == threshold.alert_type:
                    del self.alert_thresholds[existing.id]
            self.alert_thresholds[threshold.id] = threshold
        return threshold

    async def get_treatment_plan(self, plan_id: str) -> Optional[TreatmentPlan]:
        return self.plans.get(plan_id)

    def _assert_no_overlap(self, booking: Booking) -> None:
        # Caller holds self._lock
        if not booking.is_active:
            return
        for existing in self.bookings.values():
            if existing.id == booking.id or not existing.is_active:
                continue
            if booking.overlaps(existing):
                raise WriteConflictError(
                    booking.therapist_id,
                    f"Session {booking.id} overlaps active session {existing.id}",
                )
