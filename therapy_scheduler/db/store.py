"""
Persistence contract required by the scheduling engine.

The engine never talks to a database directly; it consumes this interface.
Implementations must make ``insert_booking`` and ``update_booking`` reject a
write that would leave two overlapping active sessions for one therapist on
one date (raising ``WriteConflictError``), atomically with the write itself.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional

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


class SchedulingStore(ABC):
    """Read/write operations the engine needs from the persistence layer."""

    # Therapists

    @abstractmethod
    async def get_therapist(self, therapist_id: str) -> Optional[Therapist]:
        ...

    @abstractmethod
    async def list_therapists(self, query: TherapistQuery) -> List[Therapist]:
        ...

    # Schedule configuration

    @abstractmethod
    async def list_schedule_configs(self, therapist_id: str, day_of_week: DayOfWeek) -> List[ScheduleConfig]:
        ...

    # Sessions

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        ...

    @abstractmethod
    async def list_bookings(self, query: BookingQuery) -> List[Booking]:
        ...

    @abstractmethod
    async def insert_booking(self, booking: Booking) -> Booking:
        """Persist a new session. Raises WriteConflictError on overlap."""

    @abstractmethod
    async def update_booking(self, booking: Booking) -> Booking:
        """Replace an existing session. Raises WriteConflictError on overlap."""

    # Capacity

    @abstractmethod
    async def get_capacity_config(self, therapist_id: str) -> Optional[CapacityConfig]:
        ...

    @abstractmethod
    async def list_alert_thresholds(self, therapist_id: str) -> List[CapacityAlertThreshold]:
        ...

    @abstractmethod
    async def save_alert_threshold(self, threshold: CapacityAlertThreshold) -> CapacityAlertThreshold:
        ...

    # Treatment plans

    @abstractmethod
    async def get_treatment_plan(self, plan_id: str) -> Optional[TreatmentPlan]:
        ...

    async def count_active_bookings(self, therapist_id: str, day: date) -> int:
        """Number of slot-occupying sessions for a therapist on a date."""
        return len(await self.list_bookings(BookingQuery.active_on(therapist_id, day)))
