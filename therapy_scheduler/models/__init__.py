"""Data models for the scheduling engine."""
from therapy_scheduler.models.scheduling import (
    ACTIVE_STATUSES,
    AssignmentRequest,
    Booking,
    BookingQuery,
    BookingStatus,
    CapacityAlertThreshold,
    CapacityConfig,
    ScheduleConfig,
    Therapist,
    TherapistQuery,
    TreatmentPlan,
    Window,
)

__all__ = [
    "ACTIVE_STATUSES",
    "AssignmentRequest",
    "Booking",
    "BookingQuery",
    "BookingStatus",
    "CapacityAlertThreshold",
    "CapacityConfig",
    "ScheduleConfig",
    "Therapist",
    "TherapistQuery",
    "TreatmentPlan",
    "Window",
]
