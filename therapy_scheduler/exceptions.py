"""
Custom exceptions for the scheduling engine.
"""

from typing import Optional


class SchedulingError(Exception):
    """Base class for all scheduling engine errors."""


class InvalidSchedulingRequestError(SchedulingError):
    """Raised when a scheduling request is malformed (bad date, time or duration)."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class NotFoundError(SchedulingError):
    """Raised when a referenced entity does not exist."""


class TherapistNotFoundError(NotFoundError):
    """Raised when a therapist id is unknown."""

    def __init__(self, therapist_id: str):
        self.therapist_id = therapist_id
        super().__init__(f"Therapist {therapist_id} not found")


class BookingNotFoundError(NotFoundError):
    """Raised when a session id is unknown."""

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Session {booking_id} not found")


class PlanNotFoundError(NotFoundError):
    """Raised when a treatment plan id is unknown."""

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Treatment plan {plan_id} not found")


class ScheduleNotFoundError(NotFoundError):
    """Raised when no schedule configuration applies."""


class NotWorkingDayError(ScheduleNotFoundError):
    """Raised when the therapist does not work on the requested date."""

    def __init__(self, therapist_id: str, day: str):
        self.therapist_id = therapist_id
        self.day = day
        super().__init__(f"Therapist {therapist_id} does not work on {day}")


class NoSlotsAvailableError(SchedulingError):
    """Raised when a slot search is exhausted without an acceptable slot."""

    def __init__(self, message: str = "No available slots found", reason: Optional[str] = None):
        self.reason = reason
        super().__init__(message)


class CapacityExceededError(SchedulingError):
    """Raised when the therapist's daily session cap is already reached."""

    def __init__(self, therapist_id: str, limit: int):
        self.therapist_id = therapist_id
        self.limit = limit
        super().__init__(f"Therapist {therapist_id} already has {limit} sessions on this day")


class SlotNotAvailableError(SchedulingError):
    """Raised when attempting to book a slot that is not available."""

    def __init__(self, message: str, reason: Optional[str] = None, conflicting_ids: Optional[list] = None):
        self.reason = reason
        self.conflicting_ids = conflicting_ids or []
        super().__init__(message)


class WriteConflictError(SchedulingError):
    """Raised by a store when a write would overlap an active session."""

    def __init__(self, therapist_id: str, message: Optional[str] = None):
        self.therapist_id = therapist_id
        super().__init__(message or f"Overlapping active session for therapist {therapist_id}")


class ConcurrencyConflictError(SchedulingError):
    """Raised when a booking lost the check-then-write race twice."""

    def __init__(self, therapist_id: str, message: Optional[str] = None):
        self.therapist_id = therapist_id
        super().__init__(
            message or f"Concurrent booking detected for therapist {therapist_id}, please retry"
        )


class InvalidStatusTransitionError(SchedulingError):
    """Raised when a session status change is not allowed."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change session status from {current} to {target}")
