"""
Pydantic models for scheduling engine results.
"""

from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from ..utils.time_utils import minutes_to_time
from .scheduling import (
    AlertType, Booking, CapacityConfig, DayOfWeek, Frequency, MinuteOfDay, Urgency
)


class ConflictReason(str, Enum):
    """Why a candidate slot was rejected."""
    NON_WORKING_DAY = "non-working-day"
    OUTSIDE_HOURS = "outside-hours"
    BREAK_TIME = "break-time"
    CONFLICT = "conflict"
    CAPACITY = "capacity"


class ResolutionFailure(str, Enum):
    """Failure classes summarised by the conflict resolver."""
    CAPACITY = "capacity"
    NO_SLOT = "no-slot"
    OUT_OF_RANGE = "out-of-range"


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    NORMAL = "normal"
    INFO = "info"


class BookingRef(BaseModel):
    """Reference to an existing session that blocks a candidate."""
    id: str
    patient_id: str
    scheduled_time: int
    end_time: int

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingRef":
        return cls(
            id=booking.id,
            patient_id=booking.patient_id,
            scheduled_time=booking.scheduled_time,
            end_time=booking.end_time,
        )


class ConflictResult(BaseModel):
    """Outcome of a single availability check."""
    available: bool
    reason: Optional[ConflictReason] = None
    message: Optional[str] = None
    conflicts: List[BookingRef] = Field(default_factory=list)
    suggestions: List[int] = Field(default_factory=list, description="Alternative start times (minute of day)")

    @computed_field
    @property
    def suggested_times(self) -> List[str]:
        return [minutes_to_time(m) for m in self.suggestions]


class BulkAvailabilityResult(BaseModel):
    """Availability of several candidate slots on one date."""
    therapist_id: str
    scheduled_date: date
    results: Dict[str, ConflictResult] = Field(default_factory=dict, description="Keyed by HH:MM-HH:MM")

    @computed_field
    @property
    def available_count(self) -> int:
        return sum(1 for r in self.results.values() if r.available)


class Resolution(BaseModel):
    """Outcome of a conflict resolution search."""
    resolved: bool
    suggested_date: Optional[date] = None
    suggested_time: Optional[int] = None
    shift_minutes: Optional[int] = None
    reason: str
    failure: Optional[ResolutionFailure] = None
    attempts: int = 0

    @computed_field
    @property
    def suggested_time_label(self) -> Optional[str]:
        if self.suggested_time is None:
            return None
        return minutes_to_time(self.suggested_time)


class CandidateScore(BaseModel):
    """Ranking inputs for one eligible therapist."""
    therapist_id: str
    same_day_sessions: int
    available: bool
    reason: Optional[str] = None


class AssignmentResult(BaseModel):
    assigned_therapist_id: Optional[str] = None
    reason: Optional[str] = None
    strategy: str
    urgency: Urgency = Urgency.MEDIUM
    total_candidates: int = 0
    alternatives: List[CandidateScore] = Field(default_factory=list)
    booking: Optional[Booking] = None


class DateRange(BaseModel):
    start: date
    end: date

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("date range end precedes start")
        return self


class TimeSlot(BaseModel):
    time: MinuteOfDay
    duration: int = Field(..., gt=0)


class BulkScheduleParams(BaseModel):
    date_range: DateRange
    frequency: Frequency
    days_of_week: Optional[List[DayOfWeek]] = None
    time_slots: List[TimeSlot] = Field(..., min_length=1)
    auto_resolve_conflicts: bool = False
    max_time_shift: int = Field(60, ge=0, le=480)
    notes: Optional[str] = None


class SlotError(BaseModel):
    """A (date, slot) pair that could not be booked."""
    service_id: str
    scheduled_date: date
    requested_time: int
    reason: str
    message: str


class CreatedSession(BaseModel):
    booking: Booking
    requested_time: int

    @computed_field
    @property
    def shifted(self) -> bool:
        return self.booking.scheduled_time != self.requested_time


class BatchResult(BaseModel):
    plan_id: str
    created_sessions: List[CreatedSession] = Field(default_factory=list)
    errors: List[SlotError] = Field(default_factory=list)
    shortfall: Dict[str, int] = Field(default_factory=dict, description="Sessions still missing per service")

    @computed_field
    @property
    def sessions_created(self) -> int:
        return len(self.created_sessions)


class WorkloadSnapshot(BaseModel):
    """Derived workload around a reference date; never persisted."""
    therapist_id: str
    reference_date: date
    sessions_today: int = 0
    hours_today: float = 0.0
    sessions_this_week: int = 0
    hours_this_week: float = 0.0
    sessions_this_month: int = 0
    hours_this_month: float = 0.0


class DailyLoad(BaseModel):
    sessions: int = 0
    hours: float = 0.0


class WorkloadProjection(BaseModel):
    """Expected load if the range's weekly rate continues, capped by the limits."""
    next_week_sessions: float = 0.0
    next_week_hours: float = 0.0
    next_month_sessions: float = 0.0
    next_month_hours: float = 0.0


class RangeWorkload(BaseModel):
    therapist_id: str
    start: date
    end: date
    total_sessions: int = 0
    total_hours: float = 0.0
    average_session_hours: float = 0.0
    daily: Dict[date, DailyLoad] = Field(default_factory=dict)
    weekly: Dict[str, DailyLoad] = Field(default_factory=dict, description="Keyed by ISO week, e.g. 2025-W10")
    trend: float = Field(0.0, description="Change in weekly sessions, first to last week, in percent")
    projection: WorkloadProjection = Field(default_factory=WorkloadProjection)


class CapacityAlert(BaseModel):
    alert_type: AlertType
    severity: AlertSeverity
    utilization: float
    threshold: float
    message: str


class UtilizationReport(BaseModel):
    therapist_id: str
    reference_date: date
    capacity: CapacityConfig
    workload: WorkloadSnapshot
    utilization: float
    severity: AlertSeverity
    alerts: List[CapacityAlert] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class CapacityOverview(BaseModel):
    reference_date: date
    therapists: List[UtilizationReport] = Field(default_factory=list)
    average_utilization: float = 0.0
    max_utilization: float = 0.0
    min_utilization: float = 0.0
    overloaded_therapists: int = 0
    underutilized_therapists: int = 0
