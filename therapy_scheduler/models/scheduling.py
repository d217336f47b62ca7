"""
Pydantic models for the scheduling engine entities and store queries.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Iterable, List, Optional, Set

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from ..utils.time_utils import MINUTES_PER_DAY, coerce_minutes, minutes_to_time, overlaps, weekday_name

# Minute-of-day; accepts "HH:MM" on input
MinuteOfDay = Annotated[int, BeforeValidator(coerce_minutes), Field(ge=0, le=MINUTES_PER_DAY)]


def _new_id() -> str:
    return str(uuid.uuid4())


class DayOfWeek(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @classmethod
    def of(cls, day: date) -> "DayOfWeek":
        return cls(weekday_name(day))


class BookingStatus(str, Enum):
    """Session lifecycle status."""
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    RESCHEDULE_REQUESTED = "RESCHEDULE_REQUESTED"


# Statuses that occupy a slot
ACTIVE_STATUSES = frozenset({
    BookingStatus.SCHEDULED,
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
})


class Urgency(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class Frequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"

    @property
    def step_days(self) -> int:
        return {"DAILY": 1, "WEEKLY": 7, "BIWEEKLY": 14}[self.value]


class PlanStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AlertType(str, Enum):
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    WORKLOAD_HIGH = "WORKLOAD_HIGH"
    UNDERUTILIZED = "UNDERUTILIZED"


class Therapist(BaseModel):
    """Therapist identity and eligibility flags."""
    id: str
    name: Optional[str] = None
    specialties: Set[str] = Field(default_factory=set)
    active: bool = True
    can_take_consultations: bool = True


class ScheduleConfig(BaseModel):
    """Recurring or one-off working hours for one weekday."""
    id: str = Field(default_factory=_new_id)
    therapist_id: str
    day_of_week: DayOfWeek
    start_time: MinuteOfDay
    end_time: MinuteOfDay
    break_start: Optional[MinuteOfDay] = None
    break_end: Optional[MinuteOfDay] = None
    max_sessions_per_day: int = Field(8, ge=1)
    session_duration: int = Field(60, gt=0)
    buffer_time: int = Field(15, ge=0)
    is_working_day: bool = True
    is_recurring: bool = True
    effective_date: date
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def check_window(self) -> "ScheduleConfig":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        if (self.break_start is None) != (self.break_end is None):
            raise ValueError("break_start and break_end must be given together")
        if self.break_start is not None:
            if self.break_start >= self.break_end:
                raise ValueError("break_start must be before break_end")
            if self.break_start < self.start_time or self.break_end > self.end_time:
                raise ValueError("break must lie inside working hours")
        if self.end_date is not None and self.end_date < self.effective_date:
            raise ValueError("end_date cannot precede effective_date")
        return self

    def covers(self, day: date) -> bool:
        """True if this config's effective range includes ``day``."""
        if day < self.effective_date:
            return False
        if self.end_date is not None:
            return day <= self.end_date
        # One-off configs without an end date apply to their own date only
        return self.is_recurring or day == self.effective_date


class Booking(BaseModel):
    """A therapy session occupying (or having occupied) a therapist slot."""
    id: str = Field(default_factory=_new_id)
    therapist_id: str
    patient_id: str
    plan_id: Optional[str] = None
    service_id: Optional[str] = None
    scheduled_date: date
    scheduled_time: MinuteOfDay
    duration: int = Field(..., gt=0)
    status: BookingStatus = BookingStatus.SCHEDULED
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def end_time(self) -> int:
        return self.scheduled_time + self.duration

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def overlaps(self, other: "Booking") -> bool:
        return (
            self.therapist_id == other.therapist_id
            and self.scheduled_date == other.scheduled_date
            and overlaps(self.scheduled_time, self.end_time, other.scheduled_time, other.end_time)
        )


class CapacityConfig(BaseModel):
    """Per-therapist workload limits set by an administrator."""
    therapist_id: str
    max_sessions_per_day: int = Field(8, ge=0)
    max_sessions_per_week: int = Field(40, ge=0)
    max_sessions_per_month: int = Field(160, ge=0)
    max_hours_per_day: float = Field(8.0, ge=0)
    max_hours_per_week: float = Field(40.0, ge=0)


class CapacityAlertThreshold(BaseModel):
    """Admin-configured alert cut-off; never holds a computed value."""
    id: str = Field(default_factory=_new_id)
    therapist_id: str
    alert_type: AlertType
    threshold: float = Field(..., ge=0, le=100)
    is_active: bool = True


class PlanService(BaseModel):
    service_id: str
    total_sessions: int = Field(..., gt=0)


class TreatmentPlan(BaseModel):
    """Approved therapeutic proposal that drives bulk scheduling."""
    id: str
    patient_id: str
    therapist_id: str
    status: PlanStatus = PlanStatus.APPROVED
    services: List[PlanService] = Field(..., min_length=1)


class AssignmentRequest(BaseModel):
    """Incoming consultation request; consumed once."""
    specialty_id: str
    requested_date: date
    requested_time: MinuteOfDay
    duration: int = Field(60, gt=0)
    urgency: Urgency = Urgency.MEDIUM
    preferred_therapist_id: Optional[str] = None
    exclude_therapist_ids: Set[str] = Field(default_factory=set)
    max_workload: Optional[int] = Field(None, ge=1)
    patient_id: Optional[str] = None


class TherapistQuery(BaseModel):
    """Typed therapist filter; unknown fields are rejected."""
    model_config = ConfigDict(extra="forbid")

    specialty_id: Optional[str] = None
    active: Optional[bool] = None
    can_take_consultations: Optional[bool] = None
    exclude_ids: Set[str] = Field(default_factory=set)

    def matches(self, therapist: Therapist) -> bool:
        if self.specialty_id is not None and self.specialty_id not in therapist.specialties:
            return False
        if self.active is not None and therapist.active != self.active:
            return False
        if self.can_take_consultations is not None and therapist.can_take_consultations != self.can_take_consultations:
            return False
        return therapist.id not in self.exclude_ids


class BookingQuery(BaseModel):
    """Typed session filter; unknown fields are rejected."""
    model_config = ConfigDict(extra="forbid")

    therapist_id: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    statuses: Optional[Set[BookingStatus]] = None
    exclude_booking_ids: Set[str] = Field(default_factory=set)
    plan_id: Optional[str] = None

    @classmethod
    def active_on(cls, therapist_id: str, day: date, exclude_booking_ids: Iterable[str] = ()) -> "BookingQuery":
        return cls(
            therapist_id=therapist_id,
            date_from=day,
            date_to=day,
            statuses=set(ACTIVE_STATUSES),
            exclude_booking_ids=set(exclude_booking_ids),
        )

    def matches(self, booking: Booking) -> bool:
        if self.therapist_id is not None and booking.therapist_id != self.therapist_id:
            return False
        if self.date_from is not None and booking.scheduled_date < self.date_from:
            return False
        if self.date_to is not None and booking.scheduled_date > self.date_to:
            return False
        if self.statuses is not None and booking.status not in self.statuses:
            return False
        if self.plan_id is not None and booking.plan_id != self.plan_id:
            return False
        return booking.id not in self.exclude_booking_ids


@dataclass(frozen=True)
class Window:
    """Effective working window of a therapist on one date."""
    start: int
    end: int
    session_duration: int
    buffer_time: int
    max_sessions_per_day: int
    break_start: Optional[int] = None
    break_end: Optional[int] = None
    config_id: Optional[str] = None

    def contains(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end

    def touches_break(self, start: int, end: int) -> bool:
        if self.break_start is None or self.break_end is None:
            return False
        return overlaps(start, end, self.break_start, self.break_end)

    def describe(self) -> str:
        text = f"{minutes_to_time(self.start)}-{minutes_to_time(self.end)}"
        if self.break_start is not None:
            text += f" (break {minutes_to_time(self.break_start)}-{minutes_to_time(self.break_end)})"
        return text
