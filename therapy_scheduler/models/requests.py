"""
Request bodies accepted by the scheduling API.
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field

from .results import TimeSlot
from .scheduling import BookingStatus, MinuteOfDay


class AvailabilityCheckRequest(BaseModel):
    therapist_id: str
    scheduled_date: date
    start_time: MinuteOfDay = Field(..., description="Minute of day or HH:MM")
    duration: int
    exclude_booking_id: Optional[str] = None


class ResolveConflictRequest(BaseModel):
    therapist_id: str
    scheduled_date: date
    duration: int
    preferred_time: Optional[MinuteOfDay] = None
    max_time_shift: Optional[int] = Field(None, ge=0)
    allow_different_day: bool = False


class BookSessionRequest(BaseModel):
    therapist_id: str
    patient_id: str
    scheduled_date: date
    scheduled_time: MinuteOfDay
    duration: int
    plan_id: Optional[str] = None
    service_id: Optional[str] = None
    notes: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: BookingStatus
    cancellation_reason: Optional[str] = None


class CancelSessionRequest(BaseModel):
    reason: Optional[str] = None


class RescheduleSessionRequest(BaseModel):
    new_date: date
    new_time: MinuteOfDay
    duration: Optional[int] = None
    auto_resolve: bool = False
    max_time_shift: Optional[int] = Field(None, ge=0)


class BulkAvailabilityRequest(BaseModel):
    therapist_id: str
    scheduled_date: date
    time_slots: List[TimeSlot] = Field(..., min_length=1)
    exclude_booking_ids: List[str] = Field(default_factory=list)
