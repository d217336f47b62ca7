"""
Scheduling API Routes
RESTful API endpoints for the therapy scheduling engine.

This module provides endpoints for:
- Availability checks and slot discovery
- Conflict resolution
- Therapist assignment and bulk plan scheduling
- Session booking and lifecycle (status, cancel, reschedule)
- Capacity and workload monitoring
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
import logging

from .. import __version__
from ..exceptions import (
    InvalidSchedulingRequestError,
    InvalidStatusTransitionError,
    NotFoundError,
    SchedulingError,
)
from ..models.requests import (
    AvailabilityCheckRequest,
    BookSessionRequest,
    BulkAvailabilityRequest,
    CancelSessionRequest,
    ResolveConflictRequest,
    RescheduleSessionRequest,
    StatusUpdateRequest,
)
from ..models.results import (
    AssignmentResult,
    BatchResult,
    BulkAvailabilityResult,
    BulkScheduleParams,
    CapacityAlert,
    CapacityOverview,
    ConflictResult,
    RangeWorkload,
    Resolution,
    UtilizationReport,
)
from ..models.scheduling import AssignmentRequest, Booking, CapacityAlertThreshold
from ..utils.time_utils import minutes_to_time

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scheduling", tags=["scheduling"])

# Global engine instance (initialized on first use)
_scheduling_engine = None


async def get_scheduling_engine():
    """
    Get or initialize the SchedulingEngine.
    """
    global _scheduling_engine

    from ..services.scheduling_engine import create_engine

    if _scheduling_engine is None:
        _scheduling_engine = create_engine()

    return _scheduling_engine


def _error_code(error: SchedulingError) -> str:
    name = type(error).__name__
    if name.endswith("Error"):
        name = name[:-len("Error")]
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in name).lstrip("_")


def to_http_exception(error: SchedulingError) -> HTTPException:
    """Map an engine error to an HTTP error response."""
    if isinstance(error, (InvalidSchedulingRequestError, InvalidStatusTransitionError)):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    else:
        status_code = status.HTTP_409_CONFLICT

    detail = {"error": _error_code(error), "message": str(error)}
    reason = getattr(error, "reason", None)
    if reason:
        detail["reason"] = reason
    return HTTPException(status_code=status_code, detail=detail)


# ============================================================================
# Availability Endpoints
# ============================================================================

@router.post("/availability/check", response_model=ConflictResult)
async def check_availability(
    request: AvailabilityCheckRequest,
    engine = Depends(get_scheduling_engine)
):
    """
    Check whether a therapist can take a session.

    Returns availability, the reason when unavailable, conflicting sessions and
    up to five alternative start times on the same day.

    ## Errors
    - **400 Bad Request**: Invalid date, time or duration
    - **404 Not Found**: Unknown therapist
    """
    try:
        return await engine.check_availability(
            request.therapist_id,
            request.scheduled_date,
            request.start_time,
            request.duration,
            exclude_booking_id=request.exclude_booking_id
        )
    except SchedulingError as e:
        raise to_http_exception(e)


@router.post("/availability/bulk-check", response_model=BulkAvailabilityResult)
async def check_bulk_availability(
    request: BulkAvailabilityRequest,
    engine = Depends(get_scheduling_engine)
):
    """
    Check several candidate slots of one therapist on one date.

    Results are keyed by `HH:MM-HH:MM`. Sessions in `exclude_booking_ids` are
    ignored, which lets a caller test new times for sessions it is about to move.

    ## Errors
    - **400 Bad Request**: Any slot has an invalid time or duration
    - **404 Not Found**: Unknown therapist
    """
    try:
        return await engine.check_bulk_availability(
            request.therapist_id,
            request.scheduled_date,
            request.time_slots,
            exclude_booking_ids=request.exclude_booking_ids
        )
    except SchedulingError as e:
        raise to_http_exception(e)


@router.get("/availability/slots")
async def available_slots(
    therapist_id: str,
    day: date = Query(..., alias="date"),
    duration: Optional[int] = None,
    engine = Depends(get_scheduling_engine)
):
    """List every free start time of a therapist on a date."""
    try:
        slots = await engine.available_slots(therapist_id, day, duration)
    except SchedulingError as e:
        raise to_http_exception(e)

    return {
        "therapist_id": therapist_id,
        "date": day.isoformat(),
        "slots": [minutes_to_time(s) for s in slots],
    }


@router.post("/conflicts/resolve", response_model=Resolution)
async def resolve_conflicts(
    request: ResolveConflictRequest,
    engine = Depends(get_scheduling_engine)
):
    """
    Find the nearest available slot within a time shift.

    Without a preferred time the search starts at the beginning of the
    working day.
    """
    try:
        return await engine.resolve_conflicts(
            request.therapist_id,
            request.scheduled_date,
            request.duration,
            preferred_time=request.preferred_time,
            max_time_shift=request.max_time_shift,
            allow_different_day=request.allow_different_day
        )
    except SchedulingError as e:
        raise to_http_exception(e)


# ============================================================================
# Assignment and Bulk Scheduling Endpoints
# ============================================================================

@router.post("/assignments", response_model=AssignmentResult)
async def assign_therapist(
    request: AssignmentRequest,
    engine = Depends(get_scheduling_engine)
):
    """
    Assign the best-fit therapist for a consultation request.

    When `patient_id` is given the session is booked as well.

    ## Errors
    - **409 Conflict**: The booking lost a race twice
    """
    try:
        return await engine.assign(request)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.post("/plans/{plan_id}/bulk-schedule", response_model=BatchResult)
async def bulk_schedule(
    plan_id: str,
    params: BulkScheduleParams,
    engine = Depends(get_scheduling_engine)
):
    """
    Create the recurring sessions of an approved treatment plan.

    Slots that cannot be booked are reported in `errors`; the batch is never
    aborted by a single slot.

    ## Errors
    - **400 Bad Request**: Plan is not approved
    - **404 Not Found**: Unknown plan
    """
    try:
        return await engine.bulk_schedule(plan_id, params)
    except SchedulingError as e:
        raise to_http_exception(e)


# ============================================================================
# Session Endpoints
# ============================================================================

@router.post("/sessions", response_model=Booking, status_code=status.HTTP_201_CREATED)
async def book_session(
    request: BookSessionRequest,
    engine = Depends(get_scheduling_engine)
):
    """
    Book a session.

    ## Errors
    - **404 Not Found**: Unknown therapist, or no schedule on that date
    - **409 Conflict**: Slot taken, capacity reached or concurrent booking
    """
    try:
        return await engine.book_session(
            request.therapist_id,
            request.patient_id,
            request.scheduled_date,
            request.scheduled_time,
            request.duration,
            plan_id=request.plan_id,
            service_id=request.service_id,
            notes=request.notes
        )
    except SchedulingError as e:
        raise to_http_exception(e)


@router.post("/sessions/{session_id}/status", response_model=Booking)
async def update_session_status(
    session_id: str,
    request: StatusUpdateRequest,
    engine = Depends(get_scheduling_engine)
):
    """Move a session to a new status."""
    try:
        return await engine.transition_status(session_id, request.status, request.cancellation_reason)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.post("/sessions/{session_id}/cancel", response_model=Booking)
async def cancel_session(
    session_id: str,
    request: Optional[CancelSessionRequest] = None,
    engine = Depends(get_scheduling_engine)
):
    """Cancel a session and release its slot."""
    try:
        return await engine.cancel_session(session_id, request.reason if request else None)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.post("/sessions/{session_id}/reschedule", response_model=Booking)
async def reschedule_session(
    session_id: str,
    request: RescheduleSessionRequest,
    engine = Depends(get_scheduling_engine)
):
    """
    Move a session to a new date and time.

    With `auto_resolve` the nearest free slot within `max_time_shift` is used
    when the requested time is taken.
    """
    try:
        return await engine.reschedule_session(
            session_id,
            request.new_date,
            request.new_time,
            duration=request.duration,
            auto_resolve=request.auto_resolve,
            max_time_shift=request.max_time_shift
        )
    except SchedulingError as e:
        raise to_http_exception(e)


# ============================================================================
# Capacity Endpoints
# ============================================================================

@router.get("/capacity", response_model=CapacityOverview)
async def capacity_overview(
    reference_date: Optional[date] = None,
    engine = Depends(get_scheduling_engine)
):
    """Utilization across all active therapists."""
    return await engine.capacity_overview(reference_date or date.today())


@router.put("/capacity/thresholds", response_model=CapacityAlertThreshold)
async def set_alert_threshold(
    threshold: CapacityAlertThreshold,
    engine = Depends(get_scheduling_engine)
):
    """Create or replace an alert threshold for a therapist."""
    try:
        return await engine.set_alert_threshold(threshold)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.get("/capacity/{therapist_id}", response_model=UtilizationReport)
async def therapist_utilization(
    therapist_id: str,
    reference_date: Optional[date] = None,
    engine = Depends(get_scheduling_engine)
):
    """Workload, utilization, alerts and recommendations for one therapist."""
    try:
        return await engine.utilization(therapist_id, reference_date or date.today())
    except SchedulingError as e:
        raise to_http_exception(e)


@router.get("/capacity/{therapist_id}/alerts", response_model=List[CapacityAlert])
async def therapist_alerts(
    therapist_id: str,
    reference_date: Optional[date] = None,
    engine = Depends(get_scheduling_engine)
):
    try:
        return await engine.capacity_alerts(therapist_id, reference_date or date.today())
    except SchedulingError as e:
        raise to_http_exception(e)


@router.get("/capacity/{therapist_id}/workload", response_model=RangeWorkload)
async def therapist_workload(
    therapist_id: str,
    start: date,
    end: date,
    engine = Depends(get_scheduling_engine)
):
    """Per-day sessions and hours over a date range."""
    try:
        return await engine.range_workload(therapist_id, start, end)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "therapy-scheduler", "version": __version__}
