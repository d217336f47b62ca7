"""
Assignment Selector.

Picks the therapist for a new consultation request: the patient's preferred
therapist when possible, otherwise the least loaded eligible therapist.
"""

import logging
from typing import List, Optional, Tuple

from ...db.store import SchedulingStore
from ...exceptions import (
    CapacityExceededError,
    ConcurrencyConflictError,
    ScheduleNotFoundError,
    SlotNotAvailableError,
)
from ...models.results import AssignmentResult, CandidateScore
from ...models.scheduling import AssignmentRequest, Booking, TherapistQuery
from .booking_service import BookingService
from .conflict_detector import ConflictDetector

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 5

STRATEGY_PREFERRED = "preferred"
STRATEGY_LOAD_BALANCED = "load_balanced"
REASON_NO_CAPACITY = "no_capacity"

# Errors meaning the chosen slot went away between selection and write
LOST_SLOT_ERRORS = (
    SlotNotAvailableError,
    CapacityExceededError,
    ConcurrencyConflictError,
    ScheduleNotFoundError,
)


class AssignmentSelector:
    """
    Selects a therapist for an assignment request.

    Ranking only uses availability and same-day workload; urgency is carried
    through for logging and the caller.
    """

    def __init__(
        self,
        store: SchedulingStore,
        detector: ConflictDetector,
        booking_service: Optional[BookingService] = None
    ):
        self.store = store
        self.detector = detector
        self.booking_service = booking_service or BookingService(store, detector)

    async def assign(self, request: AssignmentRequest) -> AssignmentResult:
        """
        Assign a therapist and, when patient_id is set, book the session.

        Args:
            request: Assignment request

        Returns:
            AssignmentResult; assigned_therapist_id is None when nobody fits

        Raises:
            InvalidSchedulingRequestError: Malformed request
            ConcurrencyConflictError: The booking lost the race twice
        """
        self.detector.validate_request(request.requested_date, request.requested_time, request.duration)
        logger.info(
            f"Assignment request for specialty {request.specialty_id} on {request.requested_date} "
            f"(urgency {request.urgency.value})"
        )

        result = await self._select(request)
        if request.patient_id is None or result.assigned_therapist_id is None:
            return result

        try:
            booking = await self._book(request, result.assigned_therapist_id)
        except LOST_SLOT_ERRORS as e:
            logger.warning("assignment.race_lost", extra={
                "therapist_id": result.assigned_therapist_id,
                "error": str(e),
            })
            # Re-evaluate once with fresh state
            result = await self._select(request)
            if result.assigned_therapist_id is None:
                return result
            try:
                booking = await self._book(request, result.assigned_therapist_id)
            except LOST_SLOT_ERRORS as retry_error:
                raise ConcurrencyConflictError(
                    result.assigned_therapist_id,
                    "Assignment lost the booking race twice, please retry",
                ) from retry_error

        result.booking = booking
        return result

    async def _select(self, request: AssignmentRequest) -> AssignmentResult:
        candidates = await self.store.list_therapists(TherapistQuery(
            specialty_id=request.specialty_id,
            active=True,
            can_take_consultations=True,
            exclude_ids=set(request.exclude_therapist_ids),
        ))
        candidate_ids = [t.id for t in candidates]

        preferred = request.preferred_therapist_id
        if preferred is not None and preferred in candidate_ids:
            score = await self._evaluate(preferred, request)
            if score.available:
                logger.info(f"Assigned preferred therapist {preferred}")
                return AssignmentResult(
                    assigned_therapist_id=preferred,
                    strategy=STRATEGY_PREFERRED,
                    urgency=request.urgency,
                    total_candidates=len(candidate_ids),
                )
            logger.debug(f"Preferred therapist {preferred} not eligible: {score.reason}")

        scores = [await self._evaluate(tid, request) for tid in candidate_ids]
        ranked = self.rank(scores)

        if not ranked:
            logger.info(f"No therapist available for specialty {request.specialty_id} on {request.requested_date}")
            return AssignmentResult(
                reason=REASON_NO_CAPACITY,
                strategy=STRATEGY_LOAD_BALANCED,
                urgency=request.urgency,
                total_candidates=len(candidate_ids),
            )

        chosen, alternatives = ranked[0], ranked[1:1 + MAX_ALTERNATIVES]
        logger.info(f"Assigned therapist {chosen.therapist_id} ({chosen.same_day_sessions} sessions that day)")
        return AssignmentResult(
            assigned_therapist_id=chosen.therapist_id,
            strategy=STRATEGY_LOAD_BALANCED,
            urgency=request.urgency,
            total_candidates=len(candidate_ids),
            alternatives=alternatives,
        )

    async def _evaluate(self, therapist_id: str, request: AssignmentRequest) -> CandidateScore:
        check = await self.detector.check(
            therapist_id, request.requested_date, request.requested_time, request.duration
        )
        count = await self.store.count_active_bookings(therapist_id, request.requested_date)

        max_workload = request.max_workload or self.detector.settings.DEFAULT_MAX_WORKLOAD
        available, reason = self._eligibility(check.available, check.reason, count, max_workload)
        return CandidateScore(
            therapist_id=therapist_id,
            same_day_sessions=count,
            available=available,
            reason=reason,
        )

    @staticmethod
    def _eligibility(available: bool, reason, count: int, max_workload: int) -> Tuple[bool, Optional[str]]:
        if not available:
            return False, reason.value if reason else "unavailable"
        if count + 1 > max_workload:
            return False, "max_workload"
        return True, None

    async def _book(self, request: AssignmentRequest, therapist_id: str) -> Booking:
        return await self.booking_service.book(
            therapist_id=therapist_id,
            patient_id=request.patient_id,
            scheduled_date=request.requested_date,
            scheduled_time=request.requested_time,
            duration=request.duration,
        )

    @staticmethod
    def rank(scores: List[CandidateScore]) -> List[CandidateScore]:
        """Eligible candidates, least loaded first; ties by therapist id."""
        return sorted(
            (s for s in scores if s.available),
            key=lambda s: (s.same_day_sessions, s.therapist_id)
        )
