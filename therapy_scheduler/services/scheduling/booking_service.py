"""
Booking Service.

The only writer of therapy sessions. Every write runs the availability check
and the store write inside the therapist's critical section; a write rejected
by the store (another worker won the race) is retried once.
"""

import logging
from datetime import date
from typing import Dict, FrozenSet, Optional, Union

from tenacity import retry, retry_if_exception_type, stop_after_attempt

from ...db.store import SchedulingStore
from ...exceptions import (
    BookingNotFoundError,
    CapacityExceededError,
    ConcurrencyConflictError,
    InvalidSchedulingRequestError,
    InvalidStatusTransitionError,
    NoSlotsAvailableError,
    NotWorkingDayError,
    SlotNotAvailableError,
    WriteConflictError,
)
from ...models.results import ConflictReason, ConflictResult
from ...models.scheduling import ACTIVE_STATUSES, Booking, BookingStatus
from ..locks import TherapistLockManager
from .conflict_detector import ConflictDetector
from .conflict_resolver import ConflictResolver

logger = logging.getLogger(__name__)

S = BookingStatus

ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    S.SCHEDULED: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.IN_PROGRESS, S.CANCELLED, S.NO_SHOW}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset({S.CONFIRMED, S.CANCELLED}),
    # RESCHEDULE_REQUESTED -> SCHEDULED goes through reschedule()
    S.RESCHEDULE_REQUESTED: frozenset({S.CANCELLED}),
}

RESCHEDULABLE_STATUSES = frozenset({S.SCHEDULED, S.CONFIRMED, S.RESCHEDULE_REQUESTED})

# One transparent retry when the store rejects the write
write_retry = retry(
    stop=stop_after_attempt(2),
    retry=retry_if_exception_type(WriteConflictError),
    reraise=True,
)


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class BookingService:
    """Creates, transitions, cancels and reschedules sessions."""

    def __init__(
        self,
        store: SchedulingStore,
        detector: ConflictDetector,
        resolver: Optional[ConflictResolver] = None,
        locks=None
    ):
        """
        Args:
            store: Scheduling store
            detector: Conflict detector used for the pre-write check
            resolver: Conflict resolver for auto-resolved reschedules
            locks: Lock provider exposing ``hold(therapist_id)``
        """
        self.store = store
        self.detector = detector
        self.resolver = resolver or ConflictResolver(detector)
        self.locks = locks or TherapistLockManager()

    async def book(
        self,
        therapist_id: str,
        patient_id: str,
        scheduled_date: date,
        scheduled_time: Union[int, str],
        duration: int,
        plan_id: Optional[str] = None,
        service_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Booking:
        """
        Book a session after checking availability.

        Raises:
            SlotNotAvailableError: Overlap, outside hours or break
            CapacityExceededError: Daily session cap reached
            NotWorkingDayError: No schedule applies on that date
            ConcurrencyConflictError: Lost the race twice
        """
        start = self.detector.validate_request(scheduled_date, scheduled_time, duration)
        booking = Booking(
            therapist_id=therapist_id,
            patient_id=patient_id,
            plan_id=plan_id,
            service_id=service_id,
            scheduled_date=scheduled_date,
            scheduled_time=start,
            duration=duration,
            notes=notes,
        )

        try:
            created = await self._check_and_insert(booking)
        except WriteConflictError as e:
            logger.warning("booking.race_lost", extra={
                "therapist_id": therapist_id,
                "date": scheduled_date.isoformat(),
                "time": start,
            })
            raise ConcurrencyConflictError(therapist_id) from e

        logger.info("booking.created", extra={
            "session_id": created.id,
            "therapist_id": therapist_id,
            "patient_id": patient_id,
            "date": scheduled_date.isoformat(),
            "time": start,
        })
        return created

    @write_retry
    async def _check_and_insert(self, booking: Booking) -> Booking:
        async with self.locks.hold(booking.therapist_id):
            result = await self.detector.check(
                booking.therapist_id, booking.scheduled_date, booking.scheduled_time, booking.duration
            )
            if not result.available:
                await self._raise_unavailable(result, booking.therapist_id, booking.scheduled_date)
            return await self.store.insert_booking(booking)

    async def transition_status(
        self,
        booking_id: str,
        target: Union[BookingStatus, str],
        cancellation_reason: Optional[str] = None
    ) -> Booking:
        """
        Move a session to a new status following the transition table.

        Raises:
            BookingNotFoundError: Unknown session
            InvalidStatusTransitionError: Transition not allowed
        """
        try:
            target = BookingStatus(target)
        except ValueError as e:
            raise InvalidSchedulingRequestError(f"Unknown status: {target!r}", field="status") from e

        booking = await self._get(booking_id)
        try:
            updated = await self._apply_transition(booking, target, cancellation_reason)
        except WriteConflictError as e:
            raise ConcurrencyConflictError(booking.therapist_id) from e

        logger.info("booking.status_changed", extra={
            "session_id": booking_id,
            "from": booking.status.value,
            "to": target.value,
        })
        return updated

    @write_retry
    async def _apply_transition(
        self,
        booking: Booking,
        target: BookingStatus,
        cancellation_reason: Optional[str]
    ) -> Booking:
        async with self.locks.hold(booking.therapist_id):
            current = await self._get(booking.id)
            if not can_transition(current.status, target):
                raise InvalidStatusTransitionError(current.status.value, target.value)

            # Re-activating a released slot (NO_SHOW -> CONFIRMED) needs the slot back
            if target in ACTIVE_STATUSES and current.status not in ACTIVE_STATUSES:
                result = await self.detector.check(
                    current.therapist_id, current.scheduled_date, current.scheduled_time,
                    current.duration, exclude_booking_id=current.id
                )
                if not result.available:
                    await self._raise_unavailable(result, current.therapist_id, current.scheduled_date)

            update = {"status": target}
            if target == BookingStatus.CANCELLED:
                update["cancellation_reason"] = cancellation_reason
            return await self.store.update_booking(current.model_copy(update=update))

    async def cancel(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        """Cancel a session; its slot and capacity are released by the same write."""
        return await self.transition_status(booking_id, BookingStatus.CANCELLED, reason)

    async def reschedule(
        self,
        booking_id: str,
        new_date: date,
        new_time: Union[int, str],
        duration: Optional[int] = None,
        auto_resolve: bool = False,
        max_time_shift: Optional[int] = None
    ) -> Booking:
        """
        Move a session to a new date/time in a single write.

        The session's own slot is ignored by the availability check. With
        auto_resolve the nearest slot within max_time_shift is used instead.

        Raises:
            BookingNotFoundError: Unknown session
            InvalidStatusTransitionError: Session cannot be rescheduled
            NoSlotsAvailableError: auto_resolve found nothing
            SlotNotAvailableError / CapacityExceededError: target unavailable
        """
        booking = await self._get(booking_id)
        duration = duration or booking.duration
        start = self.detector.validate_request(new_date, new_time, duration)

        try:
            updated = await self._move(booking.id, new_date, start, duration, auto_resolve, max_time_shift)
        except WriteConflictError as e:
            raise ConcurrencyConflictError(booking.therapist_id) from e

        logger.info("booking.rescheduled", extra={
            "session_id": booking_id,
            "therapist_id": updated.therapist_id,
            "date": updated.scheduled_date.isoformat(),
            "time": updated.scheduled_time,
        })
        return updated

    @write_retry
    async def _move(
        self,
        booking_id: str,
        new_date: date,
        start: int,
        duration: int,
        auto_resolve: bool,
        max_time_shift: Optional[int]
    ) -> Booking:
        booking = await self._get(booking_id)
        async with self.locks.hold(booking.therapist_id):
            current = await self._get(booking_id)
            if current.status not in RESCHEDULABLE_STATUSES:
                raise InvalidStatusTransitionError(current.status.value, BookingStatus.SCHEDULED.value)

            result = await self.detector.check(
                current.therapist_id, new_date, start, duration, exclude_booking_id=current.id
            )
            if not result.available:
                if not auto_resolve:
                    await self._raise_unavailable(result, current.therapist_id, new_date)

                resolution = await self.resolver.resolve(
                    current.therapist_id, new_date, duration,
                    preferred_time=start,
                    max_time_shift=max_time_shift,
                    exclude_booking_id=current.id,
                )
                if not resolution.resolved:
                    raise NoSlotsAvailableError(
                        f"No slot near the requested time: {resolution.reason}",
                        reason=resolution.failure.value if resolution.failure else None,
                    )
                new_date, start = resolution.suggested_date, resolution.suggested_time

            moved = current.model_copy(update={
                "scheduled_date": new_date,
                "scheduled_time": start,
                "duration": duration,
                "status": BookingStatus.SCHEDULED,
            })
            return await self.store.update_booking(moved)

    async def _get(self, booking_id: str) -> Booking:
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    async def _raise_unavailable(self, result: ConflictResult, therapist_id: str, day: date) -> None:
        if result.reason == ConflictReason.NON_WORKING_DAY:
            raise NotWorkingDayError(therapist_id, day.isoformat())
        if result.reason == ConflictReason.CAPACITY:
            window = await self.detector.calendar.resolve_window(therapist_id, day)
            raise CapacityExceededError(therapist_id, window.max_sessions_per_day)
        raise SlotNotAvailableError(
            result.message or "Slot not available",
            reason=result.reason.value if result.reason else None,
            conflicting_ids=[c.id for c in result.conflicts],
        )
