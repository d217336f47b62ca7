"""
Conflict Detector.

Decides whether a therapist can take a candidate session and, when not,
proposes alternative start times on the same day.
"""

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Union

from ...config import SchedulingSettings, get_settings
from ...db.store import SchedulingStore
from ...exceptions import InvalidSchedulingRequestError, NotWorkingDayError, TherapistNotFoundError
from ...models.results import BookingRef, ConflictReason, ConflictResult, TimeSlot
from ...models.scheduling import Booking, BookingQuery, Window
from ...utils.time_utils import MINUTES_PER_DAY, coerce_minutes, minutes_to_time, overlaps
from .availability_calendar import AvailabilityCalendar

logger = logging.getLogger(__name__)


class ConflictDetector:
    """
    Availability check for a single (therapist, date, start, duration).

    Checks, in order:
    - the therapist works that day
    - the daily cap is not reached
    - the session fits inside working hours
    - the session does not touch the break
    - no overlap with active sessions
    """

    def __init__(
        self,
        store: SchedulingStore,
        calendar: Optional[AvailabilityCalendar] = None,
        settings: Optional[SchedulingSettings] = None
    ):
        self.store = store
        self.calendar = calendar or AvailabilityCalendar(store)
        self.settings = settings or get_settings()

    async def check(
        self,
        therapist_id: str,
        day: date,
        start_time: Union[int, str],
        duration: int,
        exclude_booking_id: Optional[str] = None
    ) -> ConflictResult:
        """
        Check whether a candidate session is available.

        Args:
            therapist_id: Therapist ID
            day: Session date
            start_time: Minute of day or "HH:MM"
            duration: Session length in minutes
            exclude_booking_id: Session to ignore (the one being rescheduled)

        Returns:
            ConflictResult with reason, conflicting sessions and suggestions

        Raises:
            InvalidSchedulingRequestError: If the input is malformed
            TherapistNotFoundError: If the therapist does not exist
        """
        start = self.validate_request(day, start_time, duration)

        if await self.store.get_therapist(therapist_id) is None:
            raise TherapistNotFoundError(therapist_id)

        excluded = [exclude_booking_id] if exclude_booking_id else []
        return await self._evaluate(therapist_id, day, start, duration, excluded)

    async def check_many(
        self,
        therapist_id: str,
        day: date,
        slots: List[TimeSlot],
        exclude_booking_ids: Iterable[str] = ()
    ) -> Dict[str, ConflictResult]:
        """
        Check several candidate slots of one therapist on one date.

        Every slot is validated before any lookup, so one malformed slot rejects
        the whole request. Slots are checked independently against the existing
        sessions, not against each other.

        Args:
            therapist_id: Therapist ID
            day: Session date
            slots: Candidate start times and durations
            exclude_booking_ids: Sessions to ignore (the ones being moved)

        Returns:
            ConflictResult per slot keyed "HH:MM-HH:MM", in request order
        """
        starts = [self.validate_request(day, slot.time, slot.duration) for slot in slots]

        if await self.store.get_therapist(therapist_id) is None:
            raise TherapistNotFoundError(therapist_id)

        excluded = list(exclude_booking_ids)
        results: Dict[str, ConflictResult] = {}
        for start, slot in zip(starts, slots):
            key = f"{minutes_to_time(start)}-{minutes_to_time(start + slot.duration)}"
            results[key] = await self._evaluate(therapist_id, day, start, slot.duration, excluded)
        return results

    async def _evaluate(
        self,
        therapist_id: str,
        day: date,
        start: int,
        duration: int,
        excluded: List[str]
    ) -> ConflictResult:
        try:
            window = await self.calendar.resolve_window(therapist_id, day)
        except NotWorkingDayError as e:
            return ConflictResult(
                available=False,
                reason=ConflictReason.NON_WORKING_DAY,
                message=str(e),
            )

        bookings = await self.store.list_bookings(
            BookingQuery.active_on(therapist_id, day, excluded)
        )
        end = start + duration
        at_capacity = len(bookings) >= window.max_sessions_per_day

        def unavailable(reason: ConflictReason, message: str, conflicts=None) -> ConflictResult:
            suggestions = [] if at_capacity else self._scan(window, bookings, duration, self.settings.SUGGESTION_LIMIT)
            return ConflictResult(
                available=False,
                reason=reason,
                message=message,
                conflicts=conflicts or [],
                suggestions=suggestions,
            )

        conflicts = [
            BookingRef.from_booking(b) for b in bookings
            if overlaps(start, end, b.scheduled_time, b.end_time)
        ]

        # A full day is reported as capacity whatever the requested time
        if at_capacity:
            return unavailable(
                ConflictReason.CAPACITY,
                f"Daily limit of {window.max_sessions_per_day} sessions reached",
                conflicts,
            )

        if not window.contains(start, end):
            return unavailable(
                ConflictReason.OUTSIDE_HOURS,
                f"{minutes_to_time(start)}-{minutes_to_time(end)} is outside working hours {window.describe()}",
            )

        if window.touches_break(start, end):
            return unavailable(
                ConflictReason.BREAK_TIME,
                f"{minutes_to_time(start)}-{minutes_to_time(end)} overlaps the break {window.describe()}",
            )

        if conflicts:
            return unavailable(
                ConflictReason.CONFLICT,
                f"Overlaps {len(conflicts)} existing session(s)",
                conflicts,
            )

        return ConflictResult(available=True)

    async def available_slots(
        self,
        therapist_id: str,
        day: date,
        duration: Optional[int] = None
    ) -> List[int]:
        """
        List every free start time of the day.

        Args:
            therapist_id: Therapist ID
            day: Date to scan
            duration: Session length (defaults to the configured session duration)

        Returns:
            Start times in minutes of day; empty on days off or at capacity
        """
        if duration is not None:
            self._validate_duration(duration)

        if await self.store.get_therapist(therapist_id) is None:
            raise TherapistNotFoundError(therapist_id)

        try:
            window = await self.calendar.resolve_window(therapist_id, day)
        except NotWorkingDayError:
            return []

        bookings = await self.store.list_bookings(BookingQuery.active_on(therapist_id, day))
        if len(bookings) >= window.max_sessions_per_day:
            return []

        return self._scan(window, bookings, duration or window.session_duration)

    def validate_request(self, day: date, start_time: Union[int, str], duration: int) -> int:
        """Validate raw input and return the start as minute of day."""
        if not isinstance(day, date):
            raise InvalidSchedulingRequestError(f"Invalid date: {day!r}", field="date")
        try:
            start = coerce_minutes(start_time)
        except ValueError as e:
            raise InvalidSchedulingRequestError(str(e), field="start_time") from e
        if not 0 <= start < MINUTES_PER_DAY:
            raise InvalidSchedulingRequestError(f"Start time out of range: {start_time!r}", field="start_time")
        self._validate_duration(duration)
        return start

    def _validate_duration(self, duration: int) -> None:
        low, high = self.settings.MIN_SESSION_DURATION, self.settings.MAX_SESSION_DURATION
        if isinstance(duration, bool) or not isinstance(duration, int) or not low <= duration <= high:
            raise InvalidSchedulingRequestError(
                f"Duration must be between {low} and {high} minutes, got {duration!r}",
                field="duration",
            )

    @staticmethod
    def _scan(
        window: Window,
        bookings: List[Booking],
        duration: int,
        limit: Optional[int] = None
    ) -> List[int]:
        step = window.session_duration + window.buffer_time
        found: List[int] = []
        candidate = window.start
        while candidate + duration <= window.end:
            end = candidate + duration
            blocked = window.touches_break(candidate, end) or any(
                overlaps(candidate, end, b.scheduled_time, b.end_time) for b in bookings
            )
            if not blocked:
                found.append(candidate)
                if limit is not None and len(found) >= limit:
                    break
            candidate += step
        return found
