"""
Conflict Resolver.

Searches outward from a preferred start time for the nearest slot the
ConflictDetector accepts, optionally looking at the next day.
"""

import logging
from collections import Counter
from datetime import date, timedelta
from typing import Iterator, Optional, Tuple, Union

from ...config import SchedulingSettings, get_settings
from ...exceptions import InvalidSchedulingRequestError, NotWorkingDayError, TherapistNotFoundError
from ...models.results import ConflictReason, Resolution, ResolutionFailure
from ...utils.time_utils import MINUTES_PER_DAY, minutes_to_time
from .conflict_detector import ConflictDetector

logger = logging.getLogger(__name__)

FAILURE_BY_REASON = {
    ConflictReason.CAPACITY: ResolutionFailure.CAPACITY,
    ConflictReason.CONFLICT: ResolutionFailure.NO_SLOT,
    ConflictReason.BREAK_TIME: ResolutionFailure.NO_SLOT,
    ConflictReason.OUTSIDE_HOURS: ResolutionFailure.OUT_OF_RANGE,
    ConflictReason.NON_WORKING_DAY: ResolutionFailure.OUT_OF_RANGE,
}

# Tie-break order when two failure classes are equally frequent
FAILURE_PRIORITY = (
    ResolutionFailure.CAPACITY,
    ResolutionFailure.NO_SLOT,
    ResolutionFailure.OUT_OF_RANGE,
)


class ConflictResolver:
    """Finds the closest acceptable slot within a time tolerance."""

    def __init__(self, detector: ConflictDetector, settings: Optional[SchedulingSettings] = None):
        self.detector = detector
        self.settings = settings or get_settings()

    async def resolve(
        self,
        therapist_id: str,
        day: date,
        duration: int,
        preferred_time: Optional[Union[int, str]] = None,
        max_time_shift: Optional[int] = None,
        allow_different_day: bool = False,
        exclude_booking_id: Optional[str] = None
    ) -> Resolution:
        """
        Find the nearest available start time.

        Offsets are tried as 0, +k, -k, +2k, -2k, ... up to max_time_shift.
        When preferred_time is omitted the search starts at the window start.

        Args:
            therapist_id: Therapist ID
            day: Requested date
            duration: Session length in minutes
            preferred_time: Minute of day or "HH:MM"
            max_time_shift: Largest shift in minutes (defaults to DEFAULT_MAX_TIME_SHIFT)
            allow_different_day: Also search the next calendar day
            exclude_booking_id: Session to ignore (the one being rescheduled)

        Returns:
            Resolution describing the slot found or the dominant failure class
        """
        if max_time_shift is None:
            max_time_shift = self.settings.DEFAULT_MAX_TIME_SHIFT
        if isinstance(max_time_shift, bool) or not isinstance(max_time_shift, int) or max_time_shift < 0:
            raise InvalidSchedulingRequestError(
                f"max_time_shift must be a non-negative integer, got {max_time_shift!r}",
                field="max_time_shift",
            )

        preferred = None
        if preferred_time is not None:
            preferred = self.detector.validate_request(day, preferred_time, duration)
        else:
            self.detector.validate_request(day, 0, duration)

        if await self.detector.store.get_therapist(therapist_id) is None:
            raise TherapistNotFoundError(therapist_id)

        failures: Counter = Counter()
        attempts = 0

        days = [day, day + timedelta(days=1)] if allow_different_day else [day]
        for candidate_day in days:
            found, tried = await self._search_day(
                therapist_id, candidate_day, duration, preferred, max_time_shift, failures,
                exclude_booking_id
            )
            attempts += tried
            if found is not None:
                start, anchor = found
                shift = start - anchor
                if candidate_day == day:
                    reason = (
                        "Requested time is available" if shift == 0
                        else f"Shifted by {shift:+d} minutes to {minutes_to_time(start)}"
                    )
                else:
                    reason = f"Moved to next day {candidate_day.isoformat()} at {minutes_to_time(start)}"
                logger.info(
                    f"Resolved slot for therapist {therapist_id}: {candidate_day} {minutes_to_time(start)} "
                    f"(shift {shift:+d}, attempts {attempts})"
                )
                return Resolution(
                    resolved=True,
                    suggested_date=candidate_day,
                    suggested_time=start,
                    shift_minutes=shift,
                    reason=reason,
                    attempts=attempts,
                )

        failure = self._dominant_failure(failures)
        logger.info(
            f"No slot for therapist {therapist_id} on {day} within {max_time_shift} minutes "
            f"({failure.value}, attempts {attempts})"
        )
        return Resolution(
            resolved=False,
            reason=f"{failure.value}: no available slot within {max_time_shift} minutes",
            failure=failure,
            attempts=attempts,
        )

    async def _search_day(
        self,
        therapist_id: str,
        day: date,
        duration: int,
        preferred: Optional[int],
        max_time_shift: int,
        failures: Counter,
        exclude_booking_id: Optional[str] = None
    ) -> Tuple[Optional[Tuple[int, int]], int]:
        anchor = preferred
        if anchor is None:
            try:
                window = await self.detector.calendar.resolve_window(therapist_id, day)
            except NotWorkingDayError:
                failures[ResolutionFailure.OUT_OF_RANGE] += 1
                return None, 1
            anchor = window.start

        tried = 0
        for offset in self._offsets(max_time_shift):
            start = anchor + offset
            tried += 1
            if start < 0 or start + duration > MINUTES_PER_DAY:
                failures[ResolutionFailure.OUT_OF_RANGE] += 1
                continue

            result = await self.detector.check(therapist_id, day, start, duration, exclude_booking_id)
            if result.available:
                return (start, anchor), tried

            failures[FAILURE_BY_REASON[result.reason]] += 1
            if result.reason == ConflictReason.NON_WORKING_DAY:
                # Every other offset on this day fails the same way
                break

        return None, tried

    def _offsets(self, max_time_shift: int) -> Iterator[int]:
        step = self.settings.RESOLVER_STEP_MINUTES
        yield 0
        magnitude = step
        while magnitude <= max_time_shift:
            yield magnitude
            yield -magnitude
            magnitude += step

    @staticmethod
    def _dominant_failure(failures: Counter) -> ResolutionFailure:
        if not failures:
            return ResolutionFailure.OUT_OF_RANGE
        return max(
            FAILURE_PRIORITY,
            key=lambda f: (failures[f], -FAILURE_PRIORITY.index(f))
        )
