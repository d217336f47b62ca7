"""
Availability Calendar.

Resolves the effective working window of a therapist on a given date from
recurring and one-off schedule configurations.
"""

import logging
from datetime import date
from typing import List

from ...db.store import SchedulingStore
from ...exceptions import NotWorkingDayError
from ...models.scheduling import DayOfWeek, ScheduleConfig, Window

logger = logging.getLogger(__name__)


class AvailabilityCalendar:
    """
    Picks the schedule configuration that applies to a date.

    Precedence among configs covering the date:
    - a non-recurring override wins over recurring configs
    - among equals, the latest effective_date wins
    """

    def __init__(self, store: SchedulingStore):
        """
        Initialize availability calendar.

        Args:
            store: Scheduling store
        """
        self.store = store

    async def resolve_window(self, therapist_id: str, day: date) -> Window:
        """
        Resolve the working window of a therapist on a date.

        Args:
            therapist_id: Therapist ID
            day: Calendar date

        Returns:
            Window with hours, break, session duration, buffer and daily cap

        Raises:
            NotWorkingDayError: If no config applies or the day is marked off
        """
        weekday = DayOfWeek.of(day)
        configs = await self.store.list_schedule_configs(therapist_id, weekday)
        applicable = [c for c in configs if c.covers(day)]

        if not applicable:
            logger.debug(f"No schedule config for therapist {therapist_id} on {day} ({weekday.value})")
            raise NotWorkingDayError(therapist_id, day.isoformat())

        config = self._most_specific(applicable)
        if not config.is_working_day:
            logger.debug(f"Config {config.id} marks {day} as a day off for therapist {therapist_id}")
            raise NotWorkingDayError(therapist_id, day.isoformat())

        return Window(
            start=config.start_time,
            end=config.end_time,
            session_duration=config.session_duration,
            buffer_time=config.buffer_time,
            max_sessions_per_day=config.max_sessions_per_day,
            break_start=config.break_start,
            break_end=config.break_end,
            config_id=config.id,
        )

    @staticmethod
    def _most_specific(configs: List[ScheduleConfig]) -> ScheduleConfig:
        # Overrides first, then latest effective date; id keeps the pick stable
        return max(
            configs,
            key=lambda c: (not c.is_recurring, c.effective_date, c.id)
        )
