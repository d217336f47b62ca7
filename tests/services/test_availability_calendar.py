"""
Tests for AvailabilityCalendar
"""

import pytest
from datetime import date, timedelta

from therapy_scheduler.db.memory_store import InMemorySchedulingStore
from therapy_scheduler.exceptions import NotWorkingDayError
from therapy_scheduler.models.scheduling import DayOfWeek
from therapy_scheduler.services.scheduling.availability_calendar import AvailabilityCalendar
from tests.fixtures import (
    MONDAY,
    SATURDAY,
    TEST_THERAPIST_ID,
    create_schedule_config,
    create_store,
    create_therapist,
)


@pytest.fixture
def store():
    return create_store()


@pytest.fixture
def calendar(store):
    return AvailabilityCalendar(store)


class TestResolveWindow:
    """Test window resolution from schedule configs"""

    @pytest.mark.asyncio
    async def test_recurring_config(self, calendar):
        """Recurring weekday config gives hours, break and session settings"""
        window = await calendar.resolve_window(TEST_THERAPIST_ID, MONDAY)

        assert window.start == 9 * 60
        assert window.end == 17 * 60
        assert window.break_start == 12 * 60
        assert window.break_end == 13 * 60
        assert window.session_duration == 60
        assert window.buffer_time == 15
        assert window.max_sessions_per_day == 8
        assert window.config_id is not None

    @pytest.mark.asyncio
    async def test_no_config_for_weekday(self, calendar):
        """Weekend without config is not a working day"""
        with pytest.raises(NotWorkingDayError):
            await calendar.resolve_window(TEST_THERAPIST_ID, SATURDAY)

    @pytest.mark.asyncio
    async def test_unknown_therapist_has_no_window(self, calendar):
        with pytest.raises(NotWorkingDayError):
            await calendar.resolve_window("nobody", MONDAY)

    @pytest.mark.asyncio
    async def test_day_off_override(self, store, calendar):
        """One-off config with is_working_day=False blocks that date only"""
        store.add_schedule_config(create_schedule_config(
            day_of_week=DayOfWeek.MONDAY,
            is_recurring=False,
            is_working_day=False,
            effective_date=MONDAY,
        ))

        with pytest.raises(NotWorkingDayError):
            await calendar.resolve_window(TEST_THERAPIST_ID, MONDAY)

        next_monday = MONDAY + timedelta(days=7)
        window = await calendar.resolve_window(TEST_THERAPIST_ID, next_monday)
        assert window.start == 9 * 60

    @pytest.mark.asyncio
    async def test_override_wins_over_recurring(self, store, calendar):
        """A non-recurring config beats a newer recurring one"""
        store.add_schedule_config(create_schedule_config(
            id='override',
            is_recurring=False,
            effective_date=date(2025, 2, 1),
            end_date=date(2025, 3, 31),
            start_time='14:00',
            end_time='18:00',
            break_start=None,
            break_end=None,
        ))
        store.add_schedule_config(create_schedule_config(
            id='newer-recurring',
            effective_date=date(2025, 3, 1),
            start_time='08:00',
        ))

        window = await calendar.resolve_window(TEST_THERAPIST_ID, MONDAY)

        assert window.config_id == 'override'
        assert window.start == 14 * 60
        assert window.break_start is None

    @pytest.mark.asyncio
    async def test_latest_effective_date_wins(self, store, calendar):
        store.add_schedule_config(create_schedule_config(
            id='from-march',
            effective_date=date(2025, 3, 1),
            start_time='10:00',
        ))

        window = await calendar.resolve_window(TEST_THERAPIST_ID, MONDAY)

        assert window.config_id == 'from-march'
        assert window.start == 10 * 60

    @pytest.mark.asyncio
    async def test_expired_config_ignored(self):
        store = InMemorySchedulingStore()
        store.add_therapist(create_therapist())
        store.add_schedule_config(create_schedule_config(
            effective_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
        ))
        calendar = AvailabilityCalendar(store)

        with pytest.raises(NotWorkingDayError):
            await calendar.resolve_window(TEST_THERAPIST_ID, MONDAY)

    @pytest.mark.asyncio
    async def test_config_not_yet_effective(self, store, calendar):
        with pytest.raises(NotWorkingDayError):
            await calendar.resolve_window(TEST_THERAPIST_ID, date(2024, 12, 30))
