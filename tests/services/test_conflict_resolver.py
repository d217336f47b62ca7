"""
Tests for ConflictResolver
"""

import pytest

from therapy_scheduler.exceptions import InvalidSchedulingRequestError, TherapistNotFoundError
from therapy_scheduler.models.results import ResolutionFailure
from therapy_scheduler.services.scheduling.conflict_detector import ConflictDetector
from therapy_scheduler.services.scheduling.conflict_resolver import ConflictResolver
from tests.fixtures import (
    MONDAY,
    SATURDAY,
    TEST_THERAPIST_ID,
    TUESDAY,
    create_booking,
    create_store,
    make_settings,
)


@pytest.fixture
def store():
    return create_store()


@pytest.fixture
def resolver(store):
    settings = make_settings()
    return ConflictResolver(ConflictDetector(store, settings=settings), settings)


def fill_monday(store):
    for start in ['09:00', '09:30', '10:00', '10:30', '11:00', '11:30', '13:00', '13:30']:
        store.add_booking(create_booking(scheduled_time=start, duration=30))


class TestResolve:
    """Test the outward slot search"""

    @pytest.mark.asyncio
    async def test_preferred_time_free(self, resolver):
        resolution = await resolver.resolve(TEST_THERAPIST_ID, MONDAY, 60, preferred_time='10:00')

        assert resolution.resolved is True
        assert resolution.suggested_time == 10 * 60
        assert resolution.shift_minutes == 0
        assert resolution.attempts == 1

    @pytest.mark.asyncio
    async def test_nearest_slot_found(self, store, resolver):
        store.add_booking(create_booking(scheduled_time='10:00', duration=60))

        resolution = await resolver.resolve(
            TEST_THERAPIST_ID, MONDAY, 60, preferred_time='10:00', max_time_shift=60
        )

        assert resolution.resolved is True
        assert resolution.suggested_date == MONDAY
        assert resolution.suggested_time_label == '11:00'
        assert resolution.shift_minutes == 60
        assert '+60' in resolution.reason

    @pytest.mark.asyncio
    async def test_positive_offset_tried_first(self, store, resolver):
        """Both 10:30 and 09:30 are free; +30 wins over -30"""
        store.add_booking(create_booking(scheduled_time='10:00', duration=30))

        resolution = await resolver.resolve(
            TEST_THERAPIST_ID, MONDAY, 30, preferred_time='10:00', max_time_shift=60
        )

        assert resolution.shift_minutes == 30
        assert resolution.suggested_time == 10 * 60 + 30

    @pytest.mark.asyncio
    async def test_negative_offset_when_positive_blocked(self, store, resolver):
        store.add_booking(create_booking(scheduled_time='10:00', duration=90))

        resolution = await resolver.resolve(
            TEST_THERAPIST_ID, MONDAY, 30, preferred_time='10:00', max_time_shift=30
        )

        assert resolution.resolved is True
        assert resolution.shift_minutes == -30
        assert resolution.suggested_time_label == '09:30'

    @pytest.mark.asyncio
    async def test_max_shift_respected(self, store, resolver):
        store.add_booking(create_booking(scheduled_time='10:00', duration=60))

        resolution = await resolver.resolve(
            TEST_THERAPIST_ID, MONDAY, 60, preferred_time='10:00', max_time_shift=30
        )

        assert resolution.resolved is False
        assert resolution.failure == ResolutionFailure.NO_SLOT
        assert resolution.attempts == 5
        assert resolution.suggested_time is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("preferred", ['09:00', '10:40', '11:45', '14:20', '16:00'])
    async def test_shift_never_exceeds_tolerance(self, store, resolver, preferred):
        store.add_booking(create_booking(scheduled_time='10:00', duration=60))
        store.add_booking(create_booking(scheduled_time='14:00', duration=60))

        resolution = await resolver.resolve(
            TEST_THERAPIST_ID, MONDAY, 45, preferred_time=preferred, max_time_shift=45
        )

        if resolution.resolved:
            assert abs(resolution.shift_minutes) <= 45

    @pytest.mark.asyncio
    async def test_capacity_failure(self, store, resolver):
        fill_monday(store)

        resolution = await resolver.resolve(TEST_THERAPIST_ID, MONDAY, 60, preferred_time='15:00')

        assert resolution.resolved is False
        assert resolution.failure == ResolutionFailure.CAPACITY
        assert 'capacity' in resolution.reason

    @pytest.mark.asyncio
    async def test_next_day_lookahead(self, store, resolver):
        fill_monday(store)

        resolution = await resolver.resolve(
            TEST_THERAPIST_ID, MONDAY, 60, preferred_time='15:00', allow_different_day=True
        )

        assert resolution.resolved is True
        assert resolution.suggested_date == TUESDAY
        assert resolution.suggested_time == 15 * 60
        assert 'next day' in resolution.reason

    @pytest.mark.asyncio
    async def test_lookahead_is_one_day_only(self, resolver):
        """Saturday and Sunday are both off; Monday is never reached"""
        resolution = await resolver.resolve(
            TEST_THERAPIST_ID, SATURDAY, 60, preferred_time='10:00', allow_different_day=True
        )

        assert resolution.resolved is False
        assert resolution.failure == ResolutionFailure.OUT_OF_RANGE

    @pytest.mark.asyncio
    async def test_off_day_bounds_are_out_of_range(self, resolver):
        resolution = await resolver.resolve(
            TEST_THERAPIST_ID, MONDAY, 60, preferred_time='23:00', max_time_shift=30
        )

        assert resolution.resolved is False
        assert resolution.failure == ResolutionFailure.OUT_OF_RANGE

    @pytest.mark.asyncio
    async def test_defaults_to_window_start(self, resolver):
        resolution = await resolver.resolve(TEST_THERAPIST_ID, MONDAY, 60)

        assert resolution.resolved is True
        assert resolution.suggested_time_label == '09:00'

    @pytest.mark.asyncio
    async def test_exclude_booking(self, store, resolver):
        own = store.add_booking(create_booking(scheduled_time='10:00', duration=60))

        resolution = await resolver.resolve(
            TEST_THERAPIST_ID, MONDAY, 60, preferred_time='10:00', exclude_booking_id=own.id
        )

        assert resolution.shift_minutes == 0

    @pytest.mark.asyncio
    async def test_negative_max_shift_rejected(self, resolver):
        with pytest.raises(InvalidSchedulingRequestError):
            await resolver.resolve(TEST_THERAPIST_ID, MONDAY, 60, preferred_time='10:00', max_time_shift=-15)

    @pytest.mark.asyncio
    async def test_unknown_therapist(self, resolver):
        with pytest.raises(TherapistNotFoundError):
            await resolver.resolve('ghost', MONDAY, 60)
