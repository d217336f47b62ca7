"""
Tests for BulkScheduler
"""

import pytest
from datetime import date, timedelta

from therapy_scheduler.exceptions import InvalidSchedulingRequestError, PlanNotFoundError
from therapy_scheduler.models.results import BulkScheduleParams, DateRange, TimeSlot
from therapy_scheduler.models.scheduling import DayOfWeek, Frequency, PlanService
from therapy_scheduler.services.scheduling.bulk_scheduler import BulkScheduler
from tests.fixtures import (
    MONDAY,
    TEST_THERAPIST_ID,
    create_booking,
    create_engine,
    create_plan,
    create_store,
)


@pytest.fixture
def store():
    store = create_store()
    store.add_plan(create_plan())
    return store


@pytest.fixture
def engine(store):
    return create_engine(store)


def params(**kwargs):
    data = {
        'date_range': DateRange(start=MONDAY, end=MONDAY + timedelta(weeks=9)),
        'frequency': Frequency.WEEKLY,
        'time_slots': [TimeSlot(time='10:00', duration=60)],
    }
    data.update(kwargs)
    return BulkScheduleParams(**data)


class TestRecurrence:
    """Test date generation"""

    def test_weekly(self):
        dates = BulkScheduler.recurrence_dates(params())

        assert len(dates) == 10
        assert dates[0] == MONDAY
        assert all((b - a).days == 7 for a, b in zip(dates, dates[1:]))

    def test_biweekly(self):
        dates = BulkScheduler.recurrence_dates(params(frequency=Frequency.BIWEEKLY))

        assert dates == [MONDAY + timedelta(weeks=w) for w in (0, 2, 4, 6, 8)]

    def test_daily_filtered_by_weekday(self):
        dates = BulkScheduler.recurrence_dates(params(
            frequency=Frequency.DAILY,
            date_range=DateRange(start=MONDAY, end=MONDAY + timedelta(days=13)),
            days_of_week=[DayOfWeek.MONDAY, DayOfWeek.THURSDAY],
        ))

        assert dates == [
            MONDAY,
            MONDAY + timedelta(days=3),
            MONDAY + timedelta(days=7),
            MONDAY + timedelta(days=10),
        ]

    def test_reversed_range_rejected(self):
        with pytest.raises(ValueError):
            DateRange(start=MONDAY, end=MONDAY - timedelta(days=1))


class TestGenerate:
    """Test session materialization"""

    @pytest.mark.asyncio
    async def test_partial_batch(self, store, engine):
        """Ten weekly sessions, four Mondays already taken: 6 created, 4 errors"""
        blocked = [MONDAY + timedelta(weeks=w) for w in (1, 4, 5, 8)]
        for day in blocked:
            store.add_booking(create_booking(patient_id='other', scheduled_date=day, scheduled_time='10:00'))

        result = await engine.bulk_schedule('plan-001', params())

        assert result.sessions_created == 6
        assert len(result.errors) == 4
        assert sorted(e.scheduled_date for e in result.errors) == blocked
        assert all(e.reason == 'conflict' for e in result.errors)
        assert result.shortfall == {'service-001': 4}

        created = [(s.booking.scheduled_date, s.booking.scheduled_time) for s in result.created_sessions]
        assert len(set(created)) == len(created)
        for day, _ in created:
            assert MONDAY <= day <= MONDAY + timedelta(weeks=9)
        assert all(s.booking.plan_id == 'plan-001' for s in result.created_sessions)

    @pytest.mark.asyncio
    async def test_never_more_than_required(self, store, engine):
        store.add_plan(create_plan(id='plan-short', services=[PlanService(service_id='s1', total_sessions=3)]))

        result = await engine.bulk_schedule('plan-short', params(
            frequency=Frequency.DAILY,
            days_of_week=[DayOfWeek.MONDAY, DayOfWeek.WEDNESDAY, DayOfWeek.FRIDAY],
            time_slots=[TimeSlot(time='10:00', duration=60), TimeSlot(time='14:00', duration=60)],
        ))

        created = [(s.booking.scheduled_date, s.booking.scheduled_time) for s in result.created_sessions]
        assert created == [
            (MONDAY, 600),
            (MONDAY, 840),
            (MONDAY + timedelta(days=2), 600),
        ]
        assert result.shortfall == {}
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_days_off_recorded_as_errors(self, store, engine):
        store.add_plan(create_plan(id='plan-week', services=[PlanService(service_id='s1', total_sessions=7)]))

        result = await engine.bulk_schedule('plan-week', params(
            frequency=Frequency.DAILY,
            date_range=DateRange(start=MONDAY, end=MONDAY + timedelta(days=6)),
        ))

        assert result.sessions_created == 5
        assert [e.reason for e in result.errors] == ['non-working-day', 'non-working-day']
        assert result.shortfall == {'s1': 2}

    @pytest.mark.asyncio
    async def test_auto_resolve_shifts_session(self, store, engine):
        store.add_booking(create_booking(patient_id='other', scheduled_date=MONDAY, scheduled_time='10:00'))

        result = await engine.bulk_schedule('plan-001', params(auto_resolve_conflicts=True, max_time_shift=60))

        assert result.sessions_created == 10
        first = result.created_sessions[0]
        assert first.booking.scheduled_date == MONDAY
        assert first.booking.scheduled_time == 11 * 60
        assert first.shifted is True
        assert not any(s.shifted for s in result.created_sessions[1:])

    @pytest.mark.asyncio
    async def test_auto_resolve_exhausted(self, store, engine):
        store.add_booking(create_booking(patient_id='other', scheduled_date=MONDAY, scheduled_time='10:00'))

        result = await engine.bulk_schedule('plan-001', params(auto_resolve_conflicts=True, max_time_shift=30))

        assert result.sessions_created == 9
        assert result.errors[0].reason == 'no-slot'

    @pytest.mark.asyncio
    async def test_plan_must_be_approved(self, store, engine):
        store.add_plan(create_plan(id='draft', status='DRAFT'))

        with pytest.raises(InvalidSchedulingRequestError):
            await engine.bulk_schedule('draft', params())

    @pytest.mark.asyncio
    async def test_slot_duration_bounds_come_from_settings(self, store):
        short = params(time_slots=[TimeSlot(time='10:00', duration=10)])

        with pytest.raises(InvalidSchedulingRequestError):
            await create_engine(store).bulk_schedule('plan-001', short)

        result = await create_engine(store, MIN_SESSION_DURATION=10).bulk_schedule('plan-001', short)

        assert result.sessions_created == 10
        assert all(s.booking.duration == 10 for s in result.created_sessions)

    @pytest.mark.asyncio
    async def test_unknown_plan(self, engine):
        with pytest.raises(PlanNotFoundError):
            await engine.bulk_schedule('missing', params())

    @pytest.mark.asyncio
    async def test_multiple_services_share_slots(self, store, engine):
        store.add_plan(create_plan(id='plan-two', services=[
            PlanService(service_id='s1', total_sessions=2),
            PlanService(service_id='s2', total_sessions=2),
        ]))

        result = await engine.bulk_schedule('plan-two', params(
            date_range=DateRange(start=MONDAY, end=MONDAY + timedelta(weeks=3)),
        ))

        by_service = {}
        for session in result.created_sessions:
            by_service.setdefault(session.booking.service_id, []).append(session.booking.scheduled_date)
        assert by_service['s1'] == [MONDAY, MONDAY + timedelta(weeks=1)]
        assert by_service['s2'] == [MONDAY + timedelta(weeks=2), MONDAY + timedelta(weeks=3)]
        assert result.shortfall == {}
        assert len(result.errors) == 2
