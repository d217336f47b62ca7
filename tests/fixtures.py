"""
Test fixtures for the therapy scheduling engine
"""

import uuid
from datetime import date, timedelta

from therapy_scheduler.config import SchedulingSettings
from therapy_scheduler.db.memory_store import InMemorySchedulingStore
from therapy_scheduler.models.scheduling import (
    Booking,
    DayOfWeek,
    PlanService,
    ScheduleConfig,
    Therapist,
    TreatmentPlan,
)
from therapy_scheduler.services.scheduling_engine import SchedulingEngine

# Sample test data
MONDAY = date(2025, 3, 3)
TUESDAY = MONDAY + timedelta(days=1)
SATURDAY = MONDAY + timedelta(days=5)
TEST_THERAPIST_ID = 'therapist-001'
TEST_PATIENT_ID = 'patient-001'
TEST_SPECIALTY = 'speech-therapy'
WORKDAYS = (
    DayOfWeek.MONDAY, DayOfWeek.TUESDAY, DayOfWeek.WEDNESDAY,
    DayOfWeek.THURSDAY, DayOfWeek.FRIDAY
)


def make_settings(**overrides):
    """Settings isolated from the environment's .env file"""
    return SchedulingSettings(_env_file=None, **overrides)


# Fixture functions
def create_therapist(**kwargs):
    """Create a test therapist"""
    return Therapist(
        id=kwargs.get('id', TEST_THERAPIST_ID),
        name=kwargs.get('name', 'Test Therapist'),
        specialties=kwargs.get('specialties', {TEST_SPECIALTY}),
        active=kwargs.get('active', True),
        can_take_consultations=kwargs.get('can_take_consultations', True),
    )


def create_schedule_config(**kwargs):
    """Create a test schedule config (Monday 09:00-17:00, lunch 12:00-13:00)"""
    return ScheduleConfig(
        id=kwargs.get('id', str(uuid.uuid4())),
        therapist_id=kwargs.get('therapist_id', TEST_THERAPIST_ID),
        day_of_week=kwargs.get('day_of_week', DayOfWeek.MONDAY),
        start_time=kwargs.get('start_time', '09:00'),
        end_time=kwargs.get('end_time', '17:00'),
        break_start=kwargs.get('break_start', '12:00'),
        break_end=kwargs.get('break_end', '13:00'),
        max_sessions_per_day=kwargs.get('max_sessions_per_day', 8),
        session_duration=kwargs.get('session_duration', 60),
        buffer_time=kwargs.get('buffer_time', 15),
        is_working_day=kwargs.get('is_working_day', True),
        is_recurring=kwargs.get('is_recurring', True),
        effective_date=kwargs.get('effective_date', date(2025, 1, 1)),
        end_date=kwargs.get('end_date'),
    )


def create_booking(**kwargs):
    """Create a test session"""
    return Booking(
        id=kwargs.get('id', str(uuid.uuid4())),
        therapist_id=kwargs.get('therapist_id', TEST_THERAPIST_ID),
        patient_id=kwargs.get('patient_id', TEST_PATIENT_ID),
        plan_id=kwargs.get('plan_id'),
        service_id=kwargs.get('service_id'),
        scheduled_date=kwargs.get('scheduled_date', MONDAY),
        scheduled_time=kwargs.get('scheduled_time', '10:00'),
        duration=kwargs.get('duration', 60),
        status=kwargs.get('status', 'SCHEDULED'),
    )


def create_plan(**kwargs):
    """Create a test treatment plan"""
    return TreatmentPlan(
        id=kwargs.get('id', 'plan-001'),
        patient_id=kwargs.get('patient_id', TEST_PATIENT_ID),
        therapist_id=kwargs.get('therapist_id', TEST_THERAPIST_ID),
        status=kwargs.get('status', 'APPROVED'),
        services=kwargs.get('services', [PlanService(service_id='service-001', total_sessions=10)]),
    )


def seed_therapist(store, therapist_id=TEST_THERAPIST_ID, days=WORKDAYS, **config):
    """Add a therapist working the given weekdays with the same hours"""
    store.add_therapist(create_therapist(id=therapist_id, **{
        k: config.pop(k) for k in ('specialties', 'active', 'can_take_consultations') if k in config
    }))
    for day in days:
        store.add_schedule_config(create_schedule_config(therapist_id=therapist_id, day_of_week=day, **config))
    return store


def create_store(**config):
    """In-memory store with one therapist working Monday to Friday"""
    return seed_therapist(InMemorySchedulingStore(), **config)


def create_engine(store=None, **overrides):
    """Scheduling engine over an in-memory store with isolated settings"""
    return SchedulingEngine(store or create_store(), settings=make_settings(**overrides))
