"""
Scheduling Engine facade.

Wires the scheduling components over one store and one lock provider and
exposes the operations the HTTP layer consumes.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional, Union

from ..config import SchedulingSettings, get_settings
from ..db.store import SchedulingStore
from ..exceptions import PlanNotFoundError, TherapistNotFoundError
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
    TimeSlot,
    UtilizationReport,
)
from ..models.scheduling import AssignmentRequest, Booking, BookingStatus, CapacityAlertThreshold
from .locks import RedisTherapistLock, TherapistLockManager
from .scheduling import (
    AssignmentSelector,
    AvailabilityCalendar,
    BookingService,
    BulkScheduler,
    CapacityTracker,
    ConflictDetector,
    ConflictResolver,
)

logger = logging.getLogger(__name__)


class SchedulingEngine:
    """
    Entry point for scheduling operations.

    Read operations (check, resolve, slots, capacity) never write; every write
    goes through BookingService.
    """

    def __init__(self, store: SchedulingStore, locks=None, settings: Optional[SchedulingSettings] = None):
        """
        Initialize the engine.

        Args:
            store: Scheduling store
            locks: Lock provider exposing ``hold(therapist_id)``; in-process by default
            settings: Engine settings (defaults to get_settings())
        """
        self.store = store
        self.settings = settings or get_settings()
        self.locks = locks or TherapistLockManager()

        self.calendar = AvailabilityCalendar(store)
        self.detector = ConflictDetector(store, self.calendar, self.settings)
        self.resolver = ConflictResolver(self.detector, self.settings)
        self.capacity = CapacityTracker(store)
        self.bookings = BookingService(store, self.detector, self.resolver, self.locks)
        self.selector = AssignmentSelector(store, self.detector, self.bookings)
        self.bulk = BulkScheduler(self.detector, self.resolver, self.bookings)

    # Availability

    async def check_availability(
        self,
        therapist_id: str,
        day: date,
        start_time: Union[int, str],
        duration: int,
        exclude_booking_id: Optional[str] = None
    ) -> ConflictResult:
        return await self.detector.check(therapist_id, day, start_time, duration, exclude_booking_id)

    async def check_bulk_availability(
        self,
        therapist_id: str,
        day: date,
        slots: List[TimeSlot],
        exclude_booking_ids: Iterable[str] = ()
    ) -> BulkAvailabilityResult:
        results = await self.detector.check_many(therapist_id, day, slots, exclude_booking_ids)
        return BulkAvailabilityResult(therapist_id=therapist_id, scheduled_date=day, results=results)

    async def available_slots(self, therapist_id: str, day: date, duration: Optional[int] = None) -> List[int]:
        return await self.detector.available_slots(therapist_id, day, duration)

    async def resolve_conflicts(
        self,
        therapist_id: str,
        day: date,
        duration: int,
        preferred_time: Optional[Union[int, str]] = None,
        max_time_shift: Optional[int] = None,
        allow_different_day: bool = False
    ) -> Resolution:
        return await self.resolver.resolve(
            therapist_id, day, duration,
            preferred_time=preferred_time,
            max_time_shift=max_time_shift,
            allow_different_day=allow_different_day,
        )

    # Assignment and bulk creation

    async def assign(self, request: AssignmentRequest) -> AssignmentResult:
        return await self.selector.assign(request)

    async def bulk_schedule(self, plan_id: str, params: BulkScheduleParams) -> BatchResult:
        plan = await self.store.get_treatment_plan(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return await self.bulk.generate(plan, params)

    # Sessions

    async def book_session(
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
        return await self.bookings.book(
            therapist_id, patient_id, scheduled_date, scheduled_time, duration,
            plan_id=plan_id, service_id=service_id, notes=notes,
        )

    async def transition_status(
        self,
        booking_id: str,
        status: Union[BookingStatus, str],
        cancellation_reason: Optional[str] = None
    ) -> Booking:
        return await self.bookings.transition_status(booking_id, status, cancellation_reason)

    async def cancel_session(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        return await self.bookings.cancel(booking_id, reason)

    async def reschedule_session(
        self,
        booking_id: str,
        new_date: date,
        new_time: Union[int, str],
        duration: Optional[int] = None,
        auto_resolve: bool = False,
        max_time_shift: Optional[int] = None
    ) -> Booking:
        return await self.bookings.reschedule(
            booking_id, new_date, new_time,
            duration=duration, auto_resolve=auto_resolve, max_time_shift=max_time_shift,
        )

    # Capacity

    async def utilization(self, therapist_id: str, reference_date: date) -> UtilizationReport:
        return await self.capacity.report(therapist_id, reference_date)

    async def capacity_alerts(self, therapist_id: str, reference_date: date) -> List[CapacityAlert]:
        report = await self.capacity.report(therapist_id, reference_date)
        return report.alerts

    async def capacity_overview(self, reference_date: date) -> CapacityOverview:
        return await self.capacity.overview(reference_date)

    async def range_workload(self, therapist_id: str, start: date, end: date) -> RangeWorkload:
        return await self.capacity.range_workload(therapist_id, start, end)

    async def set_alert_threshold(self, threshold: CapacityAlertThreshold) -> CapacityAlertThreshold:
        if await self.store.get_therapist(threshold.therapist_id) is None:
            raise TherapistNotFoundError(threshold.therapist_id)
        saved = await self.store.save_alert_threshold(threshold)
        logger.info(
            f"Alert threshold {saved.alert_type.value}={saved.threshold} set for therapist {saved.therapist_id}"
        )
        return saved


def create_engine(settings: Optional[SchedulingSettings] = None) -> SchedulingEngine:
    """
    Build an engine from settings.

    STORE_BACKEND selects the in-memory or Supabase store; LOCK_BACKEND selects
    in-process or Redis therapist locks.
    """
    settings = settings or get_settings()

    if settings.STORE_BACKEND == "supabase":
        from ..database import get_scheduling_client
        from ..db.supabase_store import SupabaseSchedulingStore
        store = SupabaseSchedulingStore(get_scheduling_client())
    else:
        from ..db.memory_store import InMemorySchedulingStore
        store = InMemorySchedulingStore()

    if settings.LOCK_BACKEND == "redis":
        import redis
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        locks = RedisTherapistLock.from_settings(client, settings)
    else:
        locks = TherapistLockManager()

    logger.info(f"Scheduling engine created (store={settings.STORE_BACKEND}, locks={settings.LOCK_BACKEND})")
    return SchedulingEngine(store, locks=locks, settings=settings)
