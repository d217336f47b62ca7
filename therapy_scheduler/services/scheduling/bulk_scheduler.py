"""
Bulk Scheduler.

Materializes the sessions of an approved treatment plan across a date range
and recurrence pattern. Failures are recorded per slot and never abort the
batch.
"""

import logging
from datetime import date, timedelta
from typing import Iterator, List, Optional, Tuple

from ...exceptions import InvalidSchedulingRequestError, SchedulingError
from ...models.results import (
    BatchResult,
    BulkScheduleParams,
    CreatedSession,
    SlotError,
    TimeSlot,
)
from ...models.scheduling import DayOfWeek, PlanService, PlanStatus, TreatmentPlan
from .booking_service import BookingService
from .conflict_detector import ConflictDetector
from .conflict_resolver import ConflictResolver

logger = logging.getLogger(__name__)


class BulkScheduler:
    """Creates recurring sessions for every service of a treatment plan."""

    def __init__(
        self,
        detector: ConflictDetector,
        resolver: ConflictResolver,
        booking_service: BookingService
    ):
        self.detector = detector
        self.resolver = resolver
        self.booking_service = booking_service

    @staticmethod
    def recurrence_dates(params: BulkScheduleParams) -> List[date]:
        """Dates from start to end stepped by the frequency, filtered by weekday."""
        step = timedelta(days=params.frequency.step_days)
        weekdays = set(params.days_of_week) if params.days_of_week else None

        dates = []
        current = params.date_range.start
        while current <= params.date_range.end:
            if weekdays is None or DayOfWeek.of(current) in weekdays:
                dates.append(current)
            current += step
        return dates

    async def generate(self, plan: TreatmentPlan, params: BulkScheduleParams) -> BatchResult:
        """
        Create the plan's sessions.

        Args:
            plan: Approved treatment plan
            params: Date range, recurrence, weekdays, time slots and resolution policy

        Returns:
            BatchResult with created sessions, per-slot errors and per-service shortfall

        Raises:
            InvalidSchedulingRequestError: Plan is not approved, or a slot duration is out of bounds
        """
        if plan.status != PlanStatus.APPROVED:
            raise InvalidSchedulingRequestError(
                f"Treatment plan {plan.id} must be APPROVED for bulk scheduling (status {plan.status.value})",
                field="plan_id",
            )

        for slot in params.time_slots:
            self.detector.validate_request(params.date_range.start, slot.time, slot.duration)

        dates = self.recurrence_dates(params)
        result = BatchResult(plan_id=plan.id)

        for service in plan.services:
            created = await self._schedule_service(plan, service, dates, params, result)
            missing = service.total_sessions - created
            if missing > 0:
                result.shortfall[service.service_id] = missing

        logger.info("bulk_schedule.completed", extra={
            "plan_id": plan.id,
            "created": result.sessions_created,
            "errors": len(result.errors),
            "shortfall": sum(result.shortfall.values()),
        })
        return result

    async def _schedule_service(
        self,
        plan: TreatmentPlan,
        service: PlanService,
        dates: List[date],
        params: BulkScheduleParams,
        result: BatchResult
    ) -> int:
        created = 0
        for day, slot in self._pairs(dates, params.time_slots):
            if created >= service.total_sessions:
                break

            start, error = await self._pick_start(plan, service, day, slot, params)
            if error is not None:
                result.errors.append(error)
                continue

            try:
                booking = await self.booking_service.book(
                    therapist_id=plan.therapist_id,
                    patient_id=plan.patient_id,
                    scheduled_date=day,
                    scheduled_time=start,
                    duration=slot.duration,
                    plan_id=plan.id,
                    service_id=service.service_id,
                    notes=params.notes,
                )
            except SchedulingError as e:
                result.errors.append(SlotError(
                    service_id=service.service_id,
                    scheduled_date=day,
                    requested_time=slot.time,
                    reason=getattr(e, "reason", None) or type(e).__name__,
                    message=str(e),
                ))
                continue

            result.created_sessions.append(CreatedSession(booking=booking, requested_time=slot.time))
            created += 1
        return created

    async def _pick_start(
        self,
        plan: TreatmentPlan,
        service: PlanService,
        day: date,
        slot: TimeSlot,
        params: BulkScheduleParams
    ) -> Tuple[Optional[int], Optional[SlotError]]:
        check = await self.detector.check(plan.therapist_id, day, slot.time, slot.duration)
        if check.available:
            return slot.time, None

        if params.auto_resolve_conflicts:
            resolution = await self.resolver.resolve(
                plan.therapist_id, day, slot.duration,
                preferred_time=slot.time,
                max_time_shift=params.max_time_shift,
                allow_different_day=False,
            )
            if resolution.resolved:
                return resolution.suggested_time, None
            return None, SlotError(
                service_id=service.service_id,
                scheduled_date=day,
                requested_time=slot.time,
                reason=resolution.failure.value if resolution.failure else "no-slot",
                message=resolution.reason,
            )

        return None, SlotError(
            service_id=service.service_id,
            scheduled_date=day,
            requested_time=slot.time,
            reason=check.reason.value if check.reason else "unavailable",
            message=check.message or "Slot not available",
        )

    @staticmethod
    def _pairs(dates: List[date], slots: List[TimeSlot]) -> Iterator[Tuple[date, TimeSlot]]:
        for day in dates:
            for slot in slots:
                yield day, slot
