"""
Capacity Tracker.

Aggregates booked sessions and hours per therapist, computes utilization
against configured limits and classifies alert severity. Everything here is
derived from active sessions on read; nothing is cached or persisted.
"""

import calendar
import logging
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from ...db.store import SchedulingStore
from ...exceptions import InvalidSchedulingRequestError, TherapistNotFoundError
from ...models.results import (
    AlertSeverity,
    CapacityAlert,
    CapacityOverview,
    DailyLoad,
    RangeWorkload,
    UtilizationReport,
    WorkloadProjection,
    WorkloadSnapshot,
)
from ...models.scheduling import (
    ACTIVE_STATUSES,
    AlertType,
    BookingQuery,
    CapacityAlertThreshold,
    CapacityConfig,
    TherapistQuery,
)

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS: Dict[AlertType, float] = {
    AlertType.CAPACITY_EXCEEDED: 90.0,
    AlertType.WORKLOAD_HIGH: 80.0,
    AlertType.UNDERUTILIZED: 20.0,
}

# Below this the therapist can clearly take more sessions
LOW_UTILIZATION_HINT = 50.0

# Projection multipliers applied to the weekly rate of a range
PROJECTION_GROWTH = 1.1
WEEKS_PER_MONTH = 4.2


def _hours(minutes: int) -> float:
    return minutes / 60.0


def _capped(value: float, limit: float) -> float:
    return min(value, limit) if limit > 0 else value


def iso_week(day: date) -> str:
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"


class CapacityTracker:
    """Workload aggregation and utilization alerts."""

    def __init__(self, store: SchedulingStore):
        self.store = store

    async def workload(self, therapist_id: str, reference_date: date) -> WorkloadSnapshot:
        """
        Sessions and hours for the day, ISO week and calendar month of a date.

        Args:
            therapist_id: Therapist ID
            reference_date: Date the snapshot is centred on

        Returns:
            WorkloadSnapshot built from active sessions
        """
        week_start = reference_date - timedelta(days=reference_date.weekday())
        week_end = week_start + timedelta(days=6)
        month_start = reference_date.replace(day=1)
        month_end = reference_date.replace(
            day=calendar.monthrange(reference_date.year, reference_date.month)[1]
        )

        bookings = await self.store.list_bookings(BookingQuery(
            therapist_id=therapist_id,
            date_from=min(week_start, month_start),
            date_to=max(week_end, month_end),
            statuses=set(ACTIVE_STATUSES),
        ))

        snapshot = WorkloadSnapshot(therapist_id=therapist_id, reference_date=reference_date)
        for booking in bookings:
            day = booking.scheduled_date
            hours = _hours(booking.duration)
            if day == reference_date:
                snapshot.sessions_today += 1
                snapshot.hours_today += hours
            if week_start <= day <= week_end:
                snapshot.sessions_this_week += 1
                snapshot.hours_this_week += hours
            if month_start <= day <= month_end:
                snapshot.sessions_this_month += 1
                snapshot.hours_this_month += hours
        return snapshot

    @staticmethod
    def utilization(config: CapacityConfig, workload: WorkloadSnapshot) -> float:
        """
        Percentage utilization: the larger of daily hours and weekly sessions.

        A zero limit contributes nothing.
        """
        daily = 0.0
        if config.max_hours_per_day > 0:
            daily = workload.hours_today / config.max_hours_per_day * 100
        weekly = 0.0
        if config.max_sessions_per_week > 0:
            weekly = workload.sessions_this_week / config.max_sessions_per_week * 100
        return max(daily, weekly)

    @staticmethod
    def classify(
        utilization: float,
        thresholds: Optional[List[CapacityAlertThreshold]] = None
    ) -> Tuple[AlertSeverity, List[CapacityAlert]]:
        """
        Map a utilization figure to a severity and the alerts it raises.

        Active admin thresholds replace the default cut-off of their alert type.
        """
        cutoffs = dict(DEFAULT_THRESHOLDS)
        for threshold in thresholds or []:
            if threshold.is_active:
                cutoffs[threshold.alert_type] = threshold.threshold

        exceeded = cutoffs[AlertType.CAPACITY_EXCEEDED]
        high = cutoffs[AlertType.WORKLOAD_HIGH]
        low = cutoffs[AlertType.UNDERUTILIZED]

        if utilization >= exceeded:
            return AlertSeverity.CRITICAL, [CapacityAlert(
                alert_type=AlertType.CAPACITY_EXCEEDED,
                severity=AlertSeverity.CRITICAL,
                utilization=utilization,
                threshold=exceeded,
                message=f"Capacity exceeded: {utilization:.1f}% utilization",
            )]
        if utilization >= high:
            return AlertSeverity.WARNING, [CapacityAlert(
                alert_type=AlertType.WORKLOAD_HIGH,
                severity=AlertSeverity.WARNING,
                utilization=utilization,
                threshold=high,
                message=f"High workload: {utilization:.1f}% utilization",
            )]
        if utilization < low:
            return AlertSeverity.INFO, [CapacityAlert(
                alert_type=AlertType.UNDERUTILIZED,
                severity=AlertSeverity.INFO,
                utilization=utilization,
                threshold=low,
                message=f"Underutilized: {utilization:.1f}% utilization",
            )]
        return AlertSeverity.NORMAL, []

    @staticmethod
    def recommendations(severity: AlertSeverity, utilization: float) -> List[str]:
        if severity == AlertSeverity.CRITICAL:
            return [
                "Consider reducing session load or increasing capacity limits",
                "Schedule additional break time between sessions",
            ]
        if severity == AlertSeverity.WARNING:
            return ["Avoid assigning new sessions until the workload decreases"]
        if utilization < LOW_UTILIZATION_HINT:
            return [
                "Consider taking on additional sessions to improve utilization",
                "Review and optimize schedule gaps",
            ]
        return []

    @staticmethod
    def trend(weekly_sessions: List[int]) -> float:
        """Percent change from the first to the last week; 0 with fewer than two weeks."""
        if len(weekly_sessions) < 2 or weekly_sessions[0] == 0:
            return 0.0
        first, last = weekly_sessions[0], weekly_sessions[-1]
        return (last - first) / first * 100

    @staticmethod
    def project(config: CapacityConfig, workload: RangeWorkload) -> WorkloadProjection:
        """
        Next week and next month at the range's weekly rate plus growth.

        Projections never exceed the configured weekly and monthly limits; a
        zero limit leaves the projection uncapped. Monthly hours are capped at
        the weekly hour limit over an average month.
        """
        days = (workload.end - workload.start).days + 1
        weekly_sessions = workload.total_sessions * 7 / days
        weekly_hours = workload.total_hours * 7 / days

        return WorkloadProjection(
            next_week_sessions=_capped(weekly_sessions * PROJECTION_GROWTH, config.max_sessions_per_week),
            next_week_hours=_capped(weekly_hours * PROJECTION_GROWTH, config.max_hours_per_week),
            next_month_sessions=_capped(weekly_sessions * WEEKS_PER_MONTH, config.max_sessions_per_month),
            next_month_hours=_capped(
                weekly_hours * WEEKS_PER_MONTH, config.max_hours_per_week * WEEKS_PER_MONTH
            ),
        )

    async def capacity_config(self, therapist_id: str) -> CapacityConfig:
        config = await self.store.get_capacity_config(therapist_id)
        return config or CapacityConfig(therapist_id=therapist_id)

    async def report(self, therapist_id: str, reference_date: date) -> UtilizationReport:
        """
        Full utilization report for one therapist.

        Args:
            therapist_id: Therapist ID
            reference_date: Date the report is computed for

        Returns:
            UtilizationReport with workload, utilization, alerts and recommendations

        Raises:
            TherapistNotFoundError: If the therapist does not exist
        """
        if await self.store.get_therapist(therapist_id) is None:
            raise TherapistNotFoundError(therapist_id)

        config = await self.capacity_config(therapist_id)
        workload = await self.workload(therapist_id, reference_date)
        utilization = self.utilization(config, workload)
        thresholds = await self.store.list_alert_thresholds(therapist_id)
        severity, alerts = self.classify(utilization, thresholds)

        if alerts:
            logger.info("capacity.alert", extra={
                "therapist_id": therapist_id,
                "utilization": round(utilization, 1),
                "severity": severity.value,
            })

        return UtilizationReport(
            therapist_id=therapist_id,
            reference_date=reference_date,
            capacity=config,
            workload=workload,
            utilization=utilization,
            severity=severity,
            alerts=alerts,
            recommendations=self.recommendations(severity, utilization),
        )

    async def range_workload(self, therapist_id: str, start: date, end: date) -> RangeWorkload:
        """
        Active sessions in [start, end] with daily and ISO-week breakdowns.

        Also reports the week-over-week trend and a projection of the next week
        and month at the range's weekly rate.
        """
        if end < start:
            raise InvalidSchedulingRequestError("Range end precedes start", field="end")

        bookings = await self.store.list_bookings(BookingQuery(
            therapist_id=therapist_id,
            date_from=start,
            date_to=end,
            statuses=set(ACTIVE_STATUSES),
        ))

        result = RangeWorkload(therapist_id=therapist_id, start=start, end=end)
        for booking in bookings:
            load = result.daily.setdefault(booking.scheduled_date, DailyLoad())
            load.sessions += 1
            load.hours += _hours(booking.duration)
            week = result.weekly.setdefault(iso_week(booking.scheduled_date), DailyLoad())
            week.sessions += 1
            week.hours += _hours(booking.duration)
            result.total_sessions += 1
            result.total_hours += _hours(booking.duration)

        if result.total_sessions:
            result.average_session_hours = result.total_hours / result.total_sessions

        result.weekly = dict(sorted(result.weekly.items()))
        result.trend = self.trend([w.sessions for w in result.weekly.values()])
        config = await self.capacity_config(therapist_id)
        result.projection = self.project(config, result)
        return result

    async def overview(self, reference_date: date) -> CapacityOverview:
        """Utilization across all active therapists."""
        therapists = await self.store.list_therapists(TherapistQuery(active=True))
        reports = [await self.report(t.id, reference_date) for t in therapists]

        overview = CapacityOverview(reference_date=reference_date, therapists=reports)
        if reports:
            values = [r.utilization for r in reports]
            overview.average_utilization = sum(values) / len(values)
            overview.max_utilization = max(values)
            overview.min_utilization = min(values)
            overview.overloaded_therapists = sum(
                1 for r in reports if r.severity in (AlertSeverity.CRITICAL, AlertSeverity.WARNING)
            )
            overview.underutilized_therapists = sum(
                1 for r in reports if r.severity == AlertSeverity.INFO
            )
        return overview
