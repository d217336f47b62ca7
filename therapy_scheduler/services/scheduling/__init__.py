"""
Scheduling engine components.

Leaves first: AvailabilityCalendar -> ConflictDetector -> ConflictResolver,
with CapacityTracker alongside. BookingService is the only writer of sessions;
AssignmentSelector and BulkScheduler book through it.
"""
from therapy_scheduler.services.scheduling.assignment_selector import AssignmentSelector
from therapy_scheduler.services.scheduling.availability_calendar import AvailabilityCalendar
from therapy_scheduler.services.scheduling.booking_service import BookingService, can_transition
from therapy_scheduler.services.scheduling.bulk_scheduler import BulkScheduler
from therapy_scheduler.services.scheduling.capacity_tracker import CapacityTracker
from therapy_scheduler.services.scheduling.conflict_detector import ConflictDetector
from therapy_scheduler.services.scheduling.conflict_resolver import ConflictResolver

__all__ = [
    "AvailabilityCalendar",
    "ConflictDetector",
    "ConflictResolver",
    "CapacityTracker",
    "AssignmentSelector",
    "BulkScheduler",
    "BookingService",
    "can_transition",
]
