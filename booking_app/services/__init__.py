# Services package
from .calendar_intervals import (
    DateRange, OverlapCase, AllocationPlan, Fragment,
    overlaps, touches, classify_overlap, plan_allocation
)
from .change_notifier import (
    ChangeEvent, ChangeNotifier, EventType, Responder,
    EventPublisher, OutboxEventPublisher, NullEventPublisher, create_notifier
)
from .allocation_service import AllocationService
from .merge_consolidator import MergeConsolidator, merge_adjacent
from .accommodation_client import AccommodationClient, get_accommodation_client
from .reservation_request_service import ReservationRequestService
from .availability_service import AvailabilityService, CalendarEntry
from .booking_eligibility_service import BookingEligibilityService
from .outbox_worker import OutboxProcessor, EventGatewayClient

__all__ = [
    "DateRange", "OverlapCase", "AllocationPlan", "Fragment",
    "overlaps", "touches", "classify_overlap", "plan_allocation",
    "ChangeEvent", "ChangeNotifier", "EventType", "Responder",
    "EventPublisher", "OutboxEventPublisher", "NullEventPublisher", "create_notifier",
    "AllocationService",
    "MergeConsolidator", "merge_adjacent",
    "AccommodationClient", "get_accommodation_client",
    "ReservationRequestService",
    "AvailabilityService", "CalendarEntry",
    "BookingEligibilityService",
    "OutboxProcessor", "EventGatewayClient",
]
