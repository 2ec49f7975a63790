# Models package
from .availability import Availability, AvailabilityStatus, PriceType
from .reservation_request import ReservationRequest, RequestStatus
from .reservation import Reservation, ReservationStatus
from .event_outbox import EventOutbox, OutboxStatus

__all__ = [
    "Availability", "AvailabilityStatus", "PriceType",
    "ReservationRequest", "RequestStatus",
    "Reservation", "ReservationStatus",
    "EventOutbox", "OutboxStatus",
]
