"""
Change Notifier

Maps every calendar / request / reservation mutation to an outbound event.

Events are buffered while a logical operation runs and handed to the
publisher only after the operation commits. A publisher failure is logged
and never rolls back the committed mutation; the outbox worker owns retries.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..errors import NotificationError
from ..models.availability import Availability
from ..models.event_outbox import EventOutbox, OutboxStatus, next_sequence
from ..models.reservation_request import ReservationRequest

logger = logging.getLogger(__name__)

# Topics and partition keys are part of the contract with consumers
TOPIC_AVAILABILITY = "availability-events"
TOPIC_REQUEST_RESPONDED = "request-responded"
TOPIC_RESERVATION_CREATED = "reservation-created"
TOPIC_RESERVATION_CANCELLED = "reservation-cancelled"


class EventType(str, Enum):
    AVAILABILITY_CREATED = "AvailabilityCreated"
    AVAILABILITY_UPDATED = "AvailabilityUpdated"
    AVAILABILITY_DELETED = "AvailabilityDeleted"
    AVAILABILITY_STATUS_CHANGED = "AvailabilityStatusChanged"
    REQUEST_RESPONDED = "RequestResponded"
    RESERVATION_CREATED = "ReservationCreated"
    RESERVATION_CANCELLED = "ReservationCancelled"


@dataclass(frozen=True)
class Responder:
    """Display name of whoever answered a request (empty for automatic approval)."""
    first_name: str = ""
    last_name: str = ""


@dataclass(frozen=True)
class ChangeEvent:
    topic: str
    key: str
    event_type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _status_value(value) -> Optional[str]:
    return value.value if isinstance(value, Enum) else value


def availability_snapshot(interval: Availability) -> Dict[str, Any]:
    """Field snapshot of an interval at the moment of mutation."""
    return {
        "id": interval.id,
        "accommodationId": interval.accommodation_id,
        "startDate": _iso(interval.start_date),
        "endDate": _iso(interval.end_date),
        "price": str(interval.price) if interval.price is not None else None,
        "priceType": _status_value(interval.price_type),
        "status": _status_value(interval.status),
    }


class EventPublisher:
    """Hands a batch of committed change events to the transport."""

    def publish(self, events: List[ChangeEvent]) -> None:
        raise NotImplementedError


class OutboxEventPublisher(EventPublisher):
    """Writes events to the event_outbox table for the background worker."""

    def __init__(self, db: Session):
        self.db = db

    def publish(self, events: List[ChangeEvent]) -> None:
        try:
            for event in events:
                self.db.add(EventOutbox(
                    sequence=next_sequence(),
                    topic=event.topic,
                    message_key=event.key,
                    event_type=event.event_type.value,
                    payload=event.payload,
                    status=OutboxStatus.PENDING.value
                ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


class NullEventPublisher(EventPublisher):
    """Drops events; used when EVENTS_ENABLED is off."""

    def publish(self, events: List[ChangeEvent]) -> None:
        logger.debug(f"Events disabled, dropping {len(events)} change events")


class ChangeNotifier:
    """
    Per-operation event buffer.

    Services record events while mutating, call `discard()` when the
    transaction rolls back and `flush()` once it has committed.
    """

    def __init__(self, publisher: EventPublisher):
        self.publisher = publisher
        self._pending: List[ChangeEvent] = []

    @property
    def pending(self) -> List[ChangeEvent]:
        return list(self._pending)

    def record(self, event: ChangeEvent) -> None:
        self._pending.append(event)

    def availability_changed(self, interval: Availability, event_type: EventType) -> None:
        payload = availability_snapshot(interval)
        payload["eventType"] = event_type.value
        self.record(ChangeEvent(
            topic=TOPIC_AVAILABILITY,
            key=str(interval.accommodation_id),
            event_type=event_type,
            payload=payload
        ))

    def request_responded(self, request: ReservationRequest, responder: Responder) -> None:
        self.record(ChangeEvent(
            topic=TOPIC_REQUEST_RESPONDED,
            key=str(request.id),
            event_type=EventType.REQUEST_RESPONDED,
            payload={
                "reservationRequestId": request.id,
                "status": _status_value(request.status),
                "accommodationId": request.accommodation_id,
                "guestId": request.guest_id,
                "hostName": responder.first_name,
                "hostLastName": responder.last_name,
                "respondedAt": datetime.utcnow().isoformat(),
            }
        ))

    def reservation_created(self, request: ReservationRequest) -> None:
        self._reservation_event(request, TOPIC_RESERVATION_CREATED, EventType.RESERVATION_CREATED)

    def reservation_cancelled(self, request: ReservationRequest) -> None:
        self._reservation_event(request, TOPIC_RESERVATION_CANCELLED, EventType.RESERVATION_CANCELLED)

    def _reservation_event(self, request: ReservationRequest, topic: str, event_type: EventType) -> None:
        self.record(ChangeEvent(
            topic=topic,
            key=str(request.accommodation_id),
            event_type=event_type,
            payload={
                "reservationRequestId": request.id,
                "accommodationId": request.accommodation_id,
                "guestId": request.guest_id,
                "guestFirstName": request.guest_first_name,
                "guestLastName": request.guest_last_name,
                "guestEmail": request.guest_email,
                "startDate": _iso(request.start_date),
                "endDate": _iso(request.end_date),
                "timestamp": datetime.utcnow().isoformat(),
            }
        ))

    def discard(self) -> None:
        self._pending.clear()

    def flush(self) -> bool:
        """
        Publish buffered events in insertion order.

        Returns False (after logging) if the publisher failed.
        """
        if not self._pending:
            return True

        events, self._pending = self._pending, []
        try:
            self.publisher.publish(events)
        except Exception as e:
            error = NotificationError(
                f"Failed to publish {len(events)} change events: {e}",
                details={"topics": sorted({ev.topic for ev in events})}
            )
            logger.error(error.message, exc_info=True)
            return False

        logger.debug(f"Published {len(events)} change events")
        return True


def create_notifier(db: Session) -> ChangeNotifier:
    """Notifier wired to the outbox, or to nothing when events are disabled."""
    if settings.events_enabled:
        return ChangeNotifier(OutboxEventPublisher(db))
    return ChangeNotifier(NullEventPublisher())
