"""
Event Outbox Worker

Delivers change events from the EventOutbox table to the message bus through
a Kafka REST proxy, with:
- skip_locked batch selection so several workers can share the table
- exponential backoff between attempts
- permanent FAILED state once max_attempts is reached
- per-key ordering: events sharing a message_key leave in sequence order
- reclaim of PROCESSING rows abandoned by a crashed worker

Events are delivered at least once; consumers must tolerate duplicates.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import httpx
from sqlalchemy import and_, exists, not_, or_
from sqlalchemy.orm import Session, aliased

from ..config import settings
from ..errors import NotificationError
from ..models.event_outbox import EventOutbox, OutboxStatus
from ..utils.db_helpers import get_pending_with_skip_locked

logger = logging.getLogger(__name__)

KAFKA_JSON_CONTENT_TYPE = "application/vnd.kafka.json.v2+json"

UNDELIVERED_STATUSES = (
    OutboxStatus.PENDING.value,
    OutboxStatus.RETRYING.value,
    OutboxStatus.PROCESSING.value,
)


class EventGatewayClient:
    """Publishes records to `POST {base_url}/topics/{topic}` on a Kafka REST proxy."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.base_url = (base_url or settings.event_gateway_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.event_gateway_timeout_seconds
        self.transport = transport

    def send(self, topic: str, key: str, value: Dict[str, Any]) -> Dict[str, Any]:
        """
        Publish one record.

        Raises:
            NotificationError: on transport failure, non-2xx status or a
                per-record error reported by the proxy
        """
        url = f"{self.base_url}/topics/{topic}"
        body = {"records": [{"key": key, "value": value}]}
        headers = {
            "Content-Type": KAFKA_JSON_CONTENT_TYPE,
            "Accept": "application/vnd.kafka.v2+json, application/json",
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, json=body, headers=headers)
                response.raise_for_status()
                data = response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            raise NotificationError(
                f"Event gateway returned {e.response.status_code} for topic {topic}",
                details={"topic": topic, "status_code": e.response.status_code}
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise NotificationError(
                f"Event gateway request failed for topic {topic}: {e}",
                details={"topic": topic}
            ) from e

        for offset in data.get("offsets", []) or []:
            if offset.get("error"):
                raise NotificationError(
                    f"Event gateway rejected record on topic {topic}: {offset['error']}",
                    details={"topic": topic, "error_code": offset.get("error_code")}
                )
        return data


class OutboxProcessor:
    """
    Processes events from the EventOutbox.

    Run periodically by the in-process worker (see main.py) or worker.py.

    Events sharing a message_key leave in `sequence` order: an event is held
    back while an earlier event of its key is still undelivered, and a failed
    delivery holds back the rest of its key until the retry succeeds.
    PROCESSING rows left behind by a crashed worker are picked up again after
    OUTBOX_PROCESSING_TIMEOUT.
    """

    def __init__(self, db: Session, gateway: Optional[EventGatewayClient] = None):
        self.db = db
        self.gateway = gateway or EventGatewayClient()

    @staticmethod
    def _ready(model, now: datetime):
        """Rows this worker may send now."""
        stale_before = now - timedelta(seconds=settings.outbox_processing_timeout)
        return or_(
            and_(
                model.status.in_([OutboxStatus.PENDING.value, OutboxStatus.RETRYING.value]),
                model.next_attempt_at <= now,
                model.attempts < model.max_attempts
            ),
            and_(
                model.status == OutboxStatus.PROCESSING.value,
                model.updated_at < stale_before
            )
        )

    def get_pending_events(self, limit: int = 50) -> List[EventOutbox]:
        """
        Get events ready for processing, lowest sequence first.

        Returns events that are:
        - PENDING or RETRYING, due, and under max_attempts
        - or PROCESSING for longer than OUTBOX_PROCESSING_TIMEOUT

        and have no earlier event of the same key that is undelivered and
        not itself ready.
        """
        now = datetime.utcnow()
        earlier = aliased(EventOutbox)
        held_back = exists().where(and_(
            earlier.message_key == EventOutbox.message_key,
            earlier.sequence < EventOutbox.sequence,
            earlier.status.in_(UNDELIVERED_STATUSES),
            not_(self._ready(earlier, now))
        ))

        return get_pending_with_skip_locked(
            self.db,
            EventOutbox,
            and_(self._ready(EventOutbox, now), not_(held_back)),
            order_by=EventOutbox.sequence,
            limit=limit
        )

    def has_undelivered_predecessor(self, event: EventOutbox) -> bool:
        """True while an earlier event of the same key is not COMPLETED or FAILED."""
        return self.db.query(EventOutbox.id).filter(
            EventOutbox.message_key == event.message_key,
            EventOutbox.sequence < event.sequence,
            EventOutbox.status.in_(UNDELIVERED_STATUSES)
        ).first() is not None

    def get_failed_events(self, limit: int = 100) -> List[EventOutbox]:
        """Get events that have permanently failed"""
        return self.db.query(EventOutbox).filter(
            EventOutbox.status == OutboxStatus.FAILED.value
        ).order_by(EventOutbox.created_at.desc()).limit(limit).all()

    def retry_failed_event(self, event_id: str) -> bool:
        """Manually retry a failed event"""
        event = self.db.query(EventOutbox).filter(EventOutbox.id == event_id).first()
        if not event:
            return False

        event.status = OutboxStatus.PENDING.value
        event.attempts = 0
        event.next_attempt_at = datetime.utcnow()
        event.last_error = None
        self.db.commit()
        return True

    def process_event(self, event: EventOutbox) -> bool:
        """
        Deliver a single outbox event.

        Returns True if delivered, False if it was rescheduled or failed.
        """
        event.status = OutboxStatus.PROCESSING.value
        event.attempts = (event.attempts or 0) + 1
        self.db.commit()

        try:
            self.gateway.send(event.topic, event.message_key, event.payload or {})
        except NotificationError as e:
            logger.error(f"Error delivering event {event.id} ({event.event_type}): {e.message}")
            self._handle_failure(event, e.message)
            self.db.commit()
            return False

        event.status = OutboxStatus.COMPLETED.value
        event.completed_at = datetime.utcnow()
        event.last_error = None
        self.db.commit()
        return True

    def _handle_failure(self, event: EventOutbox, error: str):
        """Handle event delivery failure with exponential backoff"""
        event.last_error = error[:1000]

        if event.attempts >= event.max_attempts:
            event.status = OutboxStatus.FAILED.value
            logger.error(f"Event {event.id} permanently failed after {event.attempts} attempts")
        else:
            event.status = OutboxStatus.RETRYING.value
            # Exponential backoff: 1, 2, 4, 8, 16 minutes
            delay_minutes = min(2 ** (event.attempts - 1), 60)
            event.next_attempt_at = datetime.utcnow() + timedelta(minutes=delay_minutes)
            logger.warning(f"Event {event.id} will retry in {delay_minutes} minutes")

    def process_batch(self, limit: int = 50) -> Tuple[int, int]:
        """
        Process a batch of pending events.

        After a failure the remaining events of that key wait for the next
        batch. Each event re-checks its predecessors right before sending,
        since another worker may hold them.

        Returns: (success_count, failure_count)
        """
        events = self.get_pending_events(limit)

        success_count = 0
        failure_count = 0
        blocked_keys = set()
        for event in events:
            if event.message_key in blocked_keys:
                continue
            if self.has_undelivered_predecessor(event):
                blocked_keys.add(event.message_key)
                continue

            if self.process_event(event):
                success_count += 1
            else:
                failure_count += 1
                blocked_keys.add(event.message_key)

        if blocked_keys:
            logger.debug(f"Held back events for keys {sorted(blocked_keys)}")
        return success_count, failure_count
