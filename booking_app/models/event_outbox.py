"""
Event Outbox Model

Change events are queued here after the calendar mutation commits and are
delivered to the message bus by a background worker (at-least-once).
Rows sharing a message_key are delivered in `sequence` order.
"""

import threading
import time
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer, BigInteger, JSON, Index
from ..database import Base
import enum

_sequence_guard = threading.Lock()
_last_sequence = 0


def next_sequence() -> int:
    """Microsecond clock reading, strictly increasing within the process."""
    global _last_sequence
    with _sequence_guard:
        _last_sequence = max(time.time_ns() // 1000, _last_sequence + 1)
        return _last_sequence


class OutboxStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


class EventOutbox(Base):
    """
    Outbox pattern for reliable outbound change events.
    """
    __tablename__ = "event_outbox"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Insertion order across the whole table
    sequence = Column(BigInteger, nullable=False, default=next_sequence)

    # Routing: topic + partition key
    topic = Column(String(100), nullable=False)
    message_key = Column(String(100), nullable=False)
    event_type = Column(String(50), nullable=False)

    # Payload
    payload = Column(JSON, nullable=False)

    # Processing status
    status = Column(String(20), default=OutboxStatus.PENDING.value)
    attempts = Column(Integer, default=0)
    max_attempts = Column(Integer, default=5)
    next_attempt_at = Column(DateTime, default=datetime.utcnow)

    # Result tracking
    last_error = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_event_outbox_status_next", "status", "next_attempt_at"),
        Index("ix_event_outbox_topic", "topic"),
        Index("ix_event_outbox_key_sequence", "message_key", "sequence"),
    )

    def __repr__(self):
        return f"<EventOutbox {self.topic}:{self.event_type} #{self.sequence} status={self.status}>"
