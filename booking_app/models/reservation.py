import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from ..database import Base
import enum


class ReservationStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class Reservation(Base):
    """Confirmed booking, bound 1:1 to the approved request."""
    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = Column(
        String(36),
        ForeignKey("reservation_requests.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )
    confirmed_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    status = Column(String(20), nullable=False, default=ReservationStatus.CONFIRMED.value)

    request = relationship("ReservationRequest", back_populates="reservation")

    __table_args__ = (
        Index("ix_reservation_status", "status"),
    )

    def __repr__(self):
        return f"<Reservation request={self.request_id} {self.status}>"
