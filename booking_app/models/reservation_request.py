import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime, Integer, Index, CheckConstraint
from sqlalchemy.orm import relationship
from ..database import Base
import enum


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ReservationRequest(Base):
    __tablename__ = "reservation_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    accommodation_id = Column(String(36), nullable=False)

    # Guest snapshot, captured at creation time and never re-fetched
    guest_id = Column(String(36), nullable=False)
    guest_email = Column(String(255), nullable=True)
    guest_first_name = Column(String(100), nullable=True)
    guest_last_name = Column(String(100), nullable=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    guest_count = Column(Integer, nullable=False, default=1)

    status = Column(String(20), nullable=False, default=RequestStatus.PENDING.value)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    reservation = relationship("Reservation", back_populates="request", uselist=False)

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_request_date_order"),
        Index("ix_request_accommodation_status", "accommodation_id", "status"),
        Index("ix_request_guest", "guest_id"),
    )

    def __repr__(self):
        return f"<ReservationRequest {self.guest_id} {self.start_date}..{self.end_date} {self.status}>"
