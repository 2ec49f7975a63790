"""
Availability Model

One row per contiguous, priced span of days on an accommodation's calendar.
For a given accommodation the rows never overlap, whatever their status.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime, Numeric, Index, CheckConstraint
from ..database import Base
import enum


class AvailabilityStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    EXPIRED = "EXPIRED"


class PriceType(str, enum.Enum):
    NORMAL = "NORMAL"
    HOLIDAY = "HOLIDAY"
    SEASONAL = "SEASONAL"
    WEEKEND = "WEEKEND"


class Availability(Base):
    """
    Calendar interval for an accommodation.

    start_date and end_date are both inclusive. Price and price_type are
    copied verbatim into every fragment produced by a split.
    """
    __tablename__ = "availability"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    accommodation_id = Column(String(36), nullable=False)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    price = Column(Numeric(12, 2), nullable=False)
    price_type = Column(String(20), nullable=False, default=PriceType.NORMAL.value)
    status = Column(String(20), nullable=False, default=AvailabilityStatus.AVAILABLE.value)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_availability_date_order"),
        CheckConstraint("price >= 0", name="ck_availability_price_non_negative"),
        Index("ix_availability_accommodation_start", "accommodation_id", "start_date"),
        Index("ix_availability_accommodation_status", "accommodation_id", "status"),
    )

    def __repr__(self):
        return f"<Availability {self.accommodation_id} {self.start_date}..{self.end_date} {self.status}>"
