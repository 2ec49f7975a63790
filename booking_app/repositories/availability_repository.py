from datetime import date
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..models.availability import Availability, AvailabilityStatus


def get_by_id(db: Session, availability_id: str) -> Optional[Availability]:
    return db.query(Availability).filter(Availability.id == availability_id).first()


def find_overlapping(
    db: Session,
    accommodation_id: str,
    start_date: date,
    end_date: date,
    status: Optional[AvailabilityStatus] = None,
    exclude_id: Optional[str] = None
) -> List[Availability]:
    """
    Intervals of the accommodation sharing at least one day with
    [start_date, end_date], optionally restricted to one status.
    """
    query = db.query(Availability).filter(
        and_(
            Availability.accommodation_id == accommodation_id,
            Availability.start_date <= end_date,
            Availability.end_date >= start_date
        )
    )

    if status is not None:
        query = query.filter(Availability.status == status.value)

    if exclude_id:
        query = query.filter(Availability.id != exclude_id)

    return query.order_by(Availability.start_date).all()


def list_by_status_ordered(
    db: Session,
    accommodation_id: str,
    status: AvailabilityStatus
) -> List[Availability]:
    """Intervals in one status, ordered by start date ascending (merge input)."""
    return db.query(Availability).filter(
        Availability.accommodation_id == accommodation_id,
        Availability.status == status.value
    ).order_by(Availability.start_date).all()


def find_available_ended_before(db: Session, day: date) -> List[Availability]:
    """AVAILABLE intervals lying entirely before `day` (expiry sweep)."""
    return db.query(Availability).filter(
        Availability.status == AvailabilityStatus.AVAILABLE.value,
        Availability.end_date < day
    ).order_by(Availability.accommodation_id, Availability.start_date).all()
