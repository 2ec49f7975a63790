from datetime import date
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..models.reservation_request import ReservationRequest, RequestStatus


def get_by_id(db: Session, request_id: str) -> Optional[ReservationRequest]:
    return db.query(ReservationRequest).filter(ReservationRequest.id == request_id).first()


def list_by_accommodation_newest_first(db: Session, accommodation_id: str) -> List[ReservationRequest]:
    return db.query(ReservationRequest).filter(
        ReservationRequest.accommodation_id == accommodation_id
    ).order_by(ReservationRequest.created_at.desc()).all()


def list_by_guest_and_accommodation(
    db: Session,
    guest_id: str,
    accommodation_id: str
) -> List[ReservationRequest]:
    return db.query(ReservationRequest).filter(
        ReservationRequest.guest_id == guest_id,
        ReservationRequest.accommodation_id == accommodation_id
    ).order_by(ReservationRequest.created_at.desc()).all()


def find_pending_overlapping(
    db: Session,
    accommodation_id: str,
    start_date: date,
    end_date: date,
    exclude_id: Optional[str] = None
) -> List[ReservationRequest]:
    """PENDING requests of the accommodation sharing a day with [start_date, end_date]."""
    query = db.query(ReservationRequest).filter(
        and_(
            ReservationRequest.accommodation_id == accommodation_id,
            ReservationRequest.status == RequestStatus.PENDING.value,
            ReservationRequest.start_date <= end_date,
            ReservationRequest.end_date >= start_date
        )
    )

    if exclude_id:
        query = query.filter(ReservationRequest.id != exclude_id)

    return query.order_by(ReservationRequest.created_at).all()
