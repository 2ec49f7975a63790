from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from ..models.reservation import Reservation, ReservationStatus
from ..models.reservation_request import ReservationRequest


def get_by_request(db: Session, request_id: str) -> Optional[Reservation]:
    return db.query(Reservation).filter(Reservation.request_id == request_id).first()


def count_by_guest_and_status(db: Session, guest_id: str, status: ReservationStatus) -> int:
    count = db.query(func.count(Reservation.id)).select_from(Reservation).join(ReservationRequest).filter(
        ReservationRequest.guest_id == guest_id,
        Reservation.status == status.value
    ).scalar()
    return count or 0


def find_by_accommodation_overlapping(
    db: Session,
    accommodation_id: str,
    start_date: date,
    end_date: date,
    status: ReservationStatus
) -> List[Reservation]:
    """Reservations in `status` whose stay shares a day with [start_date, end_date]."""
    return db.query(Reservation).join(ReservationRequest).filter(
        and_(
            ReservationRequest.accommodation_id == accommodation_id,
            ReservationRequest.start_date <= end_date,
            ReservationRequest.end_date >= start_date,
            Reservation.status == status.value
        )
    ).order_by(ReservationRequest.start_date).all()


def find_confirmed_ended_before(db: Session, day: date) -> List[Reservation]:
    """CONFIRMED reservations whose stay ended before `day` (completion sweep)."""
    return db.query(Reservation).join(ReservationRequest).filter(
        Reservation.status == ReservationStatus.CONFIRMED.value,
        ReservationRequest.end_date < day
    ).all()


def exists_completed_stay(db: Session, guest_id: str, accommodation_id: str, before: date) -> bool:
    return db.query(Reservation.id).select_from(Reservation).join(ReservationRequest).filter(
        ReservationRequest.guest_id == guest_id,
        ReservationRequest.accommodation_id == accommodation_id,
        ReservationRequest.end_date < before,
        Reservation.status == ReservationStatus.COMPLETED.value
    ).first() is not None


def exists_by_guest_and_statuses(db: Session, guest_id: str, statuses: Iterable[ReservationStatus]) -> bool:
    return db.query(Reservation.id).select_from(Reservation).join(ReservationRequest).filter(
        ReservationRequest.guest_id == guest_id,
        Reservation.status.in_([s.value for s in statuses])
    ).first() is not None


def exists_for_accommodations_ending_after(
    db: Session,
    accommodation_ids: List[str],
    statuses: Iterable[ReservationStatus],
    after: date
) -> bool:
    if not accommodation_ids:
        return False
    return db.query(Reservation.id).select_from(Reservation).join(ReservationRequest).filter(
        ReservationRequest.accommodation_id.in_(accommodation_ids),
        ReservationRequest.end_date > after,
        Reservation.status.in_([s.value for s in statuses])
    ).first() is not None
