"""
Reservation Request Service

Owns the ReservationRequest and Reservation state machines:

    request:      PENDING -> APPROVED | REJECTED, PENDING -> deleted / updated
    reservation:  CONFIRMED -> CANCELLED (guest, before cutoff) | COMPLETED (sweep)

Every mutation on an accommodation runs inside `locked_transaction`, so the
reads and writes of its interval and pending-request sets never interleave
with another operation on the same accommodation. Change events are flushed
only after the commit.
"""

import logging
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..config import settings
from ..errors import InvalidStateError, NotFoundError, PolicyLookupError, TooLateError
from ..models.reservation import Reservation, ReservationStatus
from ..models.reservation_request import ReservationRequest, RequestStatus
from ..repositories import reservation_repository, reservation_request_repository
from ..utils.db_helpers import locked_transaction, run_with_conflict_retry
from ..utils.logging_config import get_logger
from ..utils.security import IdentityContext
from .accommodation_client import AccommodationClient
from .allocation_service import AllocationService
from .calendar_intervals import ONE_DAY, DateRange, business_today
from .change_notifier import ChangeNotifier, Responder, create_notifier
from .merge_consolidator import MergeConsolidator

logger = logging.getLogger(__name__)
structured_logger = get_logger(__name__)

AUTO_RESPONDER = Responder()


class ReservationRequestService:
    """
    Request lifecycle controller.

    Collaborators are injected so tests can swap the notifier, the
    accommodation client and the clock.
    """

    def __init__(
        self,
        db: Session,
        notifier: Optional[ChangeNotifier] = None,
        accommodation_client: Optional[AccommodationClient] = None,
        clock: Callable[[], date] = business_today,
        max_attempts: Optional[int] = None
    ):
        self.db = db
        self.notifier = notifier or create_notifier(db)
        self.accommodation_client = accommodation_client or AccommodationClient()
        self.clock = clock
        self.max_attempts = max_attempts or settings.conflict_max_retries

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> ReservationRequest:
        request = reservation_request_repository.get_by_id(self.db, request_id)
        if not request:
            raise NotFoundError(
                f"Reservation request {request_id} not found",
                details={"request_id": request_id}
            )
        return request

    def _require_pending(self, request: ReservationRequest, action: str) -> None:
        if request.status != RequestStatus.PENDING.value:
            raise InvalidStateError(
                f"Only PENDING requests can be {action}",
                details={"request_id": request.id, "status": request.status}
            )

    def _in_transaction(self, accommodation_id: str, work, description: str):
        return locked_transaction(
            self.db,
            accommodation_id,
            work,
            notifier=self.notifier,
            max_attempts=self.max_attempts,
            description=description
        )

    def _lookup_auto_confirm(self, accommodation_id: str) -> bool:
        """Policy failure or timeout means the request stays PENDING."""
        try:
            return self.accommodation_client.is_auto_confirm(accommodation_id)
        except PolicyLookupError as e:
            logger.warning(f"Auto-confirm lookup failed for accommodation {accommodation_id}: {e.message}")
            return False

    # ------------------------------------------------------------------
    # Create / update / delete
    # ------------------------------------------------------------------

    def create(
        self,
        identity: IdentityContext,
        accommodation_id: str,
        start_date: date,
        end_date: date,
        guest_count: int = 1
    ) -> ReservationRequest:
        """
        Create a PENDING request and, when the accommodation has auto-confirm
        enabled, approve it in the same transaction.

        The policy lookup is a remote call and happens before the lock is
        taken.
        """
        DateRange(start_date, end_date)
        auto_confirm = self._lookup_auto_confirm(accommodation_id)

        def work() -> ReservationRequest:
            request = ReservationRequest(
                accommodation_id=accommodation_id,
                guest_id=identity.user_id,
                guest_email=identity.email,
                guest_first_name=identity.first_name,
                guest_last_name=identity.last_name,
                start_date=start_date,
                end_date=end_date,
                guest_count=guest_count,
                status=RequestStatus.PENDING.value,
                created_at=datetime.utcnow()
            )
            self.db.add(request)
            self.db.flush()
            self.notifier.reservation_created(request)

            if auto_confirm:
                self._approve_pending(request, AUTO_RESPONDER)
            return request

        request = self._in_transaction(accommodation_id, work, "request creation")
        structured_logger.request_created(request.id, accommodation_id, identity.user_id, auto_confirm)
        if auto_confirm:
            structured_logger.request_status_changed(
                request.id, RequestStatus.PENDING.value, RequestStatus.APPROVED.value
            )
        return request

    def update(
        self,
        request_id: str,
        start_date: date,
        end_date: date,
        guest_count: int
    ) -> ReservationRequest:
        DateRange(start_date, end_date)
        request = self.get_request(request_id)

        def work() -> ReservationRequest:
            current = self.get_request(request_id)
            self._require_pending(current, "updated")
            current.start_date = start_date
            current.end_date = end_date
            current.guest_count = guest_count
            return current

        updated = self._in_transaction(request.accommodation_id, work, "request update")
        logger.info(f"Updated reservation request {request_id}")
        return updated

    def delete(self, request_id: str) -> None:
        request = self.get_request(request_id)

        def work() -> None:
            current = self.get_request(request_id)
            self._require_pending(current, "deleted")
            self.db.delete(current)

        self._in_transaction(request.accommodation_id, work, "request deletion")
        logger.info(f"Deleted reservation request {request_id}")

    # ------------------------------------------------------------------
    # Host response
    # ------------------------------------------------------------------

    def _approve_pending(self, current: ReservationRequest, responder: Responder) -> None:
        """
        Approval body, run inside the caller's locked transaction.

        Rejects every other overlapping PENDING request on the accommodation,
        creates the CONFIRMED reservation and carves the calendar around the
        stay.
        """
        stay = DateRange.of(current)

        competitors = reservation_request_repository.find_pending_overlapping(
            self.db,
            current.accommodation_id,
            stay.start,
            stay.end,
            exclude_id=current.id
        )
        for other in competitors:
            other.status = RequestStatus.REJECTED.value
            self.notifier.request_responded(other, responder)
            structured_logger.request_status_changed(
                other.id, RequestStatus.PENDING.value, RequestStatus.REJECTED.value
            )

        current.status = RequestStatus.APPROVED.value
        self.db.add(Reservation(
            request_id=current.id,
            confirmed_at=datetime.utcnow(),
            status=ReservationStatus.CONFIRMED.value
        ))
        self.db.flush()

        AllocationService(self.db, self.notifier).allocate(current.accommodation_id, stay)
        self.notifier.request_responded(current, responder)

    def approve(self, request_id: str, responder: Responder = AUTO_RESPONDER) -> ReservationRequest:
        """PENDING -> APPROVED, see _approve_pending."""
        request = self.get_request(request_id)

        def work() -> ReservationRequest:
            current = self.get_request(request_id)
            self._require_pending(current, "approved")
            self._approve_pending(current, responder)
            return current

        approved = self._in_transaction(request.accommodation_id, work, "request approval")
        structured_logger.request_status_changed(
            request_id, RequestStatus.PENDING.value, RequestStatus.APPROVED.value
        )
        return approved

    def reject(self, request_id: str, responder: Responder = AUTO_RESPONDER) -> ReservationRequest:
        """PENDING -> REJECTED, no calendar or reservation side effects."""
        request = self.get_request(request_id)

        def work() -> ReservationRequest:
            current = self.get_request(request_id)
            self._require_pending(current, "rejected")
            current.status = RequestStatus.REJECTED.value
            self.notifier.request_responded(current, responder)
            return current

        rejected = self._in_transaction(request.accommodation_id, work, "request rejection")
        structured_logger.request_status_changed(
            request_id, RequestStatus.PENDING.value, RequestStatus.REJECTED.value
        )
        return rejected

    def respond(
        self,
        request_id: str,
        status: RequestStatus,
        responder: Responder = AUTO_RESPONDER
    ) -> ReservationRequest:
        """Dispatch a host decision to approve() or reject()."""
        status = RequestStatus(status)
        if status == RequestStatus.APPROVED:
            return self.approve(request_id, responder)
        if status == RequestStatus.REJECTED:
            return self.reject(request_id, responder)
        raise InvalidStateError(
            "A request cannot be moved back to PENDING",
            details={"request_id": request_id}
        )

    # ------------------------------------------------------------------
    # Reservation lifecycle
    # ------------------------------------------------------------------

    def cancel_reservation(self, request_id: str) -> Reservation:
        """
        CONFIRMED -> CANCELLED, allowed up to and including the day before
        the stay starts.

        Every OCCUPIED interval overlapping the stay is reopened and the
        accommodation's free intervals are merged once.
        """
        request = self.get_request(request_id)

        def work() -> Reservation:
            current = self.get_request(request_id)
            reservation = reservation_repository.get_by_request(self.db, request_id)
            if not reservation:
                raise NotFoundError(
                    f"No reservation for request {request_id}",
                    details={"request_id": request_id}
                )
            if reservation.status != ReservationStatus.CONFIRMED.value:
                raise InvalidStateError(
                    "Only CONFIRMED reservations can be cancelled",
                    details={"reservation_id": reservation.id, "status": reservation.status}
                )

            today = self.clock()
            if today > current.start_date - ONE_DAY:
                raise TooLateError(
                    "Too late to cancel reservation",
                    details={"start_date": current.start_date.isoformat(), "today": today.isoformat()}
                )

            reservation.status = ReservationStatus.CANCELLED.value
            self.notifier.reservation_cancelled(current)

            AllocationService(self.db, self.notifier).release(current.accommodation_id, DateRange.of(current))
            MergeConsolidator(self.db, self.notifier).consolidate(current.accommodation_id)
            return reservation

        cancelled = self._in_transaction(request.accommodation_id, work, "reservation cancellation")
        structured_logger.reservation_status_changed(
            cancelled.id, ReservationStatus.CONFIRMED.value, ReservationStatus.CANCELLED.value
        )
        return cancelled

    def complete_finished_reservations(self, today: Optional[date] = None) -> int:
        """
        Move CONFIRMED reservations whose stay ended before `today` to
        COMPLETED. Returns how many were moved.
        """
        today = today or self.clock()

        def work() -> int:
            finished = reservation_repository.find_confirmed_ended_before(self.db, today)
            for reservation in finished:
                reservation.status = ReservationStatus.COMPLETED.value
            self.db.commit()
            return len(finished)

        completed = run_with_conflict_retry(self.db, work, self.max_attempts, "completion sweep")
        if completed:
            logger.info(f"Completed {completed} reservations that ended before {today}")
        return completed

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def find_by_guest(self, guest_id: str, accommodation_id: str) -> List[ReservationRequest]:
        return reservation_request_repository.list_by_guest_and_accommodation(
            self.db, guest_id, accommodation_id
        )

    def find_by_accommodation(self, accommodation_id: str) -> List[ReservationRequest]:
        """Newest first."""
        return reservation_request_repository.list_by_accommodation_newest_first(
            self.db, accommodation_id
        )

    def reservation_flags(self, request: ReservationRequest) -> Tuple[bool, int]:
        """(connected reservation cancelled, guest's cancelled reservation count)"""
        reservation = reservation_repository.get_by_request(self.db, request.id)
        cancelled = bool(reservation and reservation.status == ReservationStatus.CANCELLED.value)
        count = reservation_repository.count_by_guest_and_status(
            self.db, request.guest_id, ReservationStatus.CANCELLED
        )
        return cancelled, count
