"""
Booking Eligibility Service

Read-only answers other services ask about a guest's or host's booking
history: may a guest rate, may an account be deleted.
"""

import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..models.reservation import ReservationStatus
from ..repositories import reservation_repository
from .accommodation_client import AccommodationClient
from .calendar_intervals import business_today

logger = logging.getLogger(__name__)


class BookingEligibilityService:

    def __init__(
        self,
        db: Session,
        accommodation_client: Optional[AccommodationClient] = None,
        clock: Callable[[], date] = business_today
    ):
        self.db = db
        self.accommodation_client = accommodation_client or AccommodationClient()
        self.clock = clock

    def has_guest_completed_stay(self, guest_id: str, accommodation_id: str) -> bool:
        """True once the guest has a COMPLETED stay at the accommodation."""
        return reservation_repository.exists_completed_stay(
            self.db, guest_id, accommodation_id, self.clock()
        )

    def can_guest_rate_host(self, host_id: str, guest_id: str, token: Optional[str] = None) -> bool:
        """A guest may rate a host after a completed stay at any of the host's accommodations."""
        accommodation_ids = self.accommodation_client.get_host_accommodation_ids(host_id, token=token)
        today = self.clock()
        return any(
            reservation_repository.exists_completed_stay(self.db, guest_id, accommodation_id, today)
            for accommodation_id in accommodation_ids
        )

    def can_guest_delete_account(self, guest_id: str) -> bool:
        return not reservation_repository.exists_by_guest_and_statuses(
            self.db, guest_id, [ReservationStatus.CONFIRMED]
        )

    def can_host_delete_account(self, host_id: str, token: Optional[str] = None) -> bool:
        """No CONFIRMED reservation ending after today on any of the host's accommodations."""
        accommodation_ids = self.accommodation_client.get_host_accommodation_ids(host_id, token=token)
        if not accommodation_ids:
            return True

        has_active = reservation_repository.exists_for_accommodations_ending_after(
            self.db, accommodation_ids, [ReservationStatus.CONFIRMED], self.clock()
        )
        if has_active:
            logger.info(f"Host {host_id} still has active reservations")
        return not has_active
