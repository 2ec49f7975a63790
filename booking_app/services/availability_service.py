"""
Availability Service

Host-side management of an accommodation's calendar:
- define / update / delete priced intervals
- calendar view for guests (free intervals) and hosts (plus reservations)
- expiry of AVAILABLE intervals that lie entirely in the past
"""

import calendar
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..errors import InvalidStateError, NotFoundError, OverlapError
from ..models.availability import Availability, AvailabilityStatus, PriceType
from ..models.reservation import ReservationStatus
from ..repositories import availability_repository, reservation_repository
from ..utils.db_helpers import locked_transaction
from .calendar_intervals import DateRange, business_today
from .change_notifier import ChangeNotifier, EventType, create_notifier

logger = logging.getLogger(__name__)

RESERVED = "RESERVED"


def add_months(day: date, months: int) -> date:
    """Same day `months` later, clamped to the end of shorter months."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


@dataclass(frozen=True)
class CalendarEntry:
    """One row of a calendar view; reservations carry no price."""
    id: str
    start_date: date
    end_date: date
    status: str
    price: Optional[Decimal] = None
    price_type: Optional[str] = None


class AvailabilityService:

    def __init__(
        self,
        db: Session,
        notifier: Optional[ChangeNotifier] = None,
        clock: Callable[[], date] = business_today,
        max_attempts: Optional[int] = None
    ):
        self.db = db
        self.notifier = notifier or create_notifier(db)
        self.clock = clock
        self.max_attempts = max_attempts or settings.conflict_max_retries

    def _in_transaction(self, accommodation_id: str, work, description: str):
        return locked_transaction(
            self.db,
            accommodation_id,
            work,
            notifier=self.notifier,
            max_attempts=self.max_attempts,
            description=description
        )

    def get_interval(self, availability_id: str) -> Availability:
        interval = availability_repository.get_by_id(self.db, availability_id)
        if not interval:
            raise NotFoundError(
                f"Availability {availability_id} not found",
                details={"availability_id": availability_id}
            )
        return interval

    def _check_no_overlap(
        self,
        accommodation_id: str,
        stay: DateRange,
        exclude_id: Optional[str] = None
    ) -> None:
        clashing = availability_repository.find_overlapping(
            self.db, accommodation_id, stay.start, stay.end, exclude_id=exclude_id
        )
        if clashing:
            first = clashing[0]
            raise OverlapError(
                f"Interval {stay.start}..{stay.end} overlaps an existing interval",
                details={
                    "availability_id": first.id,
                    "start_date": first.start_date.isoformat(),
                    "end_date": first.end_date.isoformat(),
                    "status": first.status,
                }
            )

    @staticmethod
    def _check_price(price: Decimal) -> None:
        if price is None or Decimal(price) < 0:
            raise ValueError("Price must be zero or positive")

    def define_availability(
        self,
        accommodation_id: str,
        start_date: date,
        end_date: date,
        price: Decimal,
        price_type: Optional[PriceType] = None
    ) -> Availability:
        """Add a new AVAILABLE interval; it may not overlap any existing one."""
        stay = DateRange(start_date, end_date)
        self._check_price(price)

        def work() -> Availability:
            self._check_no_overlap(accommodation_id, stay)
            interval = Availability(
                accommodation_id=accommodation_id,
                start_date=start_date,
                end_date=end_date,
                price=price,
                price_type=(price_type or PriceType.NORMAL).value,
                status=AvailabilityStatus.AVAILABLE.value
            )
            self.db.add(interval)
            self.db.flush()
            self.notifier.availability_changed(interval, EventType.AVAILABILITY_CREATED)
            return interval

        interval = self._in_transaction(accommodation_id, work, "availability definition")
        logger.info(f"Defined availability {start_date}..{end_date} on accommodation {accommodation_id}")
        return interval

    def update_availability(
        self,
        availability_id: str,
        start_date: date,
        end_date: date,
        price: Decimal,
        price_type: Optional[PriceType] = None
    ) -> Availability:
        """Edit an AVAILABLE interval in place; booked or expired ones are frozen."""
        stay = DateRange(start_date, end_date)
        self._check_price(price)
        interval = self.get_interval(availability_id)

        def work() -> Availability:
            current = self.get_interval(availability_id)
            if current.status != AvailabilityStatus.AVAILABLE.value:
                raise InvalidStateError(
                    f"Only AVAILABLE intervals can be edited, this one is {current.status}",
                    details={"availability_id": availability_id, "status": current.status}
                )
            self._check_no_overlap(current.accommodation_id, stay, exclude_id=current.id)

            current.start_date = start_date
            current.end_date = end_date
            current.price = price
            if price_type is not None:
                current.price_type = price_type.value
            self.db.flush()
            self.notifier.availability_changed(current, EventType.AVAILABILITY_UPDATED)
            return current

        return self._in_transaction(interval.accommodation_id, work, "availability update")

    def delete_availability(self, availability_id: str) -> None:
        """Remove an interval unless a CONFIRMED reservation overlaps it."""
        interval = self.get_interval(availability_id)

        def work() -> None:
            current = self.get_interval(availability_id)
            blocking = reservation_repository.find_by_accommodation_overlapping(
                self.db,
                current.accommodation_id,
                current.start_date,
                current.end_date,
                ReservationStatus.CONFIRMED
            )
            if blocking:
                raise InvalidStateError(
                    "Cannot delete availability with active reservations",
                    details={"availability_id": availability_id, "reservations": len(blocking)}
                )
            self.notifier.availability_changed(current, EventType.AVAILABILITY_DELETED)
            self.db.delete(current)

        self._in_transaction(interval.accommodation_id, work, "availability deletion")
        logger.info(f"Deleted availability {availability_id}")

    def get_calendar(
        self,
        accommodation_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        include_reservations: bool = False
    ) -> List[CalendarEntry]:
        """
        Free intervals overlapping the window, ordered by start date.

        The window defaults to today through CALENDAR_DEFAULT_MONTHS ahead.
        The host view also lists CONFIRMED reservations as RESERVED.
        """
        start_date = start_date or self.clock()
        end_date = end_date or add_months(start_date, settings.calendar_default_months)
        window = DateRange(start_date, end_date)

        entries = [
            CalendarEntry(
                id=interval.id,
                start_date=interval.start_date,
                end_date=interval.end_date,
                status=AvailabilityStatus.AVAILABLE.value,
                price=interval.price,
                price_type=interval.price_type
            )
            for interval in availability_repository.find_overlapping(
                self.db,
                accommodation_id,
                window.start,
                window.end,
                status=AvailabilityStatus.AVAILABLE
            )
        ]

        if include_reservations:
            for reservation in reservation_repository.find_by_accommodation_overlapping(
                self.db,
                accommodation_id,
                window.start,
                window.end,
                ReservationStatus.CONFIRMED
            ):
                entries.append(CalendarEntry(
                    id=reservation.id,
                    start_date=reservation.request.start_date,
                    end_date=reservation.request.end_date,
                    status=RESERVED
                ))

        return sorted(entries, key=lambda entry: (entry.start_date, entry.status))

    def expire_past_intervals(self, today: Optional[date] = None) -> int:
        """
        Move AVAILABLE intervals that ended before `today` to EXPIRED.

        Runs one locked transaction per accommodation. Returns the number of
        intervals expired.
        """
        today = today or self.clock()
        by_accommodation = defaultdict(list)
        for interval in availability_repository.find_available_ended_before(self.db, today):
            by_accommodation[interval.accommodation_id].append(interval.id)

        expired = 0
        for accommodation_id, ids in by_accommodation.items():
            def work(ids=ids) -> int:
                count = 0
                for availability_id in ids:
                    interval = availability_repository.get_by_id(self.db, availability_id)
                    if interval is None or interval.status != AvailabilityStatus.AVAILABLE.value:
                        continue
                    interval.status = AvailabilityStatus.EXPIRED.value
                    self.notifier.availability_changed(interval, EventType.AVAILABILITY_STATUS_CHANGED)
                    count += 1
                return count

            expired += self._in_transaction(accommodation_id, work, "interval expiry")

        if expired:
            logger.info(f"Expired {expired} availability intervals that ended before {today}")
        return expired
