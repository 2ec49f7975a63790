"""
Allocation Service

Applies calendar algebra plans to the availability table:
- allocate(): carve AVAILABLE intervals around an approved stay
- release(): flip OCCUPIED intervals of a cancelled stay back to AVAILABLE

Only the request lifecycle controller calls this, inside its per-accommodation
transaction; nothing here commits.
"""

import logging
import uuid
from typing import List

from sqlalchemy.orm import Session

from ..models.availability import Availability, AvailabilityStatus
from ..repositories import availability_repository
from .calendar_intervals import DateRange, Fragment, OverlapCase, plan_allocation
from .change_notifier import ChangeNotifier, EventType

logger = logging.getLogger(__name__)


class AllocationService:

    def __init__(self, db: Session, notifier: ChangeNotifier):
        self.db = db
        self.notifier = notifier

    def _new_fragment(self, source: Availability, fragment: Fragment) -> Availability:
        """Create a fragment row carrying the source's price and price type."""
        interval = Availability(
            id=str(uuid.uuid4()),
            accommodation_id=source.accommodation_id,
            start_date=fragment.start,
            end_date=fragment.end,
            price=source.price,
            price_type=source.price_type,
            status=fragment.status.value
        )
        self.db.add(interval)
        return interval

    def allocate(self, accommodation_id: str, stay: DateRange) -> List[OverlapCase]:
        """
        Carve the accommodation's AVAILABLE intervals around `stay`.

        A stay with no matching interval is not an error: the host simply
        never priced that span. Returns the case applied to each interval.
        """
        intervals = availability_repository.find_overlapping(
            self.db,
            accommodation_id,
            stay.start,
            stay.end,
            status=AvailabilityStatus.AVAILABLE
        )

        applied = []
        for interval in intervals:
            plan = plan_allocation(DateRange.of(interval), stay)
            if plan.is_noop:
                continue

            if plan.mark_occupied:
                interval.status = AvailabilityStatus.OCCUPIED.value
                self.notifier.availability_changed(interval, EventType.AVAILABILITY_STATUS_CHANGED)

            elif plan.delete_original:
                fragments = [self._new_fragment(interval, f) for f in plan.fragments]
                self.notifier.availability_changed(interval, EventType.AVAILABILITY_DELETED)
                self.db.delete(interval)
                for fragment in fragments:
                    self.notifier.availability_changed(fragment, EventType.AVAILABILITY_STATUS_CHANGED)

            else:
                # Build the occupied piece from the original bounds before trimming
                occupied = [self._new_fragment(interval, f) for f in plan.fragments]
                interval.start_date = plan.trim_to.start
                interval.end_date = plan.trim_to.end
                self.notifier.availability_changed(interval, EventType.AVAILABILITY_STATUS_CHANGED)
                for fragment in occupied:
                    self.notifier.availability_changed(fragment, EventType.AVAILABILITY_STATUS_CHANGED)

            applied.append(plan.case)

        self.db.flush()
        logger.info(
            f"Allocated stay {stay.start}..{stay.end} on accommodation {accommodation_id}: "
            f"{[case.value for case in applied] or 'no priced interval'}"
        )
        return applied

    def release(self, accommodation_id: str, stay: DateRange) -> int:
        """
        Flip every OCCUPIED interval overlapping `stay` back to AVAILABLE.

        Split boundaries are not reconstructed; the merge pass that follows
        re-joins touching fragments with equal price and price type.
        """
        occupied = availability_repository.find_overlapping(
            self.db,
            accommodation_id,
            stay.start,
            stay.end,
            status=AvailabilityStatus.OCCUPIED
        )

        for interval in occupied:
            interval.status = AvailabilityStatus.AVAILABLE.value
            self.notifier.availability_changed(interval, EventType.AVAILABILITY_STATUS_CHANGED)

        self.db.flush()
        logger.info(f"Released {len(occupied)} intervals on accommodation {accommodation_id}")
        return len(occupied)
