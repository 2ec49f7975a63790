"""
Merge Consolidator

Coalesces touching AVAILABLE intervals that share price and price type.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from sqlalchemy.orm import Session

from ..models.availability import Availability, AvailabilityStatus
from ..repositories import availability_repository
from .calendar_intervals import DateRange, touches
from .change_notifier import ChangeNotifier, EventType

logger = logging.getLogger(__name__)


def can_merge(current, following) -> bool:
    """Touching, same price, same price type."""
    return (
        touches(DateRange.of(current), DateRange.of(following))
        and current.price == following.price
        and current.price_type == following.price_type
    )


@dataclass
class MergeGroup:
    """A survivor and the intervals it absorbs, in start order."""
    survivor: object
    absorbed: List[object] = field(default_factory=list)

    @property
    def end_date(self):
        return self.absorbed[-1].end_date if self.absorbed else self.survivor.end_date


def merge_adjacent(intervals: Sequence) -> List[MergeGroup]:
    """
    Single left-to-right pass over intervals sorted by start date.

    The running group's end is compared against each next interval, so
    chains of mergeable intervals collapse into one group.
    """
    groups: List[MergeGroup] = []
    for interval in intervals:
        if groups:
            current = groups[-1]
            tail = current.absorbed[-1] if current.absorbed else current.survivor
            if can_merge(tail, interval):
                current.absorbed.append(interval)
                continue
        groups.append(MergeGroup(survivor=interval))
    return groups


class MergeConsolidator:

    def __init__(self, db: Session, notifier: ChangeNotifier):
        self.db = db
        self.notifier = notifier

    def consolidate(self, accommodation_id: str) -> int:
        """
        Merge the accommodation's touching AVAILABLE intervals in place.

        Returns the number of intervals deleted. Running it twice in a row
        leaves the calendar unchanged the second time.
        """
        intervals: List[Availability] = availability_repository.list_by_status_ordered(
            self.db, accommodation_id, AvailabilityStatus.AVAILABLE
        )
        if len(intervals) < 2:
            return 0

        removed = 0
        for group in merge_adjacent(intervals):
            if not group.absorbed:
                continue

            survivor = group.survivor
            survivor.end_date = group.end_date
            for absorbed in group.absorbed:
                self.notifier.availability_changed(absorbed, EventType.AVAILABILITY_DELETED)
                self.db.delete(absorbed)
                removed += 1
            self.notifier.availability_changed(survivor, EventType.AVAILABILITY_UPDATED)

        if removed:
            self.db.flush()
            logger.info(f"Merged {removed} adjacent intervals on accommodation {accommodation_id}")
        return removed
