"""
Calendar Interval Algebra

Pure functions over inclusive whole-day date ranges:
- overlap / adjacency predicates
- five-way overlap classification of an interval against a stay
- the allocation plan that carves an interval around an approved stay

Nothing here touches the database; AllocationService applies the plans.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional
from zoneinfo import ZoneInfo

from ..config import settings
from ..models.availability import AvailabilityStatus

ONE_DAY = timedelta(days=1)


def business_today() -> date:
    """Current date in SCHEDULER_TIMEZONE, the one clock behind every "today" check."""
    return datetime.now(ZoneInfo(settings.scheduler_timezone)).date()


@dataclass(frozen=True)
class DateRange:
    """Inclusive [start, end] range of whole days."""
    start: date
    end: date

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Range start {self.start} is after end {self.end}")

    @classmethod
    def of(cls, obj) -> "DateRange":
        """Build a range from anything exposing start_date / end_date."""
        return cls(obj.start_date, obj.end_date)

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def overlaps(a: DateRange, b: DateRange) -> bool:
    """True when the two ranges share at least one day."""
    return not (a.end < b.start or a.start > b.end)


def touches(left: DateRange, right: DateRange) -> bool:
    """True when `right` starts the day after `left` ends."""
    return left.end + ONE_DAY == right.start


class OverlapCase(str, Enum):
    NO_OVERLAP = "no_overlap"
    FULL_COVER = "full_cover"
    INTERIOR_SPLIT = "interior_split"
    LEFT_TRIM = "left_trim"
    RIGHT_TRIM = "right_trim"


def classify_overlap(interval: DateRange, stay: DateRange) -> OverlapCase:
    """
    Classify how `stay` intersects `interval`.

    Conditions are evaluated in this order and are mutually exclusive once
    the ranges overlap:

        FULL_COVER      stay.start <= a.start and stay.end >= a.end
        INTERIOR_SPLIT  stay.start >  a.start and stay.end <  a.end
        LEFT_TRIM       stay.start <= a.start and stay.end <  a.end
        RIGHT_TRIM      stay.start >  a.start and stay.end >= a.end
    """
    if not overlaps(interval, stay):
        return OverlapCase.NO_OVERLAP

    starts_at_or_before = stay.start <= interval.start
    ends_at_or_after = stay.end >= interval.end

    if starts_at_or_before and ends_at_or_after:
        return OverlapCase.FULL_COVER
    if not starts_at_or_before and not ends_at_or_after:
        return OverlapCase.INTERIOR_SPLIT
    if starts_at_or_before:
        return OverlapCase.LEFT_TRIM
    return OverlapCase.RIGHT_TRIM


@dataclass(frozen=True)
class Fragment:
    """A new interval to insert, inheriting price and price type from its source."""
    start: date
    end: date
    status: AvailabilityStatus

    @property
    def range(self) -> DateRange:
        return DateRange(self.start, self.end)


@dataclass
class AllocationPlan:
    """
    What approving `stay` does to a single AVAILABLE interval.

    Exactly one of these shapes applies:
    - no-op (NO_OVERLAP)
    - mark_occupied: flip the interval in place (FULL_COVER)
    - delete_original + fragments (INTERIOR_SPLIT)
    - trim_to + one OCCUPIED fragment (LEFT_TRIM / RIGHT_TRIM)
    """
    case: OverlapCase
    mark_occupied: bool = False
    delete_original: bool = False
    trim_to: Optional[DateRange] = None
    fragments: List[Fragment] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return self.case == OverlapCase.NO_OVERLAP


def plan_allocation(interval: DateRange, stay: DateRange) -> AllocationPlan:
    """Compute the split/trim plan for one interval against an approved stay."""
    case = classify_overlap(interval, stay)

    if case == OverlapCase.NO_OVERLAP:
        return AllocationPlan(case=case)

    if case == OverlapCase.FULL_COVER:
        return AllocationPlan(case=case, mark_occupied=True)

    if case == OverlapCase.INTERIOR_SPLIT:
        # Strictly inside, so both outer fragments are at least one day long
        return AllocationPlan(
            case=case,
            delete_original=True,
            fragments=[
                Fragment(interval.start, stay.start - ONE_DAY, AvailabilityStatus.AVAILABLE),
                Fragment(stay.start, stay.end, AvailabilityStatus.OCCUPIED),
                Fragment(stay.end + ONE_DAY, interval.end, AvailabilityStatus.AVAILABLE),
            ],
        )

    if case == OverlapCase.LEFT_TRIM:
        return AllocationPlan(
            case=case,
            trim_to=DateRange(stay.end + ONE_DAY, interval.end),
            fragments=[Fragment(interval.start, stay.end, AvailabilityStatus.OCCUPIED)],
        )

    # RIGHT_TRIM
    return AllocationPlan(
        case=case,
        trim_to=DateRange(interval.start, stay.start - ONE_DAY),
        fragments=[Fragment(stay.start, interval.end, AvailabilityStatus.OCCUPIED)],
    )
