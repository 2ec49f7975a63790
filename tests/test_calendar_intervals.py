"""
Calendar interval algebra tests

Tests cover:
- Inclusive date ranges and the overlap / adjacency predicates
- Five-way overlap classification, including boundary days
- Allocation plans for every case
- The shared business-day clock
"""

import pytest
from datetime import date
from unittest.mock import patch

from booking_app.models.availability import AvailabilityStatus
from booking_app.services.calendar_intervals import (
    DateRange, OverlapCase, business_today, classify_overlap,
    overlaps, plan_allocation, touches,
)


def d(day: int) -> date:
    return date(2026, 7, day)


INTERVAL = DateRange(d(1), d(10))


class TestDateRange:

    def test_single_day_range_is_valid(self):
        day = DateRange(d(5), d(5))
        assert day.days == 1
        assert day.start == day.end

    def test_inverted_range_rejected(self):
        with pytest.raises(ValueError):
            DateRange(d(6), d(5))

    def test_days_counts_both_ends(self):
        assert INTERVAL.days == 10


class TestPredicates:

    def test_sharing_a_single_day_overlaps(self):
        assert overlaps(DateRange(d(1), d(5)), DateRange(d(5), d(8)))

    def test_adjacent_ranges_do_not_overlap(self):
        left, right = DateRange(d(1), d(5)), DateRange(d(6), d(8))
        assert not overlaps(left, right)
        assert touches(left, right)

    def test_gap_of_one_day_does_not_touch(self):
        assert not touches(DateRange(d(1), d(5)), DateRange(d(7), d(8)))

    def test_touches_is_directional(self):
        assert not touches(DateRange(d(6), d(8)), DateRange(d(1), d(5)))


class TestClassifyOverlap:

    @pytest.mark.parametrize("stay, expected", [
        (DateRange(d(12), d(15)), OverlapCase.NO_OVERLAP),
        (DateRange(d(1), d(10)), OverlapCase.FULL_COVER),
        (DateRange(d(1), d(20)), OverlapCase.FULL_COVER),
        (DateRange(d(3), d(5)), OverlapCase.INTERIOR_SPLIT),
        (DateRange(d(1), d(4)), OverlapCase.LEFT_TRIM),
        (DateRange(d(7), d(10)), OverlapCase.RIGHT_TRIM),
        (DateRange(d(7), d(14)), OverlapCase.RIGHT_TRIM),
    ])
    def test_cases(self, stay, expected):
        assert classify_overlap(INTERVAL, stay) == expected

    def test_stay_starting_on_interval_start_is_left_trim_not_split(self):
        assert classify_overlap(INTERVAL, DateRange(d(1), d(1))) == OverlapCase.LEFT_TRIM

    def test_stay_ending_on_interval_end_is_right_trim_not_split(self):
        assert classify_overlap(INTERVAL, DateRange(d(10), d(10))) == OverlapCase.RIGHT_TRIM

    def test_stay_one_day_inside_each_edge_is_split(self):
        assert classify_overlap(INTERVAL, DateRange(d(2), d(9))) == OverlapCase.INTERIOR_SPLIT


class TestPlanAllocation:

    def test_no_overlap_is_noop(self):
        plan = plan_allocation(INTERVAL, DateRange(d(20), d(22)))
        assert plan.is_noop
        assert plan.fragments == []

    def test_full_cover_marks_in_place(self):
        plan = plan_allocation(INTERVAL, DateRange(d(1), d(10)))
        assert plan.mark_occupied
        assert not plan.delete_original
        assert plan.fragments == []

    def test_interior_split_produces_three_fragments(self):
        plan = plan_allocation(INTERVAL, DateRange(d(4), d(6)))

        assert plan.delete_original
        assert [(f.start, f.end, f.status) for f in plan.fragments] == [
            (d(1), d(3), AvailabilityStatus.AVAILABLE),
            (d(4), d(6), AvailabilityStatus.OCCUPIED),
            (d(7), d(10), AvailabilityStatus.AVAILABLE),
        ]

    def test_interior_split_conserves_days(self):
        plan = plan_allocation(INTERVAL, DateRange(d(2), d(9)))
        assert sum(f.range.days for f in plan.fragments) == INTERVAL.days

    def test_left_trim_keeps_tail_free(self):
        plan = plan_allocation(INTERVAL, DateRange(d(1), d(4)))

        assert plan.trim_to == DateRange(d(5), d(10))
        assert [(f.start, f.end, f.status) for f in plan.fragments] == [
            (d(1), d(4), AvailabilityStatus.OCCUPIED),
        ]

    def test_left_trim_with_stay_starting_before_interval(self):
        plan = plan_allocation(INTERVAL, DateRange(date(2026, 6, 28), d(3)))

        # Occupied piece is clipped to the interval
        assert plan.fragments[0].start == d(1)
        assert plan.trim_to == DateRange(d(4), d(10))

    def test_right_trim_keeps_head_free(self):
        plan = plan_allocation(INTERVAL, DateRange(d(8), d(15)))

        assert plan.trim_to == DateRange(d(1), d(7))
        assert [(f.start, f.end, f.status) for f in plan.fragments] == [
            (d(8), d(10), AvailabilityStatus.OCCUPIED),
        ]


class TestBusinessToday:

    def test_follows_configured_timezone(self):
        with patch("booking_app.services.calendar_intervals.settings") as mock_settings:
            mock_settings.scheduler_timezone = "Pacific/Kiritimati"
            east = business_today()
            mock_settings.scheduler_timezone = "Etc/GMT+12"
            west = business_today()

        # UTC+14 and UTC-12 are never on the same calendar day
        assert east > west
