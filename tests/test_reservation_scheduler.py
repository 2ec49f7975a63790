"""
Daily sweep tests

Tests cover:
- Completion + expiry in one sweep
- Per-step error isolation
- Scheduler status reporting
"""

from datetime import date
from unittest.mock import patch

from booking_app.errors import ConflictError
from booking_app.models.availability import Availability, AvailabilityStatus
from booking_app.models.reservation import Reservation, ReservationStatus
from booking_app.models.reservation_request import RequestStatus
from booking_app.services import reservation_scheduler
from booking_app.services.reservation_scheduler import get_scheduler_status, run_daily_sweep

from conftest import add_interval, add_request


class TestDailySweep:

    def test_completes_and_expires(self, db):
        finished = add_request(db, date(2026, 6, 1), date(2026, 6, 5),
                               status=RequestStatus.APPROVED, reservation_status=ReservationStatus.CONFIRMED)
        past = add_interval(db, date(2026, 6, 1), date(2026, 6, 10))
        future = add_interval(db, date(2026, 7, 1), date(2026, 7, 10))

        result = run_daily_sweep(db, today=date(2026, 6, 20))

        assert result["completed"] == 1
        assert result["expired"] == 1
        assert result["errors"] == []
        assert result["sweep_date"] == "2026-06-20"

        reservation = db.query(Reservation).filter(Reservation.request_id == finished.id).first()
        assert reservation.status == ReservationStatus.COMPLETED.value
        assert db.get(Availability, past.id).status == AvailabilityStatus.EXPIRED.value
        assert db.get(Availability, future.id).status == AvailabilityStatus.AVAILABLE.value

    def test_failed_step_does_not_stop_the_other(self, db):
        add_interval(db, date(2026, 6, 1), date(2026, 6, 10))

        with patch(
            "booking_app.services.reservation_scheduler.ReservationRequestService.complete_finished_reservations",
            side_effect=ConflictError("busy")
        ):
            result = run_daily_sweep(db, today=date(2026, 6, 20))

        assert result["expired"] == 1
        assert [error["code"] for error in result["errors"]] == ["CONFLICT"]

    def test_status_reports_last_sweep(self, db):
        run_daily_sweep(db, today=date(2026, 6, 20))

        status = get_scheduler_status()

        assert status["running"] is False
        assert status["last_sweep"] is not None
        assert status["last_sweep_result"]["sweep_date"] == "2026-06-20"

    def test_stop_without_start_is_harmless(self):
        with patch.object(reservation_scheduler, "_scheduler", None):
            assert reservation_scheduler.stop_reservation_scheduler() is True
