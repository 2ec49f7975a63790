"""
Reservation Request Lifecycle Tests

Tests cover:
- Request creation, auto-confirm policy and its failure fallback
- Approval: competing request rejection, reservation creation, calendar carving
- Update / delete / respond state rules
- Cancellation cutoff and calendar restoration
- Completion sweep and read-model flags
- Event ordering and publisher failure isolation
"""

import pytest
from datetime import date
from unittest.mock import patch

from booking_app.errors import InvalidStateError, NotFoundError, PolicyLookupError, TooLateError
from booking_app.models.availability import AvailabilityStatus
from booking_app.models.reservation import Reservation, ReservationStatus
from booking_app.models.reservation_request import ReservationRequest, RequestStatus
from booking_app.services.calendar_intervals import business_today
from booking_app.services.change_notifier import ChangeNotifier, EventType, Responder
from booking_app.services.reservation_request_service import ReservationRequestService

from conftest import (
    ACCOMMODATION_ID, FakeAccommodationClient, RecordingPublisher,
    add_interval, add_request, calendar_rows,
)

AVAILABLE = AvailabilityStatus.AVAILABLE.value
OCCUPIED = AvailabilityStatus.OCCUPIED.value


def d(day: int) -> date:
    return date(2026, 7, day)


def make_service(db, notifier, client=None, today=date(2026, 6, 1)):
    return ReservationRequestService(
        db,
        notifier=notifier,
        accommodation_client=client or FakeAccommodationClient(),
        clock=lambda: today
    )


def reservation_for(db, request_id):
    return db.query(Reservation).filter(Reservation.request_id == request_id).first()


class TestCreate:

    def test_creates_pending_request_with_guest_snapshot(self, db, notifier, publisher, guest):
        service = make_service(db, notifier)

        request = service.create(guest, ACCOMMODATION_ID, d(10), d(12), guest_count=2)

        assert request.status == RequestStatus.PENDING.value
        assert request.guest_id == "guest-1"
        assert request.guest_email == "guest@example.com"
        assert request.guest_count == 2
        assert publisher.event_types == [EventType.RESERVATION_CREATED.value]

    def test_inverted_dates_rejected(self, db, notifier, guest):
        with pytest.raises(ValueError):
            make_service(db, notifier).create(guest, ACCOMMODATION_ID, d(12), d(10))

    def test_auto_confirm_approves_immediately(self, db, notifier, guest):
        add_interval(db, d(1), d(20))
        client = FakeAccommodationClient(auto_confirm=True)

        request = make_service(db, notifier, client).create(guest, ACCOMMODATION_ID, d(5), d(7))

        assert request.status == RequestStatus.APPROVED.value
        assert reservation_for(db, request.id).status == ReservationStatus.CONFIRMED.value
        assert (d(5), d(7), OCCUPIED) in calendar_rows(db)
        assert client.lookups == [ACCOMMODATION_ID]

    def test_policy_lookup_failure_leaves_request_pending(self, db, notifier, guest):
        client = FakeAccommodationClient(error=PolicyLookupError("accommodation service down"))

        request = make_service(db, notifier, client).create(guest, ACCOMMODATION_ID, d(5), d(7))

        assert request.status == RequestStatus.PENDING.value
        assert reservation_for(db, request.id) is None

    def test_publisher_failure_does_not_undo_creation(self, db, guest):
        notifier = ChangeNotifier(RecordingPublisher(fail=True))

        request = make_service(db, notifier).create(guest, ACCOMMODATION_ID, d(5), d(7))

        assert db.get(ReservationRequest, request.id) is not None

    def test_auto_confirm_is_one_transaction_with_creation(self, db, notifier, publisher, guest):
        add_interval(db, d(1), d(20))
        competitor = add_request(db, d(6), d(9), guest_id="guest-2")

        request = make_service(db, notifier, FakeAccommodationClient(auto_confirm=True)).create(
            guest, ACCOMMODATION_ID, d(5), d(7)
        )

        assert request.status == RequestStatus.APPROVED.value
        assert db.get(ReservationRequest, competitor.id).status == RequestStatus.REJECTED.value
        assert publisher.event_types[0] == EventType.RESERVATION_CREATED.value
        assert publisher.event_types[-1] == EventType.REQUEST_RESPONDED.value

    def test_host_approval_during_policy_lookup(self, db, session_factory, notifier, guest):
        add_interval(db, d(1), d(20))
        other_id = add_request(db, d(6), d(9), guest_id="guest-2").id

        class ApprovesAnotherRequestFirst(FakeAccommodationClient):
            def is_auto_confirm(self, accommodation_id):
                session = session_factory()
                try:
                    make_service(session, ChangeNotifier(RecordingPublisher())).approve(other_id)
                finally:
                    session.close()
                return super().is_auto_confirm(accommodation_id)

        request = make_service(db, notifier, ApprovesAnotherRequestFirst(auto_confirm=True)).create(
            guest, ACCOMMODATION_ID, d(5), d(7)
        )

        assert request.status == RequestStatus.APPROVED.value
        assert reservation_for(db, request.id).status == ReservationStatus.CONFIRMED.value
        assert db.get(ReservationRequest, other_id).status == RequestStatus.APPROVED.value

    def test_failed_auto_approval_leaves_nothing_behind(self, db, notifier, publisher, guest):
        add_interval(db, d(1), d(20))
        service = make_service(db, notifier, FakeAccommodationClient(auto_confirm=True))

        with patch(
            "booking_app.services.reservation_request_service.AllocationService.allocate",
            side_effect=RuntimeError("carve failed")
        ):
            with pytest.raises(RuntimeError):
                service.create(guest, ACCOMMODATION_ID, d(5), d(7))

        assert db.query(ReservationRequest).count() == 0
        assert db.query(Reservation).count() == 0
        assert publisher.published == []
        assert calendar_rows(db) == [(d(1), d(20), AVAILABLE)]

    def test_default_clock_is_business_today(self, db, notifier):
        assert ReservationRequestService(db, notifier=notifier).clock is business_today


class TestApprove:

    def test_approve_rejects_overlapping_pending_requests(self, db, notifier, publisher):
        add_interval(db, d(1), d(20))
        winner = add_request(db, d(5), d(8))
        loser = add_request(db, d(7), d(10), guest_id="guest-2")
        unrelated = add_request(db, d(12), d(14), guest_id="guest-3")

        make_service(db, notifier).approve(winner.id, Responder("Hugo", "Host"))

        assert db.get(ReservationRequest, winner.id).status == RequestStatus.APPROVED.value
        assert db.get(ReservationRequest, loser.id).status == RequestStatus.REJECTED.value
        rejected = db.get(ReservationRequest, loser.id)
        assert (rejected.start_date, rejected.end_date) == (d(7), d(10))
        assert db.get(ReservationRequest, unrelated.id).status == RequestStatus.PENDING.value

        responded = [e.payload for e in publisher.published if e.event_type == EventType.REQUEST_RESPONDED]
        assert [(p["reservationRequestId"], p["status"]) for p in responded] == [
            (loser.id, RequestStatus.REJECTED.value),
            (winner.id, RequestStatus.APPROVED.value),
        ]
        assert responded[-1]["hostName"] == "Hugo"

    def test_approve_creates_confirmed_reservation_and_carves_calendar(self, db, notifier):
        add_interval(db, d(1), d(20))
        request = add_request(db, d(5), d(8))

        make_service(db, notifier).approve(request.id)

        assert reservation_for(db, request.id).status == ReservationStatus.CONFIRMED.value
        assert calendar_rows(db) == [
            (d(1), d(4), AVAILABLE),
            (d(5), d(8), OCCUPIED),
            (d(9), d(20), AVAILABLE),
        ]

    def test_approve_without_priced_interval_still_confirms(self, db, notifier):
        request = add_request(db, d(5), d(8))

        make_service(db, notifier).approve(request.id)

        assert reservation_for(db, request.id) is not None
        assert calendar_rows(db) == []

    def test_approve_non_pending_fails(self, db, notifier):
        request = add_request(db, d(5), d(8), status=RequestStatus.REJECTED)

        with pytest.raises(InvalidStateError):
            make_service(db, notifier).approve(request.id)

    def test_approve_unknown_request(self, db, notifier):
        with pytest.raises(NotFoundError):
            make_service(db, notifier).approve("missing")

    def test_failed_approval_publishes_nothing(self, db, notifier, publisher):
        request = add_request(db, d(5), d(8), status=RequestStatus.APPROVED)

        with pytest.raises(InvalidStateError):
            make_service(db, notifier).approve(request.id)

        assert publisher.published == []
        assert notifier.pending == []


class TestRespond:

    def test_reject_has_no_side_effects(self, db, notifier):
        add_interval(db, d(1), d(20))
        request = add_request(db, d(5), d(8))

        make_service(db, notifier).respond(request.id, RequestStatus.REJECTED)

        assert db.get(ReservationRequest, request.id).status == RequestStatus.REJECTED.value
        assert reservation_for(db, request.id) is None
        assert calendar_rows(db) == [(d(1), d(20), AVAILABLE)]

    def test_respond_with_pending_is_invalid(self, db, notifier):
        request = add_request(db, d(5), d(8))

        with pytest.raises(InvalidStateError):
            make_service(db, notifier).respond(request.id, RequestStatus.PENDING)

    def test_respond_accepts_plain_status_string(self, db, notifier):
        request = add_request(db, d(5), d(8))

        responded = make_service(db, notifier).respond(request.id, "APPROVED")

        assert responded.status == RequestStatus.APPROVED.value


class TestUpdateDelete:

    def test_update_pending(self, db, notifier):
        request = add_request(db, d(5), d(8))

        updated = make_service(db, notifier).update(request.id, d(6), d(9), 3)

        assert (updated.start_date, updated.end_date, updated.guest_count) == (d(6), d(9), 3)

    def test_update_approved_fails(self, db, notifier):
        request = add_request(db, d(5), d(8), status=RequestStatus.APPROVED)

        with pytest.raises(InvalidStateError):
            make_service(db, notifier).update(request.id, d(6), d(9), 1)

    def test_delete_pending(self, db, notifier):
        request = add_request(db, d(5), d(8))
        request_id = request.id

        make_service(db, notifier).delete(request_id)

        assert db.get(ReservationRequest, request_id) is None

    def test_delete_rejected_fails(self, db, notifier):
        request = add_request(db, d(5), d(8), status=RequestStatus.REJECTED)

        with pytest.raises(InvalidStateError):
            make_service(db, notifier).delete(request.id)


class TestCancel:

    def approved(self, db, notifier, start=d(10), end=d(12)):
        add_interval(db, d(1), d(30))
        request = add_request(db, start, end)
        make_service(db, notifier).approve(request.id)
        notifier.publisher.published.clear()
        return request

    def test_day_before_start_is_allowed(self, db, notifier):
        request = self.approved(db, notifier)

        reservation = make_service(db, notifier, today=d(9)).cancel_reservation(request.id)

        assert reservation.status == ReservationStatus.CANCELLED.value

    def test_start_day_is_too_late(self, db, notifier):
        request = self.approved(db, notifier)

        with pytest.raises(TooLateError):
            make_service(db, notifier, today=d(10)).cancel_reservation(request.id)

        assert reservation_for(db, request.id).status == ReservationStatus.CONFIRMED.value

    def test_after_start_is_too_late(self, db, notifier):
        request = self.approved(db, notifier)

        with pytest.raises(TooLateError):
            make_service(db, notifier, today=d(11)).cancel_reservation(request.id)

    def test_cancel_restores_original_calendar(self, db, notifier):
        request = self.approved(db, notifier)
        assert len(calendar_rows(db)) == 3

        make_service(db, notifier, today=d(1)).cancel_reservation(request.id)

        assert calendar_rows(db) == [(d(1), d(30), AVAILABLE)]

    def test_cancel_event_order(self, db, notifier, publisher):
        request = self.approved(db, notifier)

        make_service(db, notifier, today=d(1)).cancel_reservation(request.id)

        kinds = publisher.event_types
        assert kinds[0] == EventType.RESERVATION_CANCELLED.value
        assert kinds[1] == EventType.AVAILABILITY_STATUS_CHANGED.value
        assert kinds[2:] == [
            EventType.AVAILABILITY_DELETED.value,
            EventType.AVAILABILITY_DELETED.value,
            EventType.AVAILABILITY_UPDATED.value,
        ]

    def test_cancel_twice_fails(self, db, notifier):
        request = self.approved(db, notifier)
        service = make_service(db, notifier, today=d(1))
        service.cancel_reservation(request.id)

        with pytest.raises(InvalidStateError):
            service.cancel_reservation(request.id)

    def test_cancel_without_reservation(self, db, notifier):
        request = add_request(db, d(10), d(12))

        with pytest.raises(NotFoundError):
            make_service(db, notifier, today=d(1)).cancel_reservation(request.id)

    def test_cancel_keeps_other_stays_occupied(self, db, notifier):
        add_interval(db, d(1), d(30))
        first = add_request(db, d(5), d(6))
        second = add_request(db, d(20), d(22), guest_id="guest-2")
        service = make_service(db, notifier, today=d(1))
        service.approve(first.id)
        service.approve(second.id)

        service.cancel_reservation(first.id)

        assert calendar_rows(db) == [
            (d(1), d(19), AVAILABLE),
            (d(20), d(22), OCCUPIED),
            (d(23), d(30), AVAILABLE),
        ]


class TestCompletionSweep:

    def test_completes_finished_stays_once(self, db, notifier):
        finished = add_request(db, date(2026, 6, 20), date(2026, 6, 30),
                               status=RequestStatus.APPROVED, reservation_status=ReservationStatus.CONFIRMED)
        ongoing = add_request(db, date(2026, 7, 1), date(2026, 7, 10), guest_id="guest-2",
                              status=RequestStatus.APPROVED, reservation_status=ReservationStatus.CONFIRMED)
        service = make_service(db, notifier)

        assert service.complete_finished_reservations(today=date(2026, 7, 5)) == 1
        assert service.complete_finished_reservations(today=date(2026, 7, 5)) == 0

        assert reservation_for(db, finished.id).status == ReservationStatus.COMPLETED.value
        assert reservation_for(db, ongoing.id).status == ReservationStatus.CONFIRMED.value

    def test_stay_ending_today_is_not_completed(self, db, notifier):
        add_request(db, date(2026, 7, 1), date(2026, 7, 5),
                    status=RequestStatus.APPROVED, reservation_status=ReservationStatus.CONFIRMED)

        assert make_service(db, notifier).complete_finished_reservations(today=date(2026, 7, 5)) == 0


class TestReadModels:

    def test_accommodation_requests_newest_first(self, db, notifier):
        older = add_request(db, d(5), d(8))
        newer = add_request(db, d(9), d(10), guest_id="guest-2")
        add_request(db, d(5), d(8), accommodation_id="acc-2")

        found = make_service(db, notifier).find_by_accommodation(ACCOMMODATION_ID)

        assert [r.id for r in found] == [newer.id, older.id]

    def test_guest_requests_filtered_by_guest(self, db, notifier):
        mine = add_request(db, d(5), d(8))
        add_request(db, d(9), d(10), guest_id="guest-2")

        found = make_service(db, notifier).find_by_guest("guest-1", ACCOMMODATION_ID)

        assert [r.id for r in found] == [mine.id]

    def test_reservation_flags(self, db, notifier):
        cancelled = add_request(db, d(5), d(8), status=RequestStatus.APPROVED,
                                reservation_status=ReservationStatus.CANCELLED)
        pending = add_request(db, d(9), d(10))
        service = make_service(db, notifier)

        assert service.reservation_flags(cancelled) == (True, 1)
        assert service.reservation_flags(pending) == (False, 1)
