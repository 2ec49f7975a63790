"""
Shared fixtures: in-memory database, recording publisher, fake
accommodation service and signed tokens.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from booking_app.database import Base
from booking_app import models  # noqa: F401
from booking_app.models.availability import Availability, AvailabilityStatus, PriceType
from booking_app.models.reservation import Reservation, ReservationStatus
from booking_app.models.reservation_request import ReservationRequest, RequestStatus
from booking_app.services.change_notifier import ChangeNotifier, EventPublisher
from booking_app.utils.security import IdentityContext, create_access_token, ROLE_GUEST, ROLE_HOST

TODAY = date(2026, 6, 1)
ACCOMMODATION_ID = "acc-1"


class RecordingPublisher(EventPublisher):
    """Keeps every published event in order"""

    def __init__(self, fail: bool = False):
        self.published = []
        self.fail = fail

    def publish(self, events):
        if self.fail:
            raise RuntimeError("bus unavailable")
        self.published.extend(events)

    @property
    def event_types(self):
        return [event.event_type.value for event in self.published]


class FakeAccommodationClient:
    """Stands in for the accommodation service"""

    def __init__(self, auto_confirm=False, host_accommodations=None, error=None):
        self.auto_confirm = auto_confirm
        self.host_accommodations = host_accommodations or {}
        self.error = error
        self.lookups = []

    def is_auto_confirm(self, accommodation_id):
        self.lookups.append(accommodation_id)
        if self.error:
            raise self.error
        return self.auto_confirm

    def get_host_accommodation_ids(self, host_id, token=None):
        if self.error:
            raise self.error
        return list(self.host_accommodations.get(host_id, []))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def notifier(publisher):
    return ChangeNotifier(publisher)


@pytest.fixture
def guest():
    return IdentityContext(
        user_id="guest-1",
        email="guest@example.com",
        first_name="Ana",
        last_name="Guest",
        roles=frozenset({ROLE_GUEST}),
    )


def add_interval(db, start, end, price="100.00", price_type=PriceType.NORMAL,
                 status=AvailabilityStatus.AVAILABLE, accommodation_id=ACCOMMODATION_ID):
    interval = Availability(
        accommodation_id=accommodation_id,
        start_date=start,
        end_date=end,
        price=Decimal(price),
        price_type=price_type.value,
        status=status.value,
    )
    db.add(interval)
    db.commit()
    return interval


def add_request(db, start, end, guest_id="guest-1", status=RequestStatus.PENDING,
                accommodation_id=ACCOMMODATION_ID, reservation_status=None):
    request = ReservationRequest(
        accommodation_id=accommodation_id,
        guest_id=guest_id,
        start_date=start,
        end_date=end,
        status=status.value,
        created_at=datetime.utcnow(),
    )
    db.add(request)
    db.flush()
    if reservation_status is not None:
        db.add(Reservation(request_id=request.id, status=reservation_status.value))
    db.commit()
    return request


def calendar_rows(db, accommodation_id=ACCOMMODATION_ID):
    """(start, end, status) tuples ordered by start date"""
    rows = db.query(Availability).filter(
        Availability.accommodation_id == accommodation_id
    ).order_by(Availability.start_date).all()
    return [(row.start_date, row.end_date, row.status) for row in rows]


def make_token(user_id, *roles, **claims):
    data = {"sub": user_id, "realm_access": {"roles": list(roles)}}
    data.update(claims)
    return create_access_token(data)


def auth_header(user_id, *roles, **claims):
    return {"Authorization": f"Bearer {make_token(user_id, *roles, **claims)}"}


GUEST_HEADERS = auth_header("guest-1", ROLE_GUEST, given_name="Ana", family_name="Guest")
HOST_HEADERS = auth_header("host-1", ROLE_HOST, given_name="Hugo", family_name="Host")


def find_overlapping_pairs(ranges):
    """Index pairs of ranges that share at least one day"""
    ordered = sorted(enumerate(ranges), key=lambda item: (item[1].start, item[1].end))
    pairs = []
    for pos, (i, current) in enumerate(ordered):
        for j, other in ordered[pos + 1:]:
            if other.start > current.end:
                break
            pairs.append((i, j))
    return pairs
