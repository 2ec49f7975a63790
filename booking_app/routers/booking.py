from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.accommodation_client import AccommodationClient, get_accommodation_client
from ..services.booking_eligibility_service import BookingEligibilityService
from ..utils.dependencies import require_guest, require_host
from ..utils.security import IdentityContext

router = APIRouter(prefix="/api/booking", tags=["Booking Eligibility"])


def get_eligibility_service(
    db: Session = Depends(get_db),
    accommodation_client: AccommodationClient = Depends(get_accommodation_client)
) -> BookingEligibilityService:
    return BookingEligibilityService(db, accommodation_client=accommodation_client)


@router.get("/accommodations/{accommodation_id}/can-rate", response_model=bool)
async def can_rate_accommodation(
    accommodation_id: str,
    service: BookingEligibilityService = Depends(get_eligibility_service),
    identity: IdentityContext = Depends(require_guest)
):
    """Guest has a completed stay at the accommodation"""
    return service.has_guest_completed_stay(identity.user_id, accommodation_id)


@router.get("/host/{host_id}/can-rate", response_model=bool)
async def can_rate_host(
    host_id: str,
    service: BookingEligibilityService = Depends(get_eligibility_service),
    identity: IdentityContext = Depends(require_guest)
):
    return service.can_guest_rate_host(host_id, identity.user_id, token=identity.token)


@router.get("/guest/can-delete-account", response_model=bool)
async def can_guest_delete_account(
    service: BookingEligibilityService = Depends(get_eligibility_service),
    identity: IdentityContext = Depends(require_guest)
):
    return service.can_guest_delete_account(identity.user_id)


@router.get("/host/can-delete-account", response_model=bool)
async def can_host_delete_account(
    service: BookingEligibilityService = Depends(get_eligibility_service),
    identity: IdentityContext = Depends(require_host)
):
    return service.can_host_delete_account(identity.user_id, token=identity.token)
