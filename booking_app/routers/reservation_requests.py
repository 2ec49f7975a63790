from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..models.reservation_request import ReservationRequest, RequestStatus
from ..schemas.reservation_request import (
    ReservationRequestCreate,
    ReservationRequestUpdate,
    ReservationRequestResponse,
    ReservationResponse,
)
from ..services.accommodation_client import AccommodationClient, get_accommodation_client
from ..services.change_notifier import Responder
from ..services.reservation_request_service import ReservationRequestService
from ..utils.dependencies import require_guest, require_host
from ..utils.rate_limiter import limiter, get_rate_limit
from ..utils.security import IdentityContext

router = APIRouter(prefix="/api/reservation-requests", tags=["Reservation Requests"])


def get_request_service(
    db: Session = Depends(get_db),
    accommodation_client: AccommodationClient = Depends(get_accommodation_client)
) -> ReservationRequestService:
    return ReservationRequestService(db, accommodation_client=accommodation_client)


def to_request_response(
    service: ReservationRequestService,
    request: ReservationRequest
) -> ReservationRequestResponse:
    """Convert a request to its response, with reservation read-model fields"""
    cancelled, cancellations = service.reservation_flags(request)
    response = ReservationRequestResponse.model_validate(request)
    response.connected_reservation_cancelled = cancelled
    response.cancellations_count = cancellations
    return response


def _owned_by(service: ReservationRequestService, request_id: str, identity: IdentityContext) -> ReservationRequest:
    """Guests may only touch their own requests"""
    request = service.get_request(request_id)
    if request.guest_id != identity.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Reservation request belongs to another guest"
        )
    return request


@router.post("", response_model=ReservationRequestResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("request_create"))
async def create_request(
    request: Request,
    payload: ReservationRequestCreate,
    service: ReservationRequestService = Depends(get_request_service),
    identity: IdentityContext = Depends(require_guest)
):
    """
    Create a reservation request.

    Returns APPROVED straight away when the accommodation auto-confirms,
    PENDING otherwise.
    """
    created = service.create(
        identity,
        payload.accommodation_id,
        payload.start_date,
        payload.end_date,
        payload.guest_count
    )
    return to_request_response(service, created)


@router.put("/{request_id}", response_model=ReservationRequestResponse)
@limiter.limit(get_rate_limit("request_update"))
async def update_request(
    request: Request,
    request_id: str,
    payload: ReservationRequestUpdate,
    service: ReservationRequestService = Depends(get_request_service),
    identity: IdentityContext = Depends(require_guest)
):
    _owned_by(service, request_id, identity)
    updated = service.update(request_id, payload.start_date, payload.end_date, payload.guest_count)
    return to_request_response(service, updated)


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_request(
    request_id: str,
    service: ReservationRequestService = Depends(get_request_service),
    identity: IdentityContext = Depends(require_guest)
):
    _owned_by(service, request_id, identity)
    service.delete(request_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/guest/{accommodation_id}", response_model=List[ReservationRequestResponse])
async def get_guest_requests(
    accommodation_id: str,
    service: ReservationRequestService = Depends(get_request_service),
    identity: IdentityContext = Depends(require_guest)
):
    """The caller's own requests for one accommodation"""
    requests = service.find_by_guest(identity.user_id, accommodation_id)
    return [to_request_response(service, r) for r in requests]


@router.get("/accommodation/{accommodation_id}", response_model=List[ReservationRequestResponse])
async def get_accommodation_requests(
    accommodation_id: str,
    service: ReservationRequestService = Depends(get_request_service),
    identity: IdentityContext = Depends(require_host)
):
    """All requests for an accommodation, newest first"""
    requests = service.find_by_accommodation(accommodation_id)
    return [to_request_response(service, r) for r in requests]


@router.patch("/{request_id}/status", response_model=ReservationRequestResponse)
async def respond_to_request(
    request_id: str,
    new_status: RequestStatus = Query(..., alias="status"),
    service: ReservationRequestService = Depends(get_request_service),
    identity: IdentityContext = Depends(require_host)
):
    """Approve or reject a PENDING request"""
    responder = Responder(first_name=identity.first_name, last_name=identity.last_name)
    responded = service.respond(request_id, new_status, responder)
    return to_request_response(service, responded)


@router.post("/{request_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    request_id: str,
    service: ReservationRequestService = Depends(get_request_service),
    identity: IdentityContext = Depends(require_guest)
):
    """Cancel the confirmed reservation behind a request, up to the day before arrival"""
    _owned_by(service, request_id, identity)
    return service.cancel_reservation(request_id)
