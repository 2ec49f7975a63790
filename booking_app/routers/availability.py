from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from ..database import get_db
from ..schemas.availability import (
    AvailabilityCreate, AvailabilityUpdate, AvailabilityResponse, CalendarIntervalResponse
)
from ..services.availability_service import AvailabilityService
from ..utils.dependencies import require_host, require_guest_or_host
from ..utils.rate_limiter import limiter, get_rate_limit
from ..utils.security import IdentityContext, ROLE_HOST

router = APIRouter(prefix="/api/availability", tags=["Availability"])


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


@router.post("", response_model=AvailabilityResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("availability_write"))
async def define_availability(
    request: Request,
    payload: AvailabilityCreate,
    service: AvailabilityService = Depends(get_availability_service),
    identity: IdentityContext = Depends(require_host)
):
    """Define a priced interval; it may not overlap an existing one"""
    return service.define_availability(
        payload.accommodation_id,
        payload.start_date,
        payload.end_date,
        payload.price,
        payload.price_type
    )


@router.put("/{availability_id}", response_model=AvailabilityResponse)
@limiter.limit(get_rate_limit("availability_write"))
async def update_availability(
    request: Request,
    availability_id: str,
    payload: AvailabilityUpdate,
    service: AvailabilityService = Depends(get_availability_service),
    identity: IdentityContext = Depends(require_host)
):
    return service.update_availability(
        availability_id,
        payload.start_date,
        payload.end_date,
        payload.price,
        payload.price_type
    )


@router.delete("/{availability_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_availability(
    availability_id: str,
    service: AvailabilityService = Depends(get_availability_service),
    identity: IdentityContext = Depends(require_host)
):
    service.delete_availability(availability_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{accommodation_id}/calendar", response_model=List[CalendarIntervalResponse])
async def get_calendar(
    accommodation_id: str,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    service: AvailabilityService = Depends(get_availability_service),
    identity: IdentityContext = Depends(require_guest_or_host)
):
    """
    Free intervals in the window (default: today + 3 months).

    Hosts also see CONFIRMED reservations as RESERVED entries.
    """
    if start_date and end_date and end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="endDate must not be before startDate"
        )
    return service.get_calendar(
        accommodation_id,
        start_date,
        end_date,
        include_reservations=identity.has_role(ROLE_HOST)
    )
