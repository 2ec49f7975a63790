from pydantic import BaseModel, Field, model_validator
from typing import Optional
from datetime import datetime, date

from ..models.reservation import ReservationStatus
from ..models.reservation_request import RequestStatus


class ReservationRequestCreate(BaseModel):
    accommodation_id: str = Field(..., min_length=1, max_length=36, alias="accommodationId")
    start_date: date = Field(..., alias="startDate")
    end_date: date = Field(..., alias="endDate")
    guest_count: int = Field(1, ge=1, le=100, alias="guestCount")

    model_config = {"populate_by_name": True}

    @model_validator(mode='after')
    def validate_dates(self):
        """Stay dates are inclusive; a one-night stay has start == end"""
        if self.end_date < self.start_date:
            raise ValueError('endDate must not be before startDate')
        return self


class ReservationRequestUpdate(BaseModel):
    start_date: date = Field(..., alias="startDate")
    end_date: date = Field(..., alias="endDate")
    guest_count: int = Field(..., ge=1, le=100, alias="guestCount")

    model_config = {"populate_by_name": True}

    @model_validator(mode='after')
    def validate_dates(self):
        if self.end_date < self.start_date:
            raise ValueError('endDate must not be before startDate')
        return self


class ReservationRequestResponse(BaseModel):
    id: str
    accommodation_id: str = Field(..., serialization_alias="accommodationId")
    guest_id: str = Field(..., serialization_alias="guestId")
    guest_email: Optional[str] = Field(None, serialization_alias="guestEmail")
    guest_first_name: Optional[str] = Field(None, serialization_alias="guestFirstName")
    guest_last_name: Optional[str] = Field(None, serialization_alias="guestLastName")
    start_date: date = Field(..., serialization_alias="startDate")
    end_date: date = Field(..., serialization_alias="endDate")
    guest_count: int = Field(..., serialization_alias="guestCount")
    status: RequestStatus
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")

    connected_reservation_cancelled: bool = Field(False, serialization_alias="connectedReservationCancelled")
    cancellations_count: int = Field(0, serialization_alias="cancellationsCount")

    model_config = {"from_attributes": True}


class ReservationResponse(BaseModel):
    id: str
    request_id: str = Field(..., serialization_alias="requestId")
    confirmed_at: datetime = Field(..., serialization_alias="confirmedAt")
    status: ReservationStatus

    model_config = {"from_attributes": True}
