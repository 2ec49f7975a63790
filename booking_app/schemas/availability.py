from pydantic import BaseModel, Field, model_validator
from typing import Optional
from datetime import datetime, date
from decimal import Decimal

from ..models.availability import AvailabilityStatus, PriceType


class AvailabilityCreate(BaseModel):
    accommodation_id: str = Field(..., min_length=1, max_length=36, alias="accommodationId")
    start_date: date = Field(..., alias="startDate")
    end_date: date = Field(..., alias="endDate")
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    price_type: PriceType = Field(PriceType.NORMAL, alias="priceType")

    model_config = {"populate_by_name": True}

    @model_validator(mode='after')
    def validate_dates(self):
        """end_date is inclusive and may equal start_date"""
        if self.end_date < self.start_date:
            raise ValueError('endDate must not be before startDate')
        return self


class AvailabilityUpdate(BaseModel):
    start_date: date = Field(..., alias="startDate")
    end_date: date = Field(..., alias="endDate")
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    price_type: Optional[PriceType] = Field(None, alias="priceType")

    model_config = {"populate_by_name": True}

    @model_validator(mode='after')
    def validate_dates(self):
        if self.end_date < self.start_date:
            raise ValueError('endDate must not be before startDate')
        return self


class AvailabilityResponse(BaseModel):
    id: str
    accommodation_id: str = Field(..., serialization_alias="accommodationId")
    start_date: date = Field(..., serialization_alias="startDate")
    end_date: date = Field(..., serialization_alias="endDate")
    price: Decimal
    price_type: PriceType = Field(..., serialization_alias="priceType")
    status: AvailabilityStatus
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")
    updated_at: Optional[datetime] = Field(None, serialization_alias="updatedAt")

    model_config = {"from_attributes": True}


class CalendarIntervalResponse(BaseModel):
    """Free interval, or a RESERVED stay in the host view (no price)."""
    id: str
    start_date: date = Field(..., serialization_alias="startDate")
    end_date: date = Field(..., serialization_alias="endDate")
    status: str
    price: Optional[Decimal] = None
    price_type: Optional[str] = Field(None, serialization_alias="priceType")

    model_config = {"from_attributes": True}
