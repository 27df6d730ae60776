"""Pydantic request/response models for geopricing endpoints."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Optional, Sequence

from pydantic import BaseModel, Field, field_validator


class ServiceRequest(BaseModel):
    type: str = Field(..., min_length=1, description="Service type, e.g. 'lawn_mowing'.")
    area: Decimal = Field(..., ge=0, description="Area in square feet.")
    custom_rate: Optional[Decimal] = Field(default=None, ge=0, description="Override rate per 1000 sq ft.")


class CalculationOptionsModel(BaseModel):
    use_cache: bool = True
    traffic_model: Literal["best_guess", "pessimistic", "optimistic"] = "best_guess"
    avoid_highways: bool = False
    avoid_tolls: bool = False
    preferred_origin_id: Optional[str] = None
    service_date: Optional[date] = None


class CalculationRequest(BaseModel):
    business_id: str = Field(..., min_length=1)
    customer_address: str = Field(..., description="Free-form address to price.")
    services: Sequence[ServiceRequest] = Field(default_factory=list)
    options: CalculationOptionsModel = Field(default_factory=CalculationOptionsModel)

    @field_validator("customer_address")
    @classmethod
    def validate_address(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("customer_address must not be blank")
        return value.strip()


class LocationModel(BaseModel):
    lat: float
    lng: float
    address: str
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None


class DriveTimeModel(BaseModel):
    minutes: int
    distance_km: float
    distance_text: str
    duration_text: str
    from_cache: bool
    estimated: bool
    calculated_at: Optional[datetime] = None


class ZoneMatchModel(BaseModel):
    zone_id: Optional[str] = None
    name: str
    kind: Optional[str] = None
    adjustment_type: str
    adjustment_value: str
    reason: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class ServicePriceModel(BaseModel):
    type: str
    area: str
    rate: str
    base_price: str
    adjusted_price: str


class RateTableEntryModel(BaseModel):
    zone_key: str
    zone_name: str
    drive_time_range: str
    rate: str
    price_for_property: Optional[str] = None
    is_current: bool


class CalculationResponse(BaseModel):
    id: str
    business_id: str
    origin_id: str
    origin_name: str
    customer_location: LocationModel
    drive_time: DriveTimeModel
    matched_zone: ZoneMatchModel
    base_rate: str
    adjusted_rate: str
    per_service_pricing: list[ServicePriceModel]
    base_price: str
    adjusted_price: str
    final_price: str
    minimum_charge: str
    currency: str
    estimated: bool
    rate_table: list[RateTableEntryModel]
    explanation: str
    computed_at: datetime
    expires_at: datetime


class AvailabilityResponse(BaseModel):
    available: bool
    origin_name: Optional[str] = None
    estimated_drive_time: Optional[int] = None
    zone: Optional[str] = None
    message: Optional[str] = None
