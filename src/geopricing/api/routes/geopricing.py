"""API routes for price calculation and service availability."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from ...models.domain import CalculationError, CalculationOptions, ServiceItem
from ...schemas.pricing import AvailabilityResponse, CalculationRequest, CalculationResponse
from ...services.orchestrator import GeopricingOrchestrator
from ...services.outputs.formatter import calculation_to_dict
from ...services.ratelimit import RateLimiter
from ..dependencies import (
    client_identifier,
    enforce_rate_limit,
    get_api_limiter,
    get_calculation_limiter,
    get_orchestrator,
    rate_limit_headers,
)

router = APIRouter(prefix="/geopricing", tags=["geopricing"])

_ERROR_STATUS = {
    "address_not_found": status.HTTP_404_NOT_FOUND,
    "service_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}


@router.post("/calculate", response_model=CalculationResponse, status_code=status.HTTP_200_OK)
async def calculate_price(
    payload: CalculationRequest,
    request: Request,
    response: Response,
    orchestrator: GeopricingOrchestrator = Depends(get_orchestrator),
    limiter: RateLimiter = Depends(get_calculation_limiter),
) -> CalculationResponse:
    """Price the requested services for a customer address."""
    decision = enforce_rate_limit(limiter, client_identifier(request, payload.business_id))
    headers = rate_limit_headers(decision)
    response.headers.update(headers)

    options = CalculationOptions(**payload.options.model_dump())
    services = [
        ServiceItem(type=item.type, area=item.area, custom_rate=item.custom_rate) for item in payload.services
    ]
    outcome = await orchestrator.calculate(payload.business_id, payload.customer_address, services, options)
    if isinstance(outcome, CalculationError):
        raise HTTPException(
            status_code=_ERROR_STATUS[outcome.code],
            detail={"code": outcome.code, "message": outcome.message},
            headers=headers,
        )
    return CalculationResponse.model_validate(calculation_to_dict(outcome))


@router.get("/availability", response_model=AvailabilityResponse, status_code=status.HTTP_200_OK)
async def check_availability(
    request: Request,
    response: Response,
    address: str = Query(..., min_length=1, description="Address to check."),
    business_id: str = Query(..., min_length=1),
    orchestrator: GeopricingOrchestrator = Depends(get_orchestrator),
    limiter: RateLimiter = Depends(get_api_limiter),
) -> AvailabilityResponse:
    """Quick check whether a business serves an address."""
    decision = enforce_rate_limit(limiter, client_identifier(request, business_id))
    response.headers.update(rate_limit_headers(decision))

    availability = await orchestrator.check_availability(business_id, address)
    return AvailabilityResponse(
        available=availability.available,
        origin_name=availability.origin_name,
        estimated_drive_time=availability.drive_time_minutes,
        zone=availability.zone_name,
        message=availability.message,
    )
