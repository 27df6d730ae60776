"""Request-scoped accessors and rate-limit helpers shared by the routers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, Request, status

from ..errors import RateLimitExceeded
from ..services.orchestrator import GeopricingOrchestrator
from ..services.ratelimit import RateLimitDecision, RateLimiter
from ..services.routing.distance_matrix import DistanceMatrixClient


def get_orchestrator(request: Request) -> GeopricingOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pricing service is not configured.",
        )
    return orchestrator


def get_distance_client(request: Request) -> Optional[DistanceMatrixClient]:
    return getattr(request.app.state, "distance_client", None)


def get_calculation_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiters["calculation"]


def get_api_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiters["api"]


def client_identifier(request: Request, business_id: Optional[str] = None) -> str:
    """First forwarded IP, then the proxy's real IP, then the socket peer; scoped by business."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")
    return f"{ip}:{business_id}" if business_id else ip


def rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": datetime.fromtimestamp(decision.reset_at, tz=timezone.utc).isoformat(),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after())
    return headers


def enforce_rate_limit(limiter: RateLimiter, identifier: str) -> RateLimitDecision:
    decision = limiter.check(identifier)
    if not decision.allowed:
        raise RateLimitExceeded(identifier, decision.limit, decision.reset_at)
    return decision
