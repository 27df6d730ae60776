"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.dependencies import rate_limit_headers
from .api.routes import geopricing, health
from .config import settings
from .errors import ConfigurationError, RateLimitExceeded
from .persistence.database import build_stores
from .services.cache import InMemoryDriveTimeCache, build_cache
from .services.geocoding import GoogleGeocodingClient
from .services.lifecycle import PeriodicSweeper
from .services.orchestrator import GeopricingOrchestrator
from .services.ratelimit import RateLimitConfig, RateLimitDecision, RateLimiter, RateLimitSweeper, default_limiters
from .services.routing.distance_matrix import build_distance_matrix_client
from .services.routing.drive_time import DriveTimeResolver

logger = logging.getLogger(__name__)


async def _startup(app: FastAPI) -> list[PeriodicSweeper]:
    state = app.state
    sweepers: list[PeriodicSweeper] = [
        RateLimitSweeper(list(state.rate_limiters.values()), settings.rate_limit_sweep_interval_seconds)
    ]
    if getattr(state, "orchestrator", None) is None:
        cache = build_cache()
        state.cache = cache
        if isinstance(cache, InMemoryDriveTimeCache):
            sweepers.append(
                PeriodicSweeper("drive-time-cache", cache.purge_expired, settings.cache_sweep_interval_seconds)
            )
        try:
            state.distance_client = build_distance_matrix_client()
            state.geocoder = GoogleGeocodingClient()
        except ConfigurationError as exc:
            logger.error(f"Pricing disabled until providers are configured: {exc}")
        else:
            stores = build_stores()
            state.orchestrator = GeopricingOrchestrator(
                state.geocoder,
                stores.origins,
                stores.zones,
                DriveTimeResolver(state.distance_client, cache),
                calculation_store=stores.calculations,
            )
    for sweeper in sweepers:
        sweeper.start()
    return sweepers


async def _shutdown(app: FastAPI, sweepers: list[PeriodicSweeper]) -> None:
    for sweeper in sweepers:
        await sweeper.stop()
    for name in ("distance_client", "geocoder"):
        client = getattr(app.state, name, None)
        if client is not None:
            await client.aclose()
    cache = getattr(app.state, "cache", None)
    if cache is not None:
        await cache.close()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    sweepers = await _startup(app)
    try:
        yield
    finally:
        await _shutdown(app, sweepers)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    decision = RateLimitDecision(allowed=False, limit=exc.limit, remaining=0, reset_at=exc.reset_at)
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": "Too many requests. Please try again later."},
        headers=rate_limit_headers(decision),
    )


def create_app(
    *,
    orchestrator: Optional[GeopricingOrchestrator] = None,
    rate_limiters: Optional[dict[str, RateLimiter]] = None,
) -> FastAPI:
    logging.basicConfig(level=settings.log_level.upper())
    app = FastAPI(
        title=settings.app_name,
        root_path="",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.state.rate_limiters = rate_limiters or default_limiters(
        RateLimitConfig(limit=settings.rate_limit_requests, window_seconds=settings.rate_limit_window_seconds)
    )
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
        )
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Root endpoint for diagnostics
    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(geopricing.router, prefix=settings.api_prefix)
    return app


app = create_app()
