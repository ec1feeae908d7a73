"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from groupbooking.controllers.admin_controller import router as admin_router
from groupbooking.controllers.booking_controller import router as booking_router
from groupbooking.repository.data_repository import DataRepository
from groupbooking.services.auth_service import AuthService
from groupbooking.services.booking_service import GroupBookingService
from groupbooking.services.capacity_service import CapacityResolver, SlotCapacityFilter
from groupbooking.services.pricing_service import GroupPricingService
from groupbooking.services.tier_service import TierManagementService
from groupbooking.utils.config import Settings, get_settings
from groupbooking.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every service is created here and published on app.state, so each
    dependency can be traced back to this function.
    """
    settings = settings or get_settings()

    # --- Repository (SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Services ---
    capacity_resolver = CapacityResolver(resources=repository, settings=settings)
    capacity_filter = SlotCapacityFilter(
        repository=repository,
        settings=settings,
        capacity_resolver=capacity_resolver,
    )
    pricing_service = GroupPricingService(repository=repository, settings=settings)
    booking_service = GroupBookingService(
        repository=repository,
        settings=settings,
        capacity_resolver=capacity_resolver,
    )
    tier_service = TierManagementService(repository=repository, settings=settings)
    auth_service = AuthService(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(booking_router)
    app.include_router(admin_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.repository = repository
    app.state.capacity_filter = capacity_filter
    app.state.pricing_service = pricing_service
    app.state.booking_service = booking_service
    app.state.tier_service = tier_service
    app.state.auth_service = auth_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema must exist before the optional demo catalogue is seeded.
    """
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo resources (skipped if Resources table not empty)")
        repository.seed_demo_data()

    logger.info("Startup complete | system ready")


# Module-level app object for uvicorn
app = create_app()
