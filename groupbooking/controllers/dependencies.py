"""Request-scoped lookups of the services published on app.state."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from groupbooking.services.auth_service import (
    AdminTokenNotConfiguredError,
    AuthService,
    InvalidAdminTokenError,
)
from groupbooking.services.booking_service import GroupBookingService
from groupbooking.services.capacity_service import SlotCapacityFilter
from groupbooking.services.pricing_service import GroupPricingService
from groupbooking.services.tier_service import TierManagementService
from groupbooking.utils.config import get_settings


bearer_scheme = HTTPBearer(auto_error=False)


def _state_service(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} service is not initialized",
        )
    return service


def get_auth_service(request: Request) -> AuthService:
    service = getattr(request.app.state, "auth_service", None)
    if service is None:
        repository = getattr(request.app.state, "repository", None)
        service = AuthService(settings=repository.settings if repository else get_settings())
        request.app.state.auth_service = service
    return service


def get_capacity_filter(request: Request) -> SlotCapacityFilter:
    return _state_service(request, "capacity_filter", "Capacity")


def get_pricing_service(request: Request) -> GroupPricingService:
    return _state_service(request, "pricing_service", "Pricing")


def get_booking_service(request: Request) -> GroupBookingService:
    return _state_service(request, "booking_service", "Booking")


def get_tier_service(request: Request) -> TierManagementService:
    return _state_service(request, "tier_service", "Tier")


async def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    if not auth_service.auth_enabled:
        return
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header with Bearer token is required",
        )
    try:
        auth_service.validate_bearer_token(credentials.credentials)
    except (AdminTokenNotConfiguredError, InvalidAdminTokenError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
