"""Controller layer for admin resource, tier and diagnostics endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, Field, model_validator

from groupbooking.controllers.dependencies import (
    bearer_scheme,
    get_auth_service,
    get_capacity_filter,
    get_tier_service,
    require_admin,
)
from groupbooking.domain.models import DiscountConfig, DiscountType, PricingMode, ResourceConfig
from groupbooking.repository.data_repository import DataRepository, StorageError
from groupbooking.services.auth_service import (
    AdminTokenNotConfiguredError,
    AuthService,
    InvalidAdminTokenError,
)
from groupbooking.services.capacity_service import SlotCapacityFilter
from groupbooking.services.pricing_service import ResourceNotFoundError
from groupbooking.services.tier_service import (
    TierManagementService,
    TierNotFoundError,
    TierValidationError,
)
from groupbooking.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["admin"])


class LoginRequest(BaseModel):
    admin_token: str = Field(min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TierRequest(BaseModel):
    min_quantity: int = Field(default=1, ge=1)
    max_quantity: int = Field(default=10, ge=1)
    price_type: Literal["per_person", "flat"] = "per_person"
    price: Decimal = Field(default=Decimal("0"), ge=0)
    discount_type: Optional[Literal["percentage", "fixed"]] = None
    discount_value: Optional[Decimal] = Field(default=None, ge=0)


class TierResponse(BaseModel):
    tier_id: int
    resource_id: int
    min_quantity: int
    max_quantity: int
    price_type: str
    price: float
    discount_type: Optional[str] = None
    discount_value: Optional[float] = None


class TierCreatedResponse(BaseModel):
    tier_id: int
    message: str = "Tier added successfully."


class DiscountRequest(BaseModel):
    enabled: bool = False
    min_quantity: Optional[int] = Field(default=None, ge=2)
    discount_type: Literal["percentage", "fixed"] = "percentage"
    discount_value: Decimal = Field(default=Decimal("0"), ge=0)


class ResourceRequest(BaseModel):
    name: str = ""
    base_price: Decimal = Field(default=Decimal("0"), ge=0)
    capacity: Optional[int] = Field(default=None, gt=0)
    pricing_mode: Optional[Literal["per_person", "flat_rate", "tiered"]] = None
    group_enabled: Optional[bool] = None
    min_quantity: Optional[int] = Field(default=None, ge=1)
    max_quantity: Optional[int] = Field(default=None, ge=1)
    discount: Optional[DiscountRequest] = None

    @model_validator(mode="after")
    def validate_quantity_bounds(self) -> "ResourceRequest":
        if (
            self.min_quantity is not None
            and self.max_quantity is not None
            and self.min_quantity > self.max_quantity
        ):
            raise ValueError("min_quantity must be <= max_quantity")
        return self


class OccupantResponse(BaseModel):
    booking_id: int
    quantity: int
    status: str


class SlotOccupantsResponse(BaseModel):
    occupants: list[OccupantResponse]
    max_available: int = Field(ge=0)


def get_repository(request: Request) -> DataRepository:
    repository = getattr(request.app.state, "repository", None)
    if repository is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Repository is not initialized",
        )
    return repository


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        bearer = auth_service.login(payload.admin_token)
        return LoginResponse(access_token=bearer)
    except (AdminTokenNotConfiguredError, InvalidAdminTokenError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    if credentials is not None:
        auth_service.logout(credentials.credentials)


@router.put(
    "/resources/{resource_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def upsert_resource(
    resource_id: int,
    payload: ResourceRequest,
    repository: DataRepository = Depends(get_repository),
) -> None:
    if resource_id <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid service.")
    discount = None
    if payload.discount is not None:
        discount = DiscountConfig(
            enabled=payload.discount.enabled,
            min_quantity=payload.discount.min_quantity,
            discount_type=DiscountType(payload.discount.discount_type),
            discount_value=payload.discount.discount_value,
        )
    try:
        repository.upsert_resource(
            ResourceConfig(
                resource_id=resource_id,
                name=payload.name,
                base_price=payload.base_price,
                capacity=payload.capacity,
                pricing_mode=PricingMode(payload.pricing_mode) if payload.pricing_mode else None,
                group_enabled=payload.group_enabled,
                min_quantity=payload.min_quantity,
                max_quantity=payload.max_quantity,
                discount=discount,
            )
        )
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Please try again.",
        ) from exc


@router.get(
    "/resources/{resource_id}/tiers",
    response_model=list[TierResponse],
    dependencies=[Depends(require_admin)],
)
async def list_tiers(
    resource_id: int,
    service: TierManagementService = Depends(get_tier_service),
) -> list[TierResponse]:
    try:
        tiers = service.list_tiers(resource_id)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Please try again.",
        ) from exc
    return [
        TierResponse(
            tier_id=tier.tier_id,
            resource_id=tier.resource_id,
            min_quantity=tier.min_quantity,
            max_quantity=tier.max_quantity,
            price_type=tier.price_type.value,
            price=float(tier.price),
            discount_type=tier.discount_type.value if tier.discount_type else None,
            discount_value=float(tier.discount_value) if tier.discount_value is not None else None,
        )
        for tier in tiers
    ]


@router.post(
    "/resources/{resource_id}/tiers",
    response_model=TierCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def add_tier(
    resource_id: int,
    payload: TierRequest,
    service: TierManagementService = Depends(get_tier_service),
) -> TierCreatedResponse:
    try:
        tier_id = service.add_tier(resource_id, payload.model_dump())
        return TierCreatedResponse(tier_id=tier_id)
    except TierValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to add tier.",
        ) from exc


@router.delete(
    "/tiers/{tier_id}",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
async def delete_tier(
    tier_id: int,
    service: TierManagementService = Depends(get_tier_service),
) -> dict[str, str]:
    try:
        service.delete_tier(tier_id)
        return {"message": "Tier deleted."}
    except TierNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to delete tier.",
        ) from exc


@router.get(
    "/resources/{resource_id}/slots/{slot_date}/{slot_time}/occupants",
    response_model=SlotOccupantsResponse,
    dependencies=[Depends(require_admin)],
)
async def slot_occupants(
    resource_id: int,
    slot_date: date,
    slot_time: str,
    service: SlotCapacityFilter = Depends(get_capacity_filter),
) -> SlotOccupantsResponse:
    try:
        occupants = service.get_slot_occupants(resource_id, slot_date.isoformat(), slot_time)
        max_available = service.get_max_available(resource_id, slot_date.isoformat(), slot_time)
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Please try again.",
        ) from exc
    return SlotOccupantsResponse(
        occupants=[
            OccupantResponse(
                booking_id=item.booking_id,
                quantity=item.quantity,
                status=item.status,
            )
            for item in occupants
        ],
        max_available=max_available,
    )
