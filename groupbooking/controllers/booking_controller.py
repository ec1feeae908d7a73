"""HTTP controller layer for group availability, pricing and reservations."""

from __future__ import annotations

from datetime import date
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from groupbooking.controllers.dependencies import (
    get_booking_service,
    get_capacity_filter,
    get_pricing_service,
    require_admin,
)
from groupbooking.domain.models import BookingStatus, PriceQuote
from groupbooking.repository.data_repository import StorageError
from groupbooking.services.booking_service import (
    BookingNotFoundError,
    BookingValidationError,
    GroupBookingService,
    SlotUnavailableError,
)
from groupbooking.services.capacity_service import CapacityValidationError, SlotCapacityFilter
from groupbooking.services.pricing_service import (
    GroupPricingService,
    PricingValidationError,
    ResourceNotFoundError,
)
from groupbooking.utils.config import get_settings
from groupbooking.utils.logger import get_logger


logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(tags=["group-booking"])

RETRY_DETAIL = "Please try again."


def _storage_unavailable(exc: StorageError) -> HTTPException:
    logger.error("Storage unavailable | error=%s", exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=RETRY_DETAIL,
    )


def _slot_conflict(exc: SlotUnavailableError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "message": str(exc),
            "retryable": exc.retryable,
            "max_available": exc.remaining,
        },
    )


class CheckAvailabilityRequest(BaseModel):
    resource_id: int = Field(gt=0)
    date: date
    time: str = Field(pattern=settings.time_slot_regex)
    quantity: int = Field(default=1, ge=1)


class CheckAvailabilityResponse(BaseModel):
    available: bool
    max_available: int = Field(ge=0)
    message: str


class AvailableSlotsRequest(BaseModel):
    resource_id: int = Field(gt=0)
    quantity: int = Field(default=1, ge=1)
    slots: dict[str, dict[str, Any]]

    @field_validator("slots")
    @classmethod
    def validate_slot_keys(cls, value: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
        for slot_date in value:
            date.fromisoformat(slot_date)
        return value


class AvailableSlotsResponse(BaseModel):
    slots: dict[str, dict[str, Any]]


class CalculatePriceRequest(BaseModel):
    resource_id: int = Field(gt=0)
    quantity: int = Field(default=1, ge=1)


class PriceLineResponse(BaseModel):
    label: str
    value: float
    is_discount: bool = False


class CalculatePriceResponse(BaseModel):
    total: float = Field(ge=0.0)
    total_formatted: str
    breakdown: list[PriceLineResponse]

    @classmethod
    def from_quote(cls, quote: PriceQuote) -> "CalculatePriceResponse":
        return cls(
            total=float(quote.total),
            total_formatted=quote.total_formatted,
            breakdown=[
                PriceLineResponse(
                    label=line.label,
                    value=float(line.value),
                    is_discount=line.is_discount,
                )
                for line in quote.breakdown
            ],
        )


class ValidateGroupSizeRequest(BaseModel):
    resource_id: int = Field(gt=0)
    quantity: int


class ValidateGroupSizeResponse(BaseModel):
    valid: bool
    code: Optional[str] = None
    message: Optional[str] = None


class CreateBookingRequest(BaseModel):
    resource_id: int = Field(gt=0)
    date: date
    time: str = Field(pattern=settings.time_slot_regex)
    quantity: int = Field(default=1, ge=1)
    participants: Optional[list[str]] = None

    @field_validator("participants")
    @classmethod
    def validate_participants(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return None
        cleaned = [name.strip() for name in value if name.strip()]
        return cleaned or None


class BookingResponse(BaseModel):
    booking_id: int = Field(gt=0)
    quantity: int = Field(ge=1)
    status: str


class BookingDetailResponse(BaseModel):
    booking_id: int
    resource_id: int
    date: str
    time: str
    quantity: int = Field(ge=1)
    status: str
    participants: list[str] = Field(default_factory=list)


class UpdateBookingStatusRequest(BaseModel):
    status: Literal["accepted", "confirmed", "cancelled", "rejected"]


@router.post(
    "/check_availability",
    response_model=CheckAvailabilityResponse,
    status_code=status.HTTP_200_OK,
)
async def check_availability(
    payload: CheckAvailabilityRequest,
    service: SlotCapacityFilter = Depends(get_capacity_filter),
) -> CheckAvailabilityResponse:
    try:
        decision = service.describe_availability(
            resource_id=payload.resource_id,
            date=payload.date.isoformat(),
            time=payload.time,
            quantity=payload.quantity,
        )
        return CheckAvailabilityResponse(
            available=decision.available,
            max_available=decision.max_available,
            message=decision.message,
        )
    except CapacityValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected availability failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check availability",
        ) from exc


@router.post(
    "/available_slots",
    response_model=AvailableSlotsResponse,
    status_code=status.HTTP_200_OK,
)
async def available_slots(
    payload: AvailableSlotsRequest,
    service: SlotCapacityFilter = Depends(get_capacity_filter),
) -> AvailableSlotsResponse:
    try:
        filtered = service.filter_by_capacity(
            slots=payload.slots,
            resource_id=payload.resource_id,
            requested_quantity=payload.quantity,
        )
        return AvailableSlotsResponse(slots=filtered)
    except CapacityValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected slot filter failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to filter slots",
        ) from exc


@router.post(
    "/calculate_price",
    response_model=CalculatePriceResponse,
    status_code=status.HTTP_200_OK,
)
async def calculate_price(
    payload: CalculatePriceRequest,
    service: GroupPricingService = Depends(get_pricing_service),
) -> CalculatePriceResponse:
    try:
        quote = service.quote_for_resource(
            resource_id=payload.resource_id,
            quantity=payload.quantity,
        )
        return CalculatePriceResponse.from_quote(quote)
    except (PricingValidationError, ResourceNotFoundError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected pricing failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to calculate price",
        ) from exc


@router.post(
    "/validate_group_size",
    response_model=ValidateGroupSizeResponse,
    status_code=status.HTTP_200_OK,
)
async def validate_group_size(
    payload: ValidateGroupSizeRequest,
    service: GroupBookingService = Depends(get_booking_service),
) -> ValidateGroupSizeResponse:
    try:
        result = service.validate_group_size(payload.resource_id, payload.quantity)
        return ValidateGroupSizeResponse(
            valid=result.valid,
            code=result.code,
            message=result.message,
        )
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@router.post(
    "/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    payload: CreateBookingRequest,
    service: GroupBookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Commit a reservation; the capacity check is repeated inside the write."""
    try:
        result = service.reserve(
            resource_id=payload.resource_id,
            date=payload.date.isoformat(),
            time=payload.time,
            quantity=payload.quantity,
            participants=payload.participants,
        )
        return BookingResponse(
            booking_id=result.booking_id,
            quantity=result.quantity,
            status=result.status.value,
        )
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": exc.validation.code, "message": exc.validation.message},
        ) from exc
    except SlotUnavailableError as exc:
        raise _slot_conflict(exc) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected reservation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking",
        ) from exc


@router.post(
    "/bookings/{booking_id}/status",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
async def update_booking_status(
    booking_id: int,
    payload: UpdateBookingStatusRequest,
    service: GroupBookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        record = service.update_status(booking_id, BookingStatus(payload.status))
        return BookingResponse(
            booking_id=record.booking_id,
            quantity=record.quantity,
            status=record.status,
        )
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except SlotUnavailableError as exc:
        raise _slot_conflict(exc) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@router.get(
    "/bookings/{booking_id}",
    response_model=BookingDetailResponse,
    dependencies=[Depends(require_admin)],
)
async def get_booking(
    booking_id: int,
    service: GroupBookingService = Depends(get_booking_service),
) -> BookingDetailResponse:
    try:
        record = service.get_booking(booking_id)
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    return BookingDetailResponse(
        booking_id=record.booking_id,
        resource_id=record.resource_id,
        date=record.date,
        time=record.time,
        quantity=record.quantity,
        status=record.status,
        participants=record.participants,
    )
