"""Domain models for group capacity checks and group pricing."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


SlotMap = dict[str, dict[str, Any]]


class PricingMode(str, Enum):
    PER_PERSON = "per_person"
    FLAT_RATE = "flat_rate"
    TIERED = "tiered"


class PriceType(str, Enum):
    PER_PERSON = "per_person"
    FLAT = "flat"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class BookingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


@dataclass(frozen=True)
class DiscountConfig:
    enabled: bool
    min_quantity: Optional[int]
    discount_type: DiscountType
    discount_value: Decimal


@dataclass(frozen=True)
class ResolvedPolicy:
    """Discount policy after resource/global precedence has been applied."""

    enabled: bool
    min_quantity: int
    discount_type: DiscountType
    discount_value: Decimal
    source: str

    def applies_to(self, quantity: int) -> bool:
        return self.enabled and quantity >= self.min_quantity and self.discount_value > 0


@dataclass(frozen=True)
class ResourceConfig:
    """Typed per-resource overrides; None means fall back to the global default."""

    resource_id: int
    name: str = ""
    base_price: Decimal = Decimal("0")
    capacity: Optional[int] = None
    pricing_mode: Optional[PricingMode] = None
    group_enabled: Optional[bool] = None
    min_quantity: Optional[int] = None
    max_quantity: Optional[int] = None
    discount: Optional[DiscountConfig] = None


@dataclass(frozen=True)
class PricingTier:
    tier_id: int
    resource_id: int
    min_quantity: int
    max_quantity: int
    price_type: PriceType
    price: Decimal
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None

    def covers(self, quantity: int) -> bool:
        return self.min_quantity <= quantity <= self.max_quantity


@dataclass(frozen=True)
class TierDraft:
    """Tier attributes before persistence assigns an id."""

    min_quantity: int
    max_quantity: int
    price_type: PriceType
    price: Decimal
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None


@dataclass(frozen=True)
class SlotOccupant:
    booking_id: int
    quantity: int
    status: str


@dataclass(frozen=True)
class PriceLine:
    label: str
    value: Decimal
    is_discount: bool = False


@dataclass(frozen=True)
class PriceQuote:
    total: Decimal
    total_formatted: str
    breakdown: list[PriceLine] = field(default_factory=list)


@dataclass(frozen=True)
class AvailabilityDecision:
    available: bool
    max_available: int
    message: str


@dataclass(frozen=True)
class GroupSizeValidation:
    valid: bool
    code: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class BookingRecord:
    booking_id: int
    resource_id: int
    date: str
    time: str
    quantity: int
    status: str
    participants: list[str] = field(default_factory=list)
