"""Group pricing: per-person, flat and tiered totals with group discounts."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from groupbooking.domain.models import (
    DiscountType,
    PriceLine,
    PriceQuote,
    PriceType,
    PricingMode,
    PricingTier,
    ResolvedPolicy,
    ResourceConfig,
)
from groupbooking.repository.data_repository import DataRepository
from groupbooking.repository.interfaces import ResourceConfigStore, TierStore
from groupbooking.utils.config import Settings, get_settings
from groupbooking.utils.logger import get_logger


logger = get_logger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class PricingValidationError(Exception):
    """Raised when price inputs are invalid."""


class ResourceNotFoundError(Exception):
    """Raised when an operation needs a resource that does not exist."""


def to_money(value: Union[Decimal, float, int, str]) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal, currency_symbol: str = "$") -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}{currency_symbol}{abs(amount):,.2f}"


def discount_amount(
    amount: Decimal,
    discount_type: DiscountType,
    discount_value: Decimal,
) -> Decimal:
    """Raw reduction for a percentage or fixed discount, capped at amount."""
    if discount_value <= 0 or amount <= 0:
        return ZERO
    if discount_type is DiscountType.PERCENTAGE:
        reduction = amount * discount_value / Decimal(100)
    else:
        reduction = discount_value
    return min(reduction, amount)


def resolve_discount_policy(
    resource: Optional[ResourceConfig],
    global_defaults: Settings,
) -> ResolvedPolicy:
    """Resource discount wins only when it is enabled and has a threshold.

    Anything else falls back to the global policy as a whole; fields are
    never merged across the two sources.
    """
    override = resource.discount if resource is not None else None
    if override is not None and override.enabled and override.min_quantity:
        return ResolvedPolicy(
            enabled=True,
            min_quantity=int(override.min_quantity),
            discount_type=override.discount_type,
            discount_value=Decimal(override.discount_value),
            source="resource",
        )
    return ResolvedPolicy(
        enabled=global_defaults.group_discount_enable,
        min_quantity=global_defaults.group_discount_min,
        discount_type=DiscountType(global_defaults.group_discount_type),
        discount_value=Decimal(str(global_defaults.group_discount_value)),
        source="global",
    )


@dataclass(frozen=True)
class PriceEvaluation:
    base_label: str
    subtotal: Decimal
    discount: Decimal
    discount_label: str
    tier: Optional[PricingTier] = None

    @property
    def total(self) -> Decimal:
        return self.subtotal - self.discount

    def lines(self) -> list[PriceLine]:
        breakdown = [PriceLine(label=self.base_label, value=self.subtotal)]
        if self.discount > 0:
            breakdown.append(
                PriceLine(label=self.discount_label, value=-self.discount, is_discount=True)
            )
        return breakdown


class GroupPricingService:
    """Computes group totals and their display breakdown from one evaluation."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        tier_store: Optional[TierStore] = None,
        resources: Optional[ResourceConfigStore] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._tiers = tier_store or self._repository
        self._resources = resources or self._repository

    def _resolve_mode(
        self,
        pricing_mode: Union[PricingMode, str, None],
        resource: Optional[ResourceConfig],
        settings: Settings,
    ) -> PricingMode:
        if pricing_mode is None:
            if resource is not None and resource.pricing_mode is not None:
                return resource.pricing_mode
            pricing_mode = settings.pricing_mode
        try:
            return PricingMode(pricing_mode)
        except ValueError as exc:
            raise PricingValidationError(f"Unknown pricing mode: {pricing_mode}") from exc

    def _per_person(self, base_price: Decimal, quantity: int, symbol: str) -> tuple[str, Decimal]:
        label = f"{format_money(to_money(base_price), symbol)} × {quantity} people"
        return label, base_price * quantity

    def evaluate(
        self,
        base_price: Union[Decimal, float, int, str],
        quantity: int,
        resource_id: int,
        pricing_mode: Union[PricingMode, str, None] = None,
        settings: Optional[Settings] = None,
    ) -> PriceEvaluation:
        """Price a party once; every public pricing call reads from this result.

        The subtotal is rounded to cents before the group discount is taken,
        and the discount is rounded on its own. The total is the difference of
        two cent amounts, so the displayed lines always add up to it. A
        percentage discount on a sub-cent base price can therefore differ by
        one cent from rounding only the final total (10.005 at 10 % gives 9.01).
        """
        settings = settings or self._settings
        base = Decimal(str(base_price))
        if base < 0:
            raise PricingValidationError("base_price must be >= 0")
        if quantity < 1:
            raise PricingValidationError("quantity must be >= 1")

        resource = self._resources.get_resource_config(resource_id)
        mode = self._resolve_mode(pricing_mode, resource, settings)
        symbol = settings.currency_symbol

        tier: Optional[PricingTier] = None
        if mode is PricingMode.FLAT_RATE:
            label, raw_subtotal = "Flat rate", base
        elif mode is PricingMode.TIERED:
            tier = self._tiers.find_matching_tier(resource_id, quantity)
            if tier is None:
                logger.debug(
                    "No tier matched, pricing per person | resource_id=%s | quantity=%s",
                    resource_id,
                    quantity,
                )
                label, raw_subtotal = self._per_person(base, quantity, symbol)
            else:
                label = f"Group rate ({quantity} people)"
                if tier.price_type is PriceType.PER_PERSON:
                    raw_subtotal = tier.price * quantity
                else:
                    raw_subtotal = tier.price
                if tier.discount_type is not None and tier.discount_value is not None:
                    raw_subtotal -= discount_amount(
                        raw_subtotal, tier.discount_type, tier.discount_value
                    )
        else:
            label, raw_subtotal = self._per_person(base, quantity, symbol)

        subtotal = to_money(max(raw_subtotal, ZERO))
        policy = resolve_discount_policy(resource, settings)
        discount = ZERO
        if policy.applies_to(quantity):
            discount = to_money(
                discount_amount(subtotal, policy.discount_type, policy.discount_value)
            )

        if policy.discount_type is DiscountType.PERCENTAGE:
            discount_label = f"Group discount ({policy.discount_value.normalize():f}%)"
        else:
            discount_label = "Group discount"

        evaluation = PriceEvaluation(
            base_label=label,
            subtotal=subtotal,
            discount=min(discount, subtotal),
            discount_label=discount_label,
            tier=tier,
        )
        logger.debug(
            "Price evaluated | resource_id=%s | mode=%s | quantity=%s | subtotal=%s | discount=%s | policy=%s",
            resource_id,
            mode.value,
            quantity,
            evaluation.subtotal,
            evaluation.discount,
            policy.source,
        )
        return evaluation

    def calculate_price(
        self,
        base_price: Union[Decimal, float, int, str],
        quantity: int,
        resource_id: int,
        pricing_mode: Union[PricingMode, str, None] = None,
        settings: Optional[Settings] = None,
    ) -> Decimal:
        return self.evaluate(base_price, quantity, resource_id, pricing_mode, settings).total

    def get_price_breakdown(
        self,
        base_price: Union[Decimal, float, int, str],
        quantity: int,
        resource_id: int,
        pricing_mode: Union[PricingMode, str, None] = None,
        settings: Optional[Settings] = None,
    ) -> list[PriceLine]:
        return self.evaluate(base_price, quantity, resource_id, pricing_mode, settings).lines()

    def quote(
        self,
        base_price: Union[Decimal, float, int, str],
        quantity: int,
        resource_id: int,
        pricing_mode: Union[PricingMode, str, None] = None,
        settings: Optional[Settings] = None,
    ) -> PriceQuote:
        evaluation = self.evaluate(base_price, quantity, resource_id, pricing_mode, settings)
        symbol = (settings or self._settings).currency_symbol
        return PriceQuote(
            total=evaluation.total,
            total_formatted=format_money(evaluation.total, symbol),
            breakdown=evaluation.lines(),
        )

    def quote_for_resource(self, resource_id: int, quantity: int) -> PriceQuote:
        """Quote using the resource's own base price and pricing mode."""
        resource = self._resources.get_resource_config(resource_id)
        if resource is None:
            raise ResourceNotFoundError("Invalid service.")
        return self.quote(resource.base_price, quantity, resource_id)

    def apply_group_total(
        self,
        total: Union[Decimal, float, int, str],
        quantity: int,
        resource_id: int,
    ) -> Decimal:
        """Reprice an existing single-person total for a party; parties of one pass through."""
        if quantity <= 1:
            return to_money(total)
        return self.calculate_price(total, quantity, resource_id)
