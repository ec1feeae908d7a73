"""Administrator-facing pricing tier management."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from groupbooking.domain.constraints import validate_tier_draft
from groupbooking.domain.models import DiscountType, PriceType, PricingTier, TierDraft
from groupbooking.repository.data_repository import DataRepository
from groupbooking.services.pricing_service import ResourceNotFoundError
from groupbooking.utils.config import Settings, get_settings
from groupbooking.utils.logger import get_logger


logger = get_logger(__name__)


class TierValidationError(Exception):
    """Raised when tier attributes are inconsistent."""


class TierNotFoundError(Exception):
    """Raised when deleting a tier id that does not exist."""


def build_tier_draft(data: dict[str, Any]) -> TierDraft:
    """Coerce loosely typed tier input into a TierDraft, using the admin form defaults."""
    try:
        discount_type = data.get("discount_type")
        discount_value = data.get("discount_value")
        return TierDraft(
            min_quantity=int(data.get("min_quantity", 1)),
            max_quantity=int(data.get("max_quantity", 10)),
            price_type=PriceType(data.get("price_type", PriceType.PER_PERSON.value)),
            price=Decimal(str(data.get("price", 0))),
            discount_type=DiscountType(discount_type) if discount_type else None,
            discount_value=None if discount_value is None else Decimal(str(discount_value)),
        )
    except (TypeError, ValueError, InvalidOperation) as exc:
        raise TierValidationError(f"Invalid tier data: {exc}") from exc


class TierManagementService:
    """Create, list and delete tiers; tiers are never edited in place."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def _require_resource(self, resource_id: int) -> None:
        if not self._repository.resource_exists(resource_id):
            raise ResourceNotFoundError(f"Resource {resource_id} not found")

    def add_tier(self, resource_id: int, data: dict[str, Any] | TierDraft) -> int:
        self._require_resource(resource_id)
        draft = data if isinstance(data, TierDraft) else build_tier_draft(data)
        try:
            validate_tier_draft(draft)
        except ValueError as exc:
            raise TierValidationError(str(exc)) from exc

        overlapping = [
            tier.tier_id
            for tier in self._repository.get_tiers(resource_id)
            if tier.min_quantity <= draft.max_quantity and draft.min_quantity <= tier.max_quantity
        ]
        if overlapping:
            logger.warning(
                "Tier range overlaps existing tiers; lowest min_quantity wins | resource_id=%s | overlaps=%s",
                resource_id,
                overlapping,
            )
        return self._repository.add_tier(resource_id, draft)

    def list_tiers(self, resource_id: int) -> list[PricingTier]:
        self._require_resource(resource_id)
        return self._repository.get_tiers(resource_id)

    def delete_tier(self, tier_id: int) -> None:
        if tier_id <= 0 or not self._repository.delete_tier(tier_id):
            raise TierNotFoundError(f"Tier {tier_id} not found")
