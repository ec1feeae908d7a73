"""Domain-level validation rules for pricing tiers and party sizes."""

from __future__ import annotations

from dataclasses import dataclass

from groupbooking.domain.models import GroupSizeValidation, TierDraft


@dataclass(frozen=True)
class GroupLimits:
    min_quantity: int
    max_quantity: int
    capacity: int
    group_enabled: bool


def validate_tier_draft(draft: TierDraft) -> None:
    if draft.min_quantity < 1:
        raise ValueError("min_quantity must be >= 1")
    if draft.max_quantity < draft.min_quantity:
        raise ValueError("max_quantity must be >= min_quantity")
    if draft.price < 0:
        raise ValueError("price must be >= 0")
    if (draft.discount_type is None) != (draft.discount_value is None):
        raise ValueError("discount_type and discount_value must be provided together")
    if draft.discount_value is not None and draft.discount_value < 0:
        raise ValueError("discount_value must be >= 0")


def evaluate_group_size(quantity: int, limits: GroupLimits) -> GroupSizeValidation:
    """Check a party size against resource limits.

    Failures come back as data, each with its own code, so the transport can
    show the message to the customer unchanged.
    """
    if quantity < 1:
        return GroupSizeValidation(
            valid=False,
            code="invalid_quantity",
            message="Quantity must be at least 1.",
        )
    if quantity > 1 and not limits.group_enabled:
        return GroupSizeValidation(
            valid=False,
            code="group_bookings_disabled",
            message="Group bookings are not available for this service.",
        )
    if quantity < limits.min_quantity:
        return GroupSizeValidation(
            valid=False,
            code="group_size_below_min",
            message=f"Minimum group size is {limits.min_quantity} people.",
        )
    if quantity > limits.max_quantity:
        return GroupSizeValidation(
            valid=False,
            code="group_size_above_max",
            message=f"Maximum group size is {limits.max_quantity} people.",
        )
    if quantity > limits.capacity:
        return GroupSizeValidation(
            valid=False,
            code="group_size_above_capacity",
            message=(
                f"Requested group of {quantity} exceeds the capacity of {limits.capacity}."
            ),
        )
    return GroupSizeValidation(valid=True)
