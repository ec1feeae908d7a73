"""Collaborator contracts consumed by the capacity and pricing services."""

from __future__ import annotations

from typing import Optional, Protocol

from groupbooking.domain.models import PricingTier, ResourceConfig, SlotOccupant, TierDraft


class TierStore(Protocol):
    def add_tier(self, resource_id: int, draft: TierDraft) -> int:
        ...

    def get_tiers(self, resource_id: int) -> list[PricingTier]:
        ...

    def delete_tier(self, tier_id: int) -> bool:
        ...

    def find_matching_tier(self, resource_id: int, quantity: int) -> Optional[PricingTier]:
        ...


class BookingOccupancyReader(Protocol):
    def get_slot_occupancy(self, resource_id: int, date: str, time: str) -> int:
        ...

    def list_slot_occupants(self, resource_id: int, date: str, time: str) -> list[SlotOccupant]:
        ...


class ResourceConfigStore(Protocol):
    def get_resource_config(self, resource_id: int) -> Optional[ResourceConfig]:
        ...
