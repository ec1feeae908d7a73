"""Slot capacity resolution and filtering for group bookings."""

from __future__ import annotations

from typing import Optional

from groupbooking.domain.models import AvailabilityDecision, SlotMap, SlotOccupant
from groupbooking.repository.data_repository import DataRepository
from groupbooking.repository.interfaces import BookingOccupancyReader, ResourceConfigStore
from groupbooking.utils.config import Settings, get_settings
from groupbooking.utils.logger import get_logger


logger = get_logger(__name__)


AVAILABLE_MESSAGE = "This time slot is available for your group."
UNAVAILABLE_MESSAGE = "This time slot cannot accommodate your group size."


class CapacityValidationError(Exception):
    """Raised when a capacity query carries an invalid quantity."""


def _validate_quantity(quantity: int) -> None:
    if quantity < 1:
        raise CapacityValidationError("quantity must be >= 1")


class CapacityResolver:
    """Maximum simultaneous quantity per slot: resource override, else global default."""

    def __init__(
        self,
        resources: ResourceConfigStore,
        settings: Optional[Settings] = None,
    ) -> None:
        self._resources = resources
        self._settings = settings or get_settings()

    def resolve_capacity(self, resource_id: int) -> int:
        config = self._resources.get_resource_config(resource_id)
        if config is not None and config.capacity and config.capacity > 0:
            return int(config.capacity)
        return self._settings.default_max_quantity


class SlotCapacityFilter:
    """Answers which slots can still hold a party of a given size."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        occupancy_reader: Optional[BookingOccupancyReader] = None,
        capacity_resolver: Optional[CapacityResolver] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._occupancy = occupancy_reader or self._repository
        self._capacity = capacity_resolver or CapacityResolver(
            resources=self._repository,
            settings=self._settings,
        )

    @property
    def capacity_resolver(self) -> CapacityResolver:
        return self._capacity

    def _remaining(self, resource_id: int, capacity: int, date: str, time: str) -> int:
        occupied = self._occupancy.get_slot_occupancy(resource_id, date, time)
        return max(0, capacity - occupied)

    def filter_by_capacity(
        self,
        slots: SlotMap,
        resource_id: int,
        requested_quantity: int,
    ) -> SlotMap:
        _validate_quantity(requested_quantity)
        capacity = self._capacity.resolve_capacity(resource_id)
        if requested_quantity > capacity:
            logger.info(
                "Slot filter short-circuited | resource_id=%s | requested=%s | capacity=%s",
                resource_id,
                requested_quantity,
                capacity,
            )
            return {}

        filtered: SlotMap = {}
        checked = 0
        for date, times in slots.items():
            kept = {}
            for time, payload in times.items():
                checked += 1
                if self._remaining(resource_id, capacity, date, time) >= requested_quantity:
                    kept[time] = payload
            if kept:
                filtered[date] = kept

        logger.info(
            "Slot filter completed | resource_id=%s | requested=%s | capacity=%s | checked=%s | kept=%s",
            resource_id,
            requested_quantity,
            capacity,
            checked,
            sum(len(times) for times in filtered.values()),
        )
        return filtered

    def check_availability(
        self,
        resource_id: int,
        date: str,
        time: str,
        quantity: int,
    ) -> bool:
        _validate_quantity(quantity)
        return self.get_max_available(resource_id, date, time) >= quantity

    def get_max_available(self, resource_id: int, date: str, time: str) -> int:
        capacity = self._capacity.resolve_capacity(resource_id)
        return self._remaining(resource_id, capacity, date, time)

    def get_slot_occupants(self, resource_id: int, date: str, time: str) -> list[SlotOccupant]:
        return self._occupancy.list_slot_occupants(resource_id, date, time)

    def describe_availability(
        self,
        resource_id: int,
        date: str,
        time: str,
        quantity: int,
    ) -> AvailabilityDecision:
        _validate_quantity(quantity)
        max_available = self.get_max_available(resource_id, date, time)
        available = max_available >= quantity
        logger.debug(
            "Availability check | resource_id=%s | date=%s | time=%s | quantity=%s | remaining=%s",
            resource_id,
            date,
            time,
            quantity,
            max_available,
        )
        return AvailabilityDecision(
            available=available,
            max_available=max_available,
            message=AVAILABLE_MESSAGE if available else UNAVAILABLE_MESSAGE,
        )
