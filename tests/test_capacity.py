from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest

from groupbooking.domain.models import BookingStatus, ResourceConfig, SlotOccupant
from groupbooking.repository.data_repository import DataRepository, StorageError
from groupbooking.services.capacity_service import (
    CapacityResolver,
    CapacityValidationError,
    SlotCapacityFilter,
)
from groupbooking.utils.config import get_settings


FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _build_test_settings(tmp_path, filename: str, **overrides):
    base = get_settings()
    return replace(base, database_path=tmp_path / filename, **overrides)


def _build_repository(tmp_path, filename: str, **overrides) -> DataRepository:
    settings = _build_test_settings(tmp_path, filename, **overrides)
    repository = DataRepository(settings, clock=lambda: FIXED_NOW)
    repository.initialize_database()
    repository.upsert_resource(
        ResourceConfig(resource_id=1, name="Studio", base_price=Decimal("30"), capacity=10)
    )
    return repository


class _StaticResources:
    def __init__(self, config: Optional[ResourceConfig]) -> None:
        self._config = config

    def get_resource_config(self, resource_id: int) -> Optional[ResourceConfig]:
        return self._config


class _SpyOccupancy:
    """In-memory occupancy reader that records every lookup."""

    def __init__(self, occupancy: dict[tuple[str, str], int] | None = None) -> None:
        self.occupancy = occupancy or {}
        self.calls: list[tuple[int, str, str]] = []

    def get_slot_occupancy(self, resource_id: int, date: str, time: str) -> int:
        self.calls.append((resource_id, date, time))
        return self.occupancy.get((date, time), 0)

    def list_slot_occupants(self, resource_id: int, date: str, time: str) -> list[SlotOccupant]:
        return []


def _in_memory_filter(tmp_path, capacity: int, occupancy: dict[tuple[str, str], int] | None = None):
    settings = _build_test_settings(tmp_path, "unused.db")
    spy = _SpyOccupancy(occupancy)
    resolver = CapacityResolver(
        resources=_StaticResources(ResourceConfig(resource_id=1, capacity=capacity)),
        settings=settings,
    )
    service = SlotCapacityFilter(
        repository=DataRepository(settings),
        settings=settings,
        occupancy_reader=spy,
        capacity_resolver=resolver,
    )
    return service, spy


SLOTS = {
    "2026-03-02": {"09:00": {"label": "morning"}, "13:00": {"label": "afternoon"}},
    "2026-03-03": {"09:00": {"label": "morning"}},
}


def test_check_availability_false_when_party_exceeds_remaining(tmp_path):
    repository = _build_repository(tmp_path, "party_too_large.db")
    repository.create_booking(resource_id=1, date="2026-03-02", time="09:00", quantity=8)
    service = SlotCapacityFilter(repository=repository, settings=repository.settings)

    assert service.check_availability(1, "2026-03-02", "09:00", 3) is False
    assert service.get_max_available(1, "2026-03-02", "09:00") == 2
    assert service.check_availability(1, "2026-03-02", "09:00", 2) is True


def test_filter_short_circuits_without_reading_occupancy(tmp_path):
    service, spy = _in_memory_filter(tmp_path, capacity=10)

    assert service.filter_by_capacity(SLOTS, resource_id=1, requested_quantity=11) == {}
    assert spy.calls == []


def test_filter_drops_full_slots_and_empty_dates(tmp_path):
    service, _ = _in_memory_filter(
        tmp_path,
        capacity=10,
        occupancy={("2026-03-02", "13:00"): 9, ("2026-03-03", "09:00"): 7},
    )

    filtered = service.filter_by_capacity(SLOTS, resource_id=1, requested_quantity=4)

    assert filtered == {"2026-03-02": {"09:00": {"label": "morning"}}}


def test_filter_preserves_payloads_and_order(tmp_path):
    service, _ = _in_memory_filter(tmp_path, capacity=10)

    filtered = service.filter_by_capacity(SLOTS, resource_id=1, requested_quantity=1)

    assert filtered == SLOTS
    assert list(filtered) == list(SLOTS)
    assert list(filtered["2026-03-02"]) == ["09:00", "13:00"]


def test_filter_is_monotonic_in_requested_quantity(tmp_path):
    service, _ = _in_memory_filter(
        tmp_path,
        capacity=10,
        occupancy={("2026-03-02", "09:00"): 3, ("2026-03-02", "13:00"): 6, ("2026-03-03", "09:00"): 9},
    )

    previous: set[tuple[str, str]] | None = None
    for quantity in range(1, 12):
        kept = {
            (slot_date, slot_time)
            for slot_date, times in service.filter_by_capacity(SLOTS, 1, quantity).items()
            for slot_time in times
        }
        if previous is not None:
            assert kept <= previous
        previous = kept


def test_max_available_never_negative_after_capacity_reduction(tmp_path):
    repository = _build_repository(tmp_path, "reduced.db")
    repository.create_booking(resource_id=1, date="2026-03-02", time="09:00", quantity=9)
    repository.upsert_resource(ResourceConfig(resource_id=1, name="Studio", capacity=4))
    service = SlotCapacityFilter(repository=repository, settings=repository.settings)

    assert service.get_max_available(1, "2026-03-02", "09:00") == 0
    assert service.check_availability(1, "2026-03-02", "09:00", 1) is False


def test_unknown_resource_uses_global_default_capacity(tmp_path):
    repository = _build_repository(tmp_path, "default_capacity.db", default_max_quantity=12)
    service = SlotCapacityFilter(repository=repository, settings=repository.settings)

    assert service.capacity_resolver.resolve_capacity(999) == 12
    assert service.get_max_available(999, "2026-03-02", "09:00") == 12
    assert service.check_availability(999, "2026-03-02", "09:00", 12) is True


def test_legacy_booking_without_quantity_counts_as_one(tmp_path):
    repository = _build_repository(tmp_path, "legacy.db")
    repository.create_booking(resource_id=1, date="2026-03-02", time="09:00", quantity=None)
    repository.create_booking(resource_id=1, date="2026-03-02", time="09:00", quantity=3)

    assert repository.get_slot_occupancy(1, "2026-03-02", "09:00") == 4


def test_cancelled_and_rejected_bookings_do_not_occupy(tmp_path):
    repository = _build_repository(tmp_path, "terminal.db")
    for status in (BookingStatus.CANCELLED, BookingStatus.REJECTED):
        repository.create_booking(
            resource_id=1, date="2026-03-02", time="09:00", quantity=5, status=status
        )
    repository.create_booking(
        resource_id=1, date="2026-03-02", time="09:00", quantity=2, status=BookingStatus.ACCEPTED
    )
    repository.create_booking(
        resource_id=1, date="2026-03-02", time="09:00", quantity=1, status=BookingStatus.CONFIRMED
    )

    assert repository.get_slot_occupancy(1, "2026-03-02", "09:00") == 3


def test_expired_pending_hold_releases_capacity(tmp_path):
    repository = _build_repository(tmp_path, "holds.db", booking_hold_ttl_minutes=15)
    repository.create_booking(
        resource_id=1,
        date="2026-03-02",
        time="09:00",
        quantity=4,
        created_at=FIXED_NOW - timedelta(minutes=30),
    )
    repository.create_booking(
        resource_id=1,
        date="2026-03-02",
        time="09:00",
        quantity=2,
        created_at=FIXED_NOW - timedelta(minutes=5),
    )
    repository.create_booking(
        resource_id=1,
        date="2026-03-02",
        time="09:00",
        quantity=1,
        status=BookingStatus.CONFIRMED,
        created_at=FIXED_NOW - timedelta(days=2),
    )

    assert repository.get_slot_occupancy(1, "2026-03-02", "09:00") == 3


def test_zero_hold_ttl_keeps_pending_holds_indefinitely(tmp_path):
    repository = _build_repository(tmp_path, "holds_forever.db", booking_hold_ttl_minutes=0)
    repository.create_booking(
        resource_id=1,
        date="2026-03-02",
        time="09:00",
        quantity=4,
        created_at=FIXED_NOW - timedelta(days=10),
    )

    assert repository.get_slot_occupancy(1, "2026-03-02", "09:00") == 4


def test_slot_occupants_lists_every_booking(tmp_path):
    repository = _build_repository(tmp_path, "occupants.db")
    first = repository.create_booking(resource_id=1, date="2026-03-02", time="09:00", quantity=2)
    second = repository.create_booking(
        resource_id=1,
        date="2026-03-02",
        time="09:00",
        quantity=None,
        status=BookingStatus.CANCELLED,
    )
    repository.create_booking(resource_id=1, date="2026-03-02", time="13:00", quantity=5)
    service = SlotCapacityFilter(repository=repository, settings=repository.settings)

    occupants = service.get_slot_occupants(1, "2026-03-02", "09:00")

    assert occupants == [
        SlotOccupant(booking_id=first, quantity=2, status="pending"),
        SlotOccupant(booking_id=second, quantity=1, status="cancelled"),
    ]


def test_describe_availability_messages(tmp_path):
    repository = _build_repository(tmp_path, "describe.db")
    repository.create_booking(resource_id=1, date="2026-03-02", time="09:00", quantity=8)
    service = SlotCapacityFilter(repository=repository, settings=repository.settings)

    rejected = service.describe_availability(1, "2026-03-02", "09:00", 3)
    accepted = service.describe_availability(1, "2026-03-02", "09:00", 2)

    assert rejected.available is False
    assert rejected.max_available == 2
    assert rejected.message == "This time slot cannot accommodate your group size."
    assert accepted.available is True
    assert accepted.message == "This time slot is available for your group."


def test_non_positive_quantity_is_rejected(tmp_path):
    service, _ = _in_memory_filter(tmp_path, capacity=10)
    with pytest.raises(CapacityValidationError):
        service.filter_by_capacity(SLOTS, 1, 0)
    with pytest.raises(CapacityValidationError):
        service.check_availability(1, "2026-03-02", "09:00", 0)


def test_storage_failure_is_not_reported_as_available(tmp_path):
    settings = _build_test_settings(tmp_path, "never_initialized.db")
    service = SlotCapacityFilter(repository=DataRepository(settings), settings=settings)

    with pytest.raises(StorageError):
        service.check_availability(1, "2026-03-02", "09:00", 1)
