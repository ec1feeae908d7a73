"""Group booking flow: party-size validation and conflict-checked reservation.

The availability check a customer sees and the write that commits the booking
are separate requests. The write therefore re-validates occupancy inside its
own transaction and reports a retryable conflict instead of overselling.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from groupbooking.domain.constraints import GroupLimits, evaluate_group_size
from groupbooking.domain.models import BookingRecord, BookingStatus, GroupSizeValidation
from groupbooking.repository.data_repository import CapacityConflictError, DataRepository
from groupbooking.services.capacity_service import CapacityResolver
from groupbooking.utils.config import Settings, get_settings
from groupbooking.utils.logger import get_logger


logger = get_logger(__name__)


class BookingValidationError(Exception):
    """Raised when a reservation fails party-size validation."""

    def __init__(self, validation: GroupSizeValidation) -> None:
        super().__init__(validation.message or "Invalid group size")
        self.validation = validation


class SlotUnavailableError(Exception):
    """Raised when the slot filled up between the availability check and the write."""

    retryable = True

    def __init__(self, remaining: int, requested: int) -> None:
        super().__init__("This time slot is no longer available for your group. Please choose another.")
        self.remaining = remaining
        self.requested = requested


class BookingNotFoundError(Exception):
    """Raised when a booking id does not exist."""


@dataclass(frozen=True)
class ReservationResult:
    booking_id: int
    quantity: int
    status: BookingStatus


class GroupBookingService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        capacity_resolver: Optional[CapacityResolver] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._capacity = capacity_resolver or CapacityResolver(
            resources=self._repository,
            settings=self._settings,
        )

    def resolve_limits(self, resource_id: int) -> GroupLimits:
        config = self._repository.get_resource_config(resource_id)
        min_quantity = (config.min_quantity if config else None) or self._settings.default_min_quantity
        max_quantity = (config.max_quantity if config else None) or self._settings.default_max_quantity
        group_enabled = self._settings.enable_quantity
        if config is not None and config.group_enabled is not None:
            group_enabled = group_enabled and config.group_enabled
        return GroupLimits(
            min_quantity=min_quantity,
            max_quantity=max_quantity,
            capacity=self._capacity.resolve_capacity(resource_id),
            group_enabled=group_enabled,
        )

    def validate_group_size(self, resource_id: int, quantity: int) -> GroupSizeValidation:
        return evaluate_group_size(quantity, self.resolve_limits(resource_id))

    def reserve(
        self,
        *,
        resource_id: int,
        date: str,
        time: str,
        quantity: int,
        participants: Optional[list[str]] = None,
    ) -> ReservationResult:
        limits = self.resolve_limits(resource_id)
        validation = evaluate_group_size(quantity, limits)
        if not validation.valid:
            raise BookingValidationError(validation)

        try:
            booking_id = self._repository.create_booking_if_capacity(
                resource_id=resource_id,
                date=date,
                time=time,
                quantity=quantity,
                capacity=limits.capacity,
                participants=participants if quantity > 1 else None,
            )
        except CapacityConflictError as exc:
            logger.warning(
                "Reservation conflict | resource_id=%s | date=%s | time=%s | requested=%s | remaining=%s",
                resource_id,
                date,
                time,
                quantity,
                exc.remaining,
            )
            raise SlotUnavailableError(remaining=exc.remaining, requested=quantity) from exc

        logger.info(
            "Reservation created | booking_id=%s | resource_id=%s | date=%s | time=%s | quantity=%s",
            booking_id,
            resource_id,
            date,
            time,
            quantity,
        )
        return ReservationResult(
            booking_id=booking_id,
            quantity=quantity,
            status=BookingStatus.PENDING,
        )

    def update_status(self, booking_id: int, status: BookingStatus) -> BookingRecord:
        """Apply an admin status change.

        Re-confirming a booking whose seats were released goes through the
        same capacity check as a new reservation.
        """
        existing = self.get_booking(booking_id)
        capacity = self._capacity.resolve_capacity(existing.resource_id)
        try:
            updated = self._repository.update_booking_status(booking_id, status, capacity)
        except CapacityConflictError as exc:
            logger.warning(
                "Status change conflict | booking_id=%s | status=%s | requested=%s | remaining=%s",
                booking_id,
                status.value,
                exc.requested,
                exc.remaining,
            )
            raise SlotUnavailableError(remaining=exc.remaining, requested=exc.requested) from exc
        if not updated:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        record = self._repository.get_booking(booking_id)
        if record is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        logger.info("Booking status updated | booking_id=%s | status=%s", booking_id, status.value)
        return record

    def get_booking(self, booking_id: int) -> BookingRecord:
        record = self._repository.get_booking(booking_id)
        if record is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return record
