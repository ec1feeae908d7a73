"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, Optional

from groupbooking.domain.models import (
    BookingRecord,
    BookingStatus,
    DiscountConfig,
    DiscountType,
    PriceType,
    PricingMode,
    PricingTier,
    ResourceConfig,
    SlotOccupant,
    TierDraft,
)
from groupbooking.utils.config import Settings, get_settings
from groupbooking.utils.logger import get_logger


logger = get_logger(__name__)

Clock = Callable[[], datetime]


class StorageError(RuntimeError):
    """Raised when SQLite access fails; never means "no rows"."""


class CapacityConflictError(Exception):
    """Raised inside the booking transaction when the slot filled up."""

    def __init__(self, remaining: int, requested: int) -> None:
        super().__init__(
            f"Slot has {remaining} places left, {requested} requested"
        )
        self.remaining = remaining
        self.requested = requested


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(moment: datetime) -> str:
    """Fixed-width UTC text so stored timestamps compare correctly as strings."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _decimal_or_none(value: object) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def _bool_or_none(value: object) -> Optional[bool]:
    if value is None:
        return None
    return bool(int(value))


_OCCUPANCY_SQL = """
    SELECT COALESCE(SUM(COALESCE(quantity, 1)), 0) AS occupied
    FROM Bookings
    WHERE resource_id = ?
      AND date = ?
      AND time = ?
      AND (? IS NULL OR id != ?)
      AND (
            status IN ('accepted', 'confirmed')
            OR (status = 'pending' AND (? IS NULL OR created_at >= ?))
      );
"""


class DataRepository:
    """Encapsulates SQLite access so capacity and pricing logic stay storage-agnostic.

    Implements the tier store, the booking occupancy reader and the resource
    attribute lookups on top of one database file.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock or _utc_now

    @property
    def database_path(self) -> Path:
        return self._db_path

    @property
    def settings(self) -> Settings:
        return self._settings

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(
            self._db_path,
            timeout=self._settings.sqlite_timeout_seconds,
            isolation_level=None,
            check_same_thread=False,
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _session(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Yield a connection in autocommit mode and translate driver errors."""
        connection: sqlite3.Connection | None = None
        try:
            connection = self._connect()
            yield connection
        except sqlite3.Error as exc:
            logger.error("Storage failure | operation=%s | error=%s", operation, exc)
            raise StorageError(f"{operation} failed: {exc}") from exc
        finally:
            if connection is not None:
                connection.close()

    def _hold_cutoff(self) -> Optional[str]:
        ttl_minutes = self._settings.booking_hold_ttl_minutes
        if ttl_minutes <= 0:
            return None
        return _timestamp(self._clock() - timedelta(minutes=ttl_minutes))

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        with self._session("Database initialization") as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS Resources (
                    id INTEGER PRIMARY KEY,
                    name TEXT NOT NULL DEFAULT '',
                    base_price TEXT NOT NULL DEFAULT '0',
                    capacity INTEGER CHECK (capacity IS NULL OR capacity > 0),
                    pricing_mode TEXT,
                    group_enabled INTEGER,
                    min_quantity INTEGER,
                    max_quantity INTEGER,
                    discount_enabled INTEGER,
                    discount_min INTEGER,
                    discount_type TEXT,
                    discount_value TEXT
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS Bookings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    resource_id INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    time TEXT NOT NULL,
                    quantity INTEGER CHECK (quantity IS NULL OR quantity > 0),
                    status TEXT NOT NULL DEFAULT 'pending',
                    participants TEXT,
                    created_at TEXT NOT NULL
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS PricingTiers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    resource_id INTEGER NOT NULL,
                    min_quantity INTEGER NOT NULL,
                    max_quantity INTEGER NOT NULL,
                    price_type TEXT NOT NULL,
                    price TEXT NOT NULL,
                    discount_type TEXT,
                    discount_value TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (resource_id) REFERENCES Resources(id) ON DELETE CASCADE
                );
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_bookings_resource_slot
                ON Bookings(resource_id, date, time, status);
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_tiers_resource_min
                ON PricingTiers(resource_id, min_quantity);
                """
            )
        logger.info("Database initialized at %s", self._db_path)

    def seed_demo_data(self) -> None:
        """Seed a small catalogue of resources and tiers only when empty."""
        with self._session("Demo data seeding") as conn:
            count = int(conn.execute("SELECT COUNT(*) AS count FROM Resources;").fetchone()["count"])
            if count > 0:
                logger.info("Demo data already present; skipping seed")
                return

        self.upsert_resource(
            ResourceConfig(
                resource_id=1,
                name="Escape Room",
                base_price=Decimal("25.00"),
                capacity=8,
                pricing_mode=PricingMode.PER_PERSON,
                min_quantity=2,
                max_quantity=8,
            )
        )
        self.upsert_resource(
            ResourceConfig(
                resource_id=2,
                name="Private Dining Room",
                base_price=Decimal("400.00"),
                capacity=20,
                pricing_mode=PricingMode.FLAT_RATE,
            )
        )
        self.upsert_resource(
            ResourceConfig(
                resource_id=3,
                name="Pottery Workshop",
                base_price=Decimal("40.00"),
                capacity=30,
                pricing_mode=PricingMode.TIERED,
                max_quantity=30,
                discount=DiscountConfig(
                    enabled=True,
                    min_quantity=20,
                    discount_type=DiscountType.FIXED,
                    discount_value=Decimal("50.00"),
                ),
            )
        )
        self.add_tier(
            3,
            TierDraft(
                min_quantity=1,
                max_quantity=9,
                price_type=PriceType.PER_PERSON,
                price=Decimal("40.00"),
            ),
        )
        self.add_tier(
            3,
            TierDraft(
                min_quantity=10,
                max_quantity=30,
                price_type=PriceType.PER_PERSON,
                price=Decimal("32.00"),
                discount_type=DiscountType.PERCENTAGE,
                discount_value=Decimal("5"),
            ),
        )
        logger.info("Demo data seeded | resources=3 | tiers=2")

    # --- Resource attribute store ---

    def upsert_resource(self, config: ResourceConfig) -> None:
        discount = config.discount
        with self._session("Resource upsert") as conn:
            conn.execute(
                """
                INSERT INTO Resources (
                    id, name, base_price, capacity, pricing_mode, group_enabled,
                    min_quantity, max_quantity, discount_enabled, discount_min,
                    discount_type, discount_value
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    base_price = excluded.base_price,
                    capacity = excluded.capacity,
                    pricing_mode = excluded.pricing_mode,
                    group_enabled = excluded.group_enabled,
                    min_quantity = excluded.min_quantity,
                    max_quantity = excluded.max_quantity,
                    discount_enabled = excluded.discount_enabled,
                    discount_min = excluded.discount_min,
                    discount_type = excluded.discount_type,
                    discount_value = excluded.discount_value;
                """,
                (
                    config.resource_id,
                    config.name,
                    str(config.base_price),
                    config.capacity,
                    config.pricing_mode.value if config.pricing_mode else None,
                    None if config.group_enabled is None else int(config.group_enabled),
                    config.min_quantity,
                    config.max_quantity,
                    None if discount is None else int(discount.enabled),
                    None if discount is None else discount.min_quantity,
                    None if discount is None else discount.discount_type.value,
                    None if discount is None else str(discount.discount_value),
                ),
            )

    def get_resource_config(self, resource_id: int) -> Optional[ResourceConfig]:
        """Return typed resource overrides, or None for an unknown id."""
        with self._session("Resource lookup") as conn:
            row = conn.execute(
                "SELECT * FROM Resources WHERE id = ?;",
                (resource_id,),
            ).fetchone()
        if row is None:
            return None

        discount: Optional[DiscountConfig] = None
        if row["discount_enabled"] is not None:
            discount = DiscountConfig(
                enabled=bool(row["discount_enabled"]),
                min_quantity=row["discount_min"],
                discount_type=DiscountType(row["discount_type"] or DiscountType.PERCENTAGE.value),
                discount_value=_decimal_or_none(row["discount_value"]) or Decimal("0"),
            )
        return ResourceConfig(
            resource_id=int(row["id"]),
            name=str(row["name"]),
            base_price=Decimal(str(row["base_price"])),
            capacity=row["capacity"],
            pricing_mode=PricingMode(row["pricing_mode"]) if row["pricing_mode"] else None,
            group_enabled=_bool_or_none(row["group_enabled"]),
            min_quantity=row["min_quantity"],
            max_quantity=row["max_quantity"],
            discount=discount,
        )

    def resource_exists(self, resource_id: int) -> bool:
        with self._session("Resource lookup") as conn:
            row = conn.execute(
                "SELECT 1 FROM Resources WHERE id = ?;",
                (resource_id,),
            ).fetchone()
        return row is not None

    # --- Tier store ---

    def add_tier(self, resource_id: int, draft: TierDraft) -> int:
        """Insert a tier and return its id; validation is the caller's job."""
        with self._session("Tier insert") as conn:
            cursor = conn.execute(
                """
                INSERT INTO PricingTiers (
                    resource_id, min_quantity, max_quantity, price_type, price,
                    discount_type, discount_value, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    resource_id,
                    draft.min_quantity,
                    draft.max_quantity,
                    draft.price_type.value,
                    str(draft.price),
                    draft.discount_type.value if draft.discount_type else None,
                    None if draft.discount_value is None else str(draft.discount_value),
                    _timestamp(self._clock()),
                ),
            )
            tier_id = int(cursor.lastrowid)
        logger.info("Tier added | resource_id=%s | tier_id=%s", resource_id, tier_id)
        return tier_id

    def get_tiers(self, resource_id: int) -> list[PricingTier]:
        with self._session("Tier listing") as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM PricingTiers
                WHERE resource_id = ?
                ORDER BY min_quantity ASC, id ASC;
                """,
                (resource_id,),
            ).fetchall()
        return [self._row_to_tier(row) for row in rows]

    def find_matching_tier(self, resource_id: int, quantity: int) -> Optional[PricingTier]:
        """Return the lowest-min tier whose closed range contains quantity."""
        with self._session("Tier lookup") as conn:
            row = conn.execute(
                """
                SELECT *
                FROM PricingTiers
                WHERE resource_id = ?
                  AND min_quantity <= ?
                  AND max_quantity >= ?
                ORDER BY min_quantity ASC, id ASC
                LIMIT 1;
                """,
                (resource_id, quantity, quantity),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_tier(row)

    def delete_tier(self, tier_id: int) -> bool:
        with self._session("Tier delete") as conn:
            cursor = conn.execute("DELETE FROM PricingTiers WHERE id = ?;", (tier_id,))
            deleted = cursor.rowcount > 0
        logger.info("Tier delete | tier_id=%s | deleted=%s", tier_id, deleted)
        return deleted

    @staticmethod
    def _row_to_tier(row: sqlite3.Row) -> PricingTier:
        return PricingTier(
            tier_id=int(row["id"]),
            resource_id=int(row["resource_id"]),
            min_quantity=int(row["min_quantity"]),
            max_quantity=int(row["max_quantity"]),
            price_type=PriceType(row["price_type"]),
            price=Decimal(str(row["price"])),
            discount_type=DiscountType(row["discount_type"]) if row["discount_type"] else None,
            discount_value=_decimal_or_none(row["discount_value"]),
        )

    # --- Booking occupancy reader ---

    def get_slot_occupancy(self, resource_id: int, date: str, time: str) -> int:
        """Sum committed quantity for a slot; legacy rows without quantity count as 1."""
        cutoff = self._hold_cutoff()
        with self._session("Occupancy lookup") as conn:
            row = conn.execute(
                _OCCUPANCY_SQL,
                (resource_id, date, time, None, None, cutoff, cutoff),
            ).fetchone()
        return int(row["occupied"])

    def list_slot_occupants(self, resource_id: int, date: str, time: str) -> list[SlotOccupant]:
        with self._session("Occupant listing") as conn:
            rows = conn.execute(
                """
                SELECT id, COALESCE(quantity, 1) AS quantity, status
                FROM Bookings
                WHERE resource_id = ? AND date = ? AND time = ?
                ORDER BY id ASC;
                """,
                (resource_id, date, time),
            ).fetchall()
        return [
            SlotOccupant(
                booking_id=int(row["id"]),
                quantity=int(row["quantity"]),
                status=str(row["status"]),
            )
            for row in rows
        ]

    # --- Booking writes ---

    def create_booking(
        self,
        *,
        resource_id: int,
        date: str,
        time: str,
        quantity: Optional[int],
        status: BookingStatus = BookingStatus.PENDING,
        participants: Optional[list[str]] = None,
        created_at: Optional[datetime] = None,
    ) -> int:
        """Insert a booking without any capacity check (imports, fixtures)."""
        with self._session("Booking insert") as conn:
            cursor = conn.execute(
                """
                INSERT INTO Bookings (resource_id, date, time, quantity, status, participants, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    resource_id,
                    date,
                    time,
                    quantity,
                    status.value,
                    json.dumps(participants) if participants else None,
                    _timestamp(created_at or self._clock()),
                ),
            )
            return int(cursor.lastrowid)

    def create_booking_if_capacity(
        self,
        *,
        resource_id: int,
        date: str,
        time: str,
        quantity: int,
        capacity: int,
        participants: Optional[list[str]] = None,
    ) -> int:
        """Re-check occupancy and insert the booking inside one write transaction.

        BEGIN IMMEDIATE takes SQLite's reserved lock before the occupancy read,
        so two writers for the same slot are serialized and the second one sees
        the first one's booking.
        """
        cutoff = self._hold_cutoff()
        with self._session("Guarded booking insert") as conn:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                occupied = int(
                    conn.execute(
                        _OCCUPANCY_SQL,
                        (resource_id, date, time, None, None, cutoff, cutoff),
                    ).fetchone()["occupied"]
                )
                remaining = max(0, capacity - occupied)
                if remaining < quantity:
                    raise CapacityConflictError(remaining=remaining, requested=quantity)
                cursor = conn.execute(
                    """
                    INSERT INTO Bookings (resource_id, date, time, quantity, status, participants, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        resource_id,
                        date,
                        time,
                        quantity,
                        BookingStatus.PENDING.value,
                        json.dumps(participants) if participants else None,
                        _timestamp(self._clock()),
                    ),
                )
                booking_id = int(cursor.lastrowid)
                conn.execute("COMMIT;")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK;")
                raise
        return booking_id

    def get_booking(self, booking_id: int) -> Optional[BookingRecord]:
        with self._session("Booking lookup") as conn:
            row = conn.execute(
                "SELECT * FROM Bookings WHERE id = ?;",
                (booking_id,),
            ).fetchone()
        if row is None:
            return None
        return BookingRecord(
            booking_id=int(row["id"]),
            resource_id=int(row["resource_id"]),
            date=str(row["date"]),
            time=str(row["time"]),
            quantity=int(row["quantity"]) if row["quantity"] is not None else 1,
            status=str(row["status"]),
            participants=json.loads(row["participants"]) if row["participants"] else [],
        )

    def update_booking_status(
        self,
        booking_id: int,
        status: BookingStatus,
        capacity: int,
    ) -> bool:
        """Change a booking's status; False when the id does not exist.

        Moving a booking that no longer holds seats (cancelled, rejected or an
        expired pending hold) to accepted or confirmed re-checks the slot under
        the same write lock as a new reservation, excluding the booking itself.
        """
        cutoff = self._hold_cutoff()
        with self._session("Booking status update") as conn:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                row = conn.execute(
                    "SELECT * FROM Bookings WHERE id = ?;",
                    (booking_id,),
                ).fetchone()
                if row is None:
                    conn.execute("ROLLBACK;")
                    return False

                current = BookingStatus(row["status"])
                holds_seats = current in (BookingStatus.ACCEPTED, BookingStatus.CONFIRMED) or (
                    current is BookingStatus.PENDING
                    and (cutoff is None or str(row["created_at"]) >= cutoff)
                )
                if status in (BookingStatus.ACCEPTED, BookingStatus.CONFIRMED) and not holds_seats:
                    quantity = int(row["quantity"]) if row["quantity"] is not None else 1
                    occupied = int(
                        conn.execute(
                            _OCCUPANCY_SQL,
                            (
                                row["resource_id"],
                                row["date"],
                                row["time"],
                                booking_id,
                                booking_id,
                                cutoff,
                                cutoff,
                            ),
                        ).fetchone()["occupied"]
                    )
                    remaining = max(0, capacity - occupied)
                    if remaining < quantity:
                        raise CapacityConflictError(remaining=remaining, requested=quantity)

                conn.execute(
                    "UPDATE Bookings SET status = ? WHERE id = ?;",
                    (status.value, booking_id),
                )
                conn.execute("COMMIT;")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK;")
                raise
        return True
