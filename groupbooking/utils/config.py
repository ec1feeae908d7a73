"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    admin_token: str | None
    admin_session_ttl_minutes: int
    sqlite_timeout_seconds: float
    booking_hold_ttl_minutes: int
    enable_quantity: bool
    default_min_quantity: int
    default_max_quantity: int
    pricing_mode: str
    group_discount_enable: bool
    group_discount_min: int
    group_discount_type: str
    group_discount_value: float
    currency_symbol: str
    time_slot_regex: str
    seed_demo_data: bool


def validate_settings(settings: Settings) -> None:
    if settings.default_min_quantity < 1:
        raise ValueError("default_min_quantity must be >= 1")
    if settings.default_max_quantity < settings.default_min_quantity:
        raise ValueError("default_max_quantity must be >= default_min_quantity")
    if settings.pricing_mode not in {"per_person", "flat_rate", "tiered"}:
        raise ValueError("pricing_mode must be one of per_person, flat_rate, tiered")
    if settings.group_discount_type not in {"percentage", "fixed"}:
        raise ValueError("group_discount_type must be percentage or fixed")
    if settings.group_discount_value < 0:
        raise ValueError("group_discount_value must be >= 0")
    if settings.booking_hold_ttl_minutes < 0:
        raise ValueError("booking_hold_ttl_minutes must be >= 0")
    if settings.sqlite_timeout_seconds <= 0:
        raise ValueError("sqlite_timeout_seconds must be > 0")
    if settings.admin_session_ttl_minutes < 1:
        raise ValueError("admin_session_ttl_minutes must be >= 1")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from the environment once per process."""
    settings = Settings(
        app_name=_env_str("APP_NAME", "Group Booking Engine"),
        app_version=_env_str("APP_VERSION", "1.0.0"),
        log_level=_env_str("LOG_LEVEL", "INFO"),
        database_path=Path(
            _env_str("DATABASE_PATH", str(PROJECT_ROOT / "data" / "group_booking.db"))
        ),
        admin_token=os.getenv("ADMIN_TOKEN") or None,
        admin_session_ttl_minutes=_env_int("ADMIN_SESSION_TTL_MINUTES", 480),
        sqlite_timeout_seconds=_env_float("SQLITE_TIMEOUT_SECONDS", 5.0),
        booking_hold_ttl_minutes=_env_int("BOOKING_HOLD_TTL_MINUTES", 15),
        enable_quantity=_env_bool("ENABLE_QUANTITY", True),
        default_min_quantity=_env_int("DEFAULT_MIN_QUANTITY", 1),
        default_max_quantity=_env_int("DEFAULT_MAX_QUANTITY", 10),
        pricing_mode=_env_str("PRICING_MODE", "per_person"),
        group_discount_enable=_env_bool("GROUP_DISCOUNT_ENABLE", False),
        group_discount_min=_env_int("GROUP_DISCOUNT_MIN", 5),
        group_discount_type=_env_str("GROUP_DISCOUNT_TYPE", "percentage"),
        group_discount_value=_env_float("GROUP_DISCOUNT_VALUE", 10.0),
        currency_symbol=_env_str("CURRENCY_SYMBOL", "$"),
        time_slot_regex=_env_str("TIME_SLOT_REGEX", r"^([01]\d|2[0-3]):[0-5]\d$"),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
    )
    validate_settings(settings)
    return settings
