"""Admin token authentication for pricing tier and resource management."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Optional

from groupbooking.utils.config import Settings, get_settings
from groupbooking.utils.logger import get_logger


logger = get_logger(__name__)


class AuthenticationError(Exception):
    """Base authentication failure."""


class AdminTokenNotConfiguredError(AuthenticationError):
    """Raised when ADMIN_TOKEN is missing."""


class InvalidAdminTokenError(AuthenticationError):
    """Raised when provided token is invalid."""


class AuthService:
    """Exchanges the configured admin token for expiring bearer sessions.

    Sessions live in process memory; several admins may be logged in at once.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sessions: dict[str, datetime] = {}
        self._lock = Lock()

    @property
    def auth_enabled(self) -> bool:
        return bool(self._settings.admin_token)

    def login(self, provided_admin_token: str) -> str:
        if not self._settings.admin_token:
            raise AdminTokenNotConfiguredError(
                "ADMIN_TOKEN is not configured. Set ADMIN_TOKEN in environment variables."
            )
        if not secrets.compare_digest(provided_admin_token, self._settings.admin_token):
            logger.warning("Admin login rejected")
            raise InvalidAdminTokenError("Invalid admin token")

        session_token = secrets.token_urlsafe(32)
        expires_at = self._clock() + timedelta(minutes=self._settings.admin_session_ttl_minutes)
        with self._lock:
            self._purge_expired()
            self._sessions[session_token] = expires_at
        logger.info("Admin session opened | active_sessions=%s", len(self._sessions))
        return session_token

    def logout(self, bearer_token: str) -> None:
        with self._lock:
            self._sessions.pop(bearer_token, None)

    def validate_bearer_token(self, bearer_token: str) -> None:
        if not self.auth_enabled:
            return
        with self._lock:
            self._purge_expired()
            active = any(secrets.compare_digest(bearer_token, token) for token in self._sessions)
        if not active:
            raise InvalidAdminTokenError("Invalid or expired bearer token. Login first.")

    def _purge_expired(self) -> None:
        now = self._clock()
        for token in [token for token, expires_at in self._sessions.items() if expires_at <= now]:
            del self._sessions[token]
