"""Bearer session tokens bound to registered users."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import RLock
from typing import Optional

from backend.repository.data_repository import DataRepository
from backend.utils.clock import utc_now
from backend.utils.config import Settings, get_settings


class AuthenticationError(Exception):
    """Base authentication failure."""


class UnknownUserError(AuthenticationError):
    """Raised when logging in with an unregistered email."""


class InvalidSessionTokenError(AuthenticationError):
    """Raised when provided token is invalid."""


@dataclass(frozen=True)
class _Session:
    user_id: int
    expires_at: datetime


class AuthService:
    """Issues opaque session tokens and resolves them back to user ids.

    Tokens expire after ``session_ttl_minutes``; a user keeps at most
    ``max_sessions_per_user`` live tokens, the oldest being revoked first.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._sessions: dict[str, _Session] = {}
        self._lock = RLock()

    def login(self, email: str) -> tuple[str, int]:
        user = self._repository.get_user_by_email(email.strip().lower())
        if user is None:
            raise UnknownUserError("No user registered with that email")
        token = secrets.token_urlsafe(self._settings.session_token_bytes)
        now = utc_now()
        with self._lock:
            self._purge_expired(now)
            # Insertion order is issue order.
            user_tokens = [
                existing
                for existing, session in self._sessions.items()
                if session.user_id == user.user_id
            ]
            excess = len(user_tokens) - max(self._settings.max_sessions_per_user, 1) + 1
            for existing in user_tokens[: max(excess, 0)]:
                del self._sessions[existing]
            self._sessions[token] = _Session(
                user_id=user.user_id,
                expires_at=now + timedelta(minutes=self._settings.session_ttl_minutes),
            )
        return token, user.user_id

    def resolve_bearer_token(self, bearer_token: str) -> int:
        with self._lock:
            session = self._sessions.get(bearer_token)
            if session is not None and utc_now() >= session.expires_at:
                del self._sessions[bearer_token]
                session = None
        if session is None:
            raise InvalidSessionTokenError("Invalid or expired bearer token")
        return session.user_id

    def logout(self, bearer_token: str) -> None:
        with self._lock:
            self._sessions.pop(bearer_token, None)

    def _purge_expired(self, now: datetime) -> None:
        expired = [token for token, session in self._sessions.items() if now >= session.expires_at]
        for token in expired:
            del self._sessions[token]
