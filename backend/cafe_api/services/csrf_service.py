# Overview: In-memory CSRF token registry shared by all request threads.

"""
CSRF Token Registry

WHY: Admin consoles fetch a short-lived token and echo it back on
state-changing calls. Issue/validate must not cost a database round-trip.

Tokens live only for the life of the process; a restart simply means clients
request a new one. One registry per app, created in create_app and stored on
app.extensions["csrf_registry"].

SECURITY:
- 32 random bytes per token (secrets.token_urlsafe), re-drawn on collision
- A token only validates for the user it was issued to, and only before expiry
- At most max_tokens_per_user live tokens per user; the oldest is evicted
"""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from flask import current_app

from cafe_api.time_utils import to_utc_z, utcnow


@dataclass
class CsrfToken:
    token: str
    user_id: int
    issued_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "user_id": self.user_id,
            "issued_at": to_utc_z(self.issued_at),
            "expires_at": to_utc_z(self.expires_at),
        }


class CsrfTokenRegistry:
    def __init__(
        self,
        *,
        ttl: timedelta = timedelta(minutes=60),
        max_tokens_per_user: int = 10,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._ttl = ttl
        self._max_tokens_per_user = max_tokens_per_user
        self._clock = clock
        self._tokens: dict[str, CsrfToken] = {}
        self._lock = threading.Lock()

    def issue(self, user_id: int) -> CsrfToken:
        now = self._clock()
        with self._lock:
            self._purge_expired_locked(now)

            owned = sorted(
                (t for t in self._tokens.values() if t.user_id == user_id),
                key=lambda t: t.issued_at,
            )
            while len(owned) >= self._max_tokens_per_user:
                oldest = owned.pop(0)
                del self._tokens[oldest.token]

            value = secrets.token_urlsafe(32)
            while value in self._tokens:
                value = secrets.token_urlsafe(32)

            token = CsrfToken(token=value, user_id=user_id, issued_at=now, expires_at=now + self._ttl)
            self._tokens[value] = token
            return token

    def validate(self, token: str | None, user_id: int) -> bool:
        """True only for a known, unexpired token issued to user_id."""
        if not token:
            return False
        now = self._clock()
        with self._lock:
            entry = self._tokens.get(token)
            if entry is None:
                return False
            if entry.is_expired(now):
                del self._tokens[token]
                return False
            return entry.user_id == user_id

    def validate_and_consume(self, token: str | None, user_id: int) -> bool:
        """Single-use variant: a valid token is removed as it is accepted."""
        if not token:
            return False
        now = self._clock()
        with self._lock:
            entry = self._tokens.get(token)
            if entry is None:
                return False
            if entry.is_expired(now):
                del self._tokens[token]
                return False
            if entry.user_id != user_id:
                return False
            del self._tokens[token]
            return True

    def revoke(self, token: str) -> bool:
        with self._lock:
            return self._tokens.pop(token, None) is not None

    def revoke_user_tokens(self, user_id: int) -> int:
        with self._lock:
            doomed = [value for value, t in self._tokens.items() if t.user_id == user_id]
            for value in doomed:
                del self._tokens[value]
            return len(doomed)

    def cleanup_expired(self) -> int:
        now = self._clock()
        with self._lock:
            return self._purge_expired_locked(now)

    def stats(self) -> dict:
        now = self._clock()
        with self._lock:
            active = [t for t in self._tokens.values() if not t.is_expired(now)]
            return {
                "total_tokens": len(self._tokens),
                "active_tokens": len(active),
                "expired_tokens": len(self._tokens) - len(active),
                "users_with_tokens": len({t.user_id for t in active}),
                "ttl_minutes": int(self._ttl.total_seconds() // 60),
                "max_tokens_per_user": self._max_tokens_per_user,
            }

    def _purge_expired_locked(self, now: datetime) -> int:
        expired = [value for value, t in self._tokens.items() if t.is_expired(now)]
        for value in expired:
            del self._tokens[value]
        return len(expired)


def create_registry(config) -> CsrfTokenRegistry:
    return CsrfTokenRegistry(
        ttl=timedelta(minutes=config.get("CSRF_TOKEN_TTL_MINUTES", 60)),
        max_tokens_per_user=config.get("CSRF_MAX_TOKENS_PER_USER", 10),
    )


def get_registry() -> CsrfTokenRegistry:
    return current_app.extensions["csrf_registry"]
