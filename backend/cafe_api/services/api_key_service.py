# Overview: In-memory API key registry for service-to-service callers.

"""
API Key Registry

Keys look like "cafe_" + 32 alphanumerics and expire after API_KEY_TTL_DAYS.

ROTATION: rotate() issues a replacement and puts the old key on a grace
period (deprecated_at = now, expires_at = now + API_KEY_GRACE_DAYS, never later
than its original expiry) so callers can roll over without downtime. Revoked
and expired keys cannot be rotated.

REVOCATION: revoke() deactivates immediately and is idempotent.

Like the CSRF registry this is process-lifetime storage guarded by a lock;
it lives on app.extensions["api_key_registry"].
"""

from __future__ import annotations

import secrets
import string
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable

from flask import current_app

from ..errors import NotFoundError, ValidationError
from cafe_api.time_utils import to_utc_z, utcnow


KEY_PREFIX = "cafe_"
KEY_RANDOM_LENGTH = 32
_ALPHABET = string.ascii_letters + string.digits


@dataclass
class ApiKey:
    key: str
    service_name: str
    description: str | None
    created_at: datetime
    expires_at: datetime
    last_used_at: datetime | None = None
    is_active: bool = True
    request_count: int = 0
    deprecated_at: datetime | None = None
    revoked_at: datetime | None = None

    @property
    def masked_key(self) -> str:
        return f"{self.key[:10]}...{self.key[-4:]}"

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def days_until_expiry(self, now: datetime) -> int:
        return (self.expires_at - now).days

    def to_dict(self, *, now: datetime | None = None, reveal: bool = False, warning_days: int = 7) -> dict:
        now = now or utcnow()
        days_left = self.days_until_expiry(now)
        return {
            "api_key": self.key if reveal else self.masked_key,
            "service_name": self.service_name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "is_active": self.is_active,
            "request_count": self.request_count,
            "deprecated_at": to_utc_z(self.deprecated_at),
            "revoked_at": to_utc_z(self.revoked_at),
            "days_until_expiry": days_left,
            "needs_rotation": self.is_active and days_left <= warning_days,
        }


class ApiKeyRegistry:
    def __init__(
        self,
        *,
        ttl: timedelta = timedelta(days=90),
        rotation_warning: timedelta = timedelta(days=7),
        grace_period: timedelta = timedelta(days=30),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._ttl = ttl
        self._rotation_warning = rotation_warning
        self._grace_period = grace_period
        self._clock = clock
        self._keys: dict[str, ApiKey] = {}
        self._lock = threading.Lock()

    @property
    def rotation_warning_days(self) -> int:
        return self._rotation_warning.days

    def generate(self, service_name: str, description: str | None = None) -> ApiKey:
        now = self._clock()
        with self._lock:
            return self._generate_locked(service_name, description, now)

    def validate(self, key: str | None) -> bool:
        """
        True for a known, active, unexpired key; records the use.

        An expired key is deactivated on first sight.
        """
        if not key:
            return False
        now = self._clock()
        with self._lock:
            entry = self._keys.get(key)
            if entry is None or not entry.is_active:
                return False
            if entry.is_expired(now):
                entry.is_active = False
                return False
            entry.last_used_at = now
            entry.request_count += 1
            return True

    def rotate(self, old_key: str) -> tuple[ApiKey, datetime]:
        now = self._clock()
        with self._lock:
            old = self._keys.get(old_key)
            if old is None:
                raise NotFoundError("API key not found")
            if not old.is_active:
                raise ValidationError("API key is revoked and cannot be rotated")
            if old.is_expired(now):
                old.is_active = False
                raise ValidationError("API key has expired and cannot be rotated")

            new = self._generate_locked(old.service_name, f"Rotated from {old.key[:10]}...", now)
            deprecation_date = min(old.expires_at, now + self._grace_period)
            old.deprecated_at = now
            old.expires_at = deprecation_date
            return new, deprecation_date

    def revoke(self, key: str) -> bool:
        """Deactivate immediately. False only when the key was never issued."""
        now = self._clock()
        with self._lock:
            entry = self._keys.get(key)
            if entry is None:
                return False
            if entry.is_active:
                entry.is_active = False
                entry.revoked_at = now
            return True

    def get(self, key: str) -> ApiKey | None:
        with self._lock:
            entry = self._keys.get(key)
            return replace(entry) if entry else None

    def list_keys(self) -> list[ApiKey]:
        """Snapshot copies, newest first."""
        with self._lock:
            keys = [replace(k) for k in self._keys.values()]
        return sorted(keys, key=lambda k: k.created_at, reverse=True)

    def keys_needing_rotation(self, threshold_days: int | None = None) -> list[ApiKey]:
        now = self._clock()
        threshold = timedelta(days=threshold_days) if threshold_days is not None else self._rotation_warning
        with self._lock:
            due = [
                replace(k) for k in self._keys.values()
                if k.is_active and k.deprecated_at is None and k.expires_at - now <= threshold
            ]
        return sorted(due, key=lambda k: k.expires_at)

    def cleanup_expired(self) -> int:
        """Drop keys that are expired or were revoked; returns how many."""
        now = self._clock()
        with self._lock:
            doomed = [value for value, k in self._keys.items() if k.is_expired(now) or not k.is_active]
            for value in doomed:
                del self._keys[value]
            return len(doomed)

    def statistics(self) -> dict:
        now = self._clock()
        with self._lock:
            keys = list(self._keys.values())
            active = [k for k in keys if k.is_active and not k.is_expired(now)]
            return {
                "total_keys": len(keys),
                "active_keys": len(active),
                "inactive_keys": len(keys) - len(active),
                "deprecated_keys": sum(1 for k in keys if k.deprecated_at is not None),
                "keys_needing_rotation": sum(
                    1 for k in active if k.deprecated_at is None and k.expires_at - now <= self._rotation_warning
                ),
                "total_requests": sum(k.request_count for k in keys),
                "keys": [
                    k.to_dict(now=now, warning_days=self._rotation_warning.days)
                    for k in sorted(keys, key=lambda k: k.created_at, reverse=True)
                ],
            }

    def _generate_locked(self, service_name: str, description: str | None, now: datetime) -> ApiKey:
        value = _new_key_value()
        while value in self._keys:
            value = _new_key_value()
        entry = ApiKey(
            key=value,
            service_name=service_name,
            description=description,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._keys[value] = entry
        return replace(entry)


def _new_key_value() -> str:
    return KEY_PREFIX + "".join(secrets.choice(_ALPHABET) for _ in range(KEY_RANDOM_LENGTH))


def create_registry(config) -> ApiKeyRegistry:
    return ApiKeyRegistry(
        ttl=timedelta(days=config.get("API_KEY_TTL_DAYS", 90)),
        rotation_warning=timedelta(days=config.get("API_KEY_ROTATION_WARNING_DAYS", 7)),
        grace_period=timedelta(days=config.get("API_KEY_GRACE_DAYS", 30)),
    )


def get_registry() -> ApiKeyRegistry:
    return current_app.extensions["api_key_registry"]
