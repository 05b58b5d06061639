"""
Login Throttling Service

WHY: Prevent brute-force password attacks by limiting failed login attempts.
After too many failures, the account is temporarily locked.

SECURITY FEATURES:
- Tracks failed attempts per username/email as typed
- Lockout after LOGIN_MAX_FAILED_ATTEMPTS failures within the lockout window
- Lockout duration: LOGIN_LOCKOUT_MINUTES, counted from the latest failure
- Uses security_events table for tracking
- A successful login resets the count
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SecurityEvent
from ..models.security import AUTHENTICATION, HIGH, LOW, MEDIUM
from . import audit_service
from cafe_api.time_utils import utcnow


LOGIN_FAILED = "LOGIN_FAILED"
LOGIN_SUCCESS = "LOGIN_SUCCESS"
LOGIN_LOCKED = "LOGIN_LOCKED"


def max_failed_attempts() -> int:
    return current_app.config.get("LOGIN_MAX_FAILED_ATTEMPTS", 5)


def lockout_window() -> timedelta:
    return timedelta(minutes=current_app.config.get("LOGIN_LOCKOUT_MINUTES", 15))


def _normalize(identifier: str) -> str:
    return (identifier or "").strip().lower()


def _last_success_at(identifier: str):
    last = db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == LOGIN_SUCCESS,
        SecurityEvent.username == identifier,
    ).order_by(SecurityEvent.occurred_at.desc()).first()
    return last.occurred_at if last else None


def get_recent_failed_attempts(identifier: str) -> int:
    """
    Count failed login attempts for a username/email within the lockout
    window, ignoring anything before the latest successful login.
    """
    identifier = _normalize(identifier)
    cutoff = utcnow() - lockout_window()
    last_success = _last_success_at(identifier)
    if last_success and last_success > cutoff:
        cutoff = last_success

    return db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == LOGIN_FAILED,
        SecurityEvent.username == identifier,
        SecurityEvent.occurred_at >= cutoff,
    ).count()


def is_account_locked(identifier: str) -> tuple[bool, int | None]:
    """
    Check if an account is currently locked due to too many failed attempts.

    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    identifier = _normalize(identifier)
    if get_recent_failed_attempts(identifier) < max_failed_attempts():
        return False, None

    most_recent = db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == LOGIN_FAILED,
        SecurityEvent.username == identifier,
    ).order_by(SecurityEvent.occurred_at.desc()).first()

    if most_recent:
        lockout_end = most_recent.occurred_at + lockout_window()
        now = utcnow()
        if now < lockout_end:
            return True, max(1, int((lockout_end - now).total_seconds()))

    return False, None


def record_failed_attempt(identifier: str, *, user_id: int | None = None, reason: str = "Invalid credentials") -> int:
    """
    Record a failed login attempt.

    Returns the total number of recent failed attempts.
    """
    identifier = _normalize(identifier)
    failed_before = get_recent_failed_attempts(identifier)
    severity = HIGH if failed_before + 1 >= max_failed_attempts() else MEDIUM
    audit_service.log_event(
        category=AUTHENTICATION,
        event_type=LOGIN_FAILED,
        success=False,
        severity=severity,
        user_id=user_id,
        username=identifier,
        reason=reason,
    )
    failed_count = failed_before + 1
    if failed_count >= max_failed_attempts():
        current_app.logger.warning("Login locked for %r after %d failed attempts", identifier, failed_count)
    return failed_count


def record_successful_login(user_id: int, identifier: str) -> None:
    audit_service.log_event(
        category=AUTHENTICATION,
        event_type=LOGIN_SUCCESS,
        success=True,
        severity=LOW,
        user_id=user_id,
        username=_normalize(identifier),
    )


def record_locked_attempt(identifier: str) -> None:
    audit_service.log_event(
        category=AUTHENTICATION,
        event_type=LOGIN_LOCKED,
        success=False,
        severity=HIGH,
        username=_normalize(identifier),
        reason="Login attempted while locked out",
    )


def get_lockout_status(identifier: str) -> dict:
    failed_count = get_recent_failed_attempts(identifier)
    is_locked, seconds_remaining = is_account_locked(identifier)
    window_minutes = int(lockout_window().total_seconds() / 60)

    return {
        "locked": is_locked,
        "failed_attempts": failed_count,
        "max_attempts": max_failed_attempts(),
        "seconds_until_unlock": seconds_remaining,
        "lockout_window_minutes": window_minutes,
        "lockout_duration_minutes": window_minutes,
    }
