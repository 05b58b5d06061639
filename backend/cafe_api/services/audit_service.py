# Overview: Service-layer operations for the audit log; write, query, alert and export.

"""
Audit Service

WHY: Immutable audit log for compliance and security monitoring. Logins,
denied requests, uploads, credential changes and admin actions are written
to security_events with a category and severity so admins can filter,
spot alerts and export.

event_type examples:
- LOGIN_SUCCESS / LOGIN_FAILED / LOGIN_LOCKED
- ACCESS_DENIED / OUTLET_ACCESS_DENIED
- USER_REGISTERED / ROLE_CHANGED / USER_STATUS_CHANGED
- API_KEY_GENERATED / API_KEY_ROTATED / API_KEY_REVOKED
- CSRF_TOKEN_ISSUED
- FILE_UPLOADED
"""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime, timedelta

from flask import has_request_context, request

from ..errors import ValidationError
from ..extensions import db
from ..models import SecurityEvent
from ..models.security import (
    AUTHENTICATION,
    AUTHORIZATION,
    CATEGORIES,
    CRITICAL,
    HIGH,
    LOW,
    SECURITY,
    SEVERITIES,
)
from cafe_api.time_utils import utcnow


EXPORT_FORMATS = ("json", "csv")
DEFAULT_QUERY_LIMIT = 100
MAX_QUERY_LIMIT = 1000

_EXPORT_COLUMNS = (
    "id", "occurred_at", "category", "severity", "event_type", "success",
    "user_id", "username", "outlet_id", "resource", "action", "reason", "ip_address",
)


def log_event(
    *,
    category: str,
    event_type: str,
    success: bool,
    severity: str = LOW,
    user_id: int | None = None,
    username: str | None = None,
    outlet_id: int | None = None,
    reason: str | None = None,
    resource: str | None = None,
    action: str | None = None,
    commit: bool = True,
) -> SecurityEvent:
    """
    Append one event. Request path, method, client IP and user agent are
    filled in from the active request when not given.
    """
    if category not in CATEGORIES:
        raise ValueError(f"Unknown audit category: {category}")
    if severity not in SEVERITIES:
        raise ValueError(f"Unknown audit severity: {severity}")

    ip_address = None
    user_agent = None
    if has_request_context():
        resource = resource or request.path
        action = action or request.method
        ip_address = request.remote_addr
        user_agent = (request.headers.get("User-Agent") or "")[:512] or None

    event = SecurityEvent(
        user_id=user_id,
        username=username,
        outlet_id=outlet_id,
        category=category,
        severity=severity,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    if commit:
        db.session.commit()
    return event


def query_events(
    *,
    category: str | None = None,
    severity: str | None = None,
    user_id: int | None = None,
    event_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = DEFAULT_QUERY_LIMIT,
) -> list[SecurityEvent]:
    if category is not None and category not in CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(CATEGORIES)}")
    if severity is not None and severity not in SEVERITIES:
        raise ValidationError(f"severity must be one of: {', '.join(SEVERITIES)}")

    q = db.session.query(SecurityEvent)
    if category:
        q = q.filter(SecurityEvent.category == category)
    if severity:
        q = q.filter(SecurityEvent.severity == severity)
    if user_id is not None:
        q = q.filter(SecurityEvent.user_id == user_id)
    if event_type:
        q = q.filter(SecurityEvent.event_type == event_type)
    if start:
        q = q.filter(SecurityEvent.occurred_at >= start)
    if end:
        q = q.filter(SecurityEvent.occurred_at <= end)

    limit = max(1, min(limit, MAX_QUERY_LIMIT))
    return q.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).limit(limit).all()


def security_alerts(*, hours: int = 24) -> list[SecurityEvent]:
    """
    High/critical events plus failed authentication, authorization and
    security events within the window, newest first.
    """
    cutoff = utcnow() - timedelta(hours=hours)
    return (
        db.session.query(SecurityEvent)
        .filter(SecurityEvent.occurred_at >= cutoff)
        .filter(
            db.or_(
                SecurityEvent.severity.in_((HIGH, CRITICAL)),
                db.and_(
                    SecurityEvent.success.is_(False),
                    SecurityEvent.category.in_((AUTHENTICATION, AUTHORIZATION, SECURITY)),
                ),
            )
        )
        .order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc())
        .all()
    )


def event_statistics(*, hours: int = 24) -> dict:
    cutoff = utcnow() - timedelta(hours=hours)
    rows = (
        db.session.query(SecurityEvent.category, SecurityEvent.severity, SecurityEvent.success, db.func.count())
        .filter(SecurityEvent.occurred_at >= cutoff)
        .group_by(SecurityEvent.category, SecurityEvent.severity, SecurityEvent.success)
        .all()
    )
    by_category: dict[str, int] = {}
    by_severity: dict[str, int] = {}
    failures = 0
    total = 0
    for category, severity, success, count in rows:
        by_category[category] = by_category.get(category, 0) + count
        by_severity[severity] = by_severity.get(severity, 0) + count
        total += count
        if not success:
            failures += count
    return {
        "window_hours": hours,
        "total_events": total,
        "failed_events": failures,
        "by_category": by_category,
        "by_severity": by_severity,
    }


def export_events(events: list[SecurityEvent], fmt: str) -> str:
    """Serialize events as a JSON array or a CSV document with a header row."""
    fmt = (fmt or "json").lower()
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"format must be one of: {', '.join(EXPORT_FORMATS)}")

    rows = [event.to_dict() for event in events]
    if fmt == "json":
        return json.dumps(rows, indent=2)

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=_EXPORT_COLUMNS, extrasaction="ignore")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def cleanup_events(*, retention_days: int = 90) -> int:
    """Delete events older than retention_days."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete()
    db.session.commit()
    return deleted
