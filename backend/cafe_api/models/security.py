from __future__ import annotations

from ..extensions import db
from cafe_api.time_utils import to_utc_z


# Categories
AUTHENTICATION = "Authentication"
AUTHORIZATION = "Authorization"
DATA_ACCESS = "DataAccess"
DATA_MODIFICATION = "DataModification"
SECURITY = "Security"
ADMINISTRATION = "Administration"
API_USAGE = "ApiUsage"
FILE_OPERATION = "FileOperation"
CONFIGURATION = "Configuration"

CATEGORIES = (
    AUTHENTICATION, AUTHORIZATION, DATA_ACCESS, DATA_MODIFICATION, SECURITY,
    ADMINISTRATION, API_USAGE, FILE_OPERATION, CONFIGURATION,
)

# Severities
LOW = "Low"
MEDIUM = "Medium"
HIGH = "High"
CRITICAL = "Critical"

SEVERITIES = (LOW, MEDIUM, HIGH, CRITICAL)


class SecurityEvent(db.Model):
    """
    Security/audit event log.

    WHY: Track logins, denied requests, uploads and admin actions.
    Critical for detecting unauthorized access attempts and compliance;
    LOGIN_FAILED rows also drive login throttling.

    IMMUTABLE: Never update. Only the retention cleanup deletes rows.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_user_type", "user_id", "event_type"),
        db.Index("ix_security_events_username_type", "username", "event_type"),
        db.Index("ix_security_events_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)  # Nullable for anonymous
    username = db.Column(db.String(64), nullable=True)  # Login identifier as typed, for throttling
    outlet_id = db.Column(db.Integer, nullable=True)

    # Event classification
    category = db.Column(db.String(32), nullable=False, index=True)
    severity = db.Column(db.String(16), nullable=False, default=LOW)
    event_type = db.Column(db.String(64), nullable=False, index=True)  # LOGIN_FAILED, ACCESS_DENIED, API_KEY_ROTATED, ...
    resource = db.Column(db.String(255), nullable=True)  # e.g., "/api/inventory/3/stock-out"
    action = db.Column(db.String(64), nullable=True)     # e.g., "POST"

    # Event details
    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    # Client context
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.username,
            "outlet_id": self.outlet_id,
            "category": self.category,
            "severity": self.severity,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "occurred_at": to_utc_z(self.occurred_at),
        }
