# Overview: Flask API routes for security administration; CSRF tokens, API keys and the audit log.

"""
Security Admin routes (admin only).

CSRF tokens and API keys live in the in-memory registries created by
create_app; the audit log is the security_events table. Key material is only
returned in full when a key is generated or rotated; listings mask it.
"""

from flask import Blueprint, Response, jsonify, request

from ..decorators import current_identity, require_admin
from ..errors import NotFoundError, ValidationError
from ..models.security import CATEGORIES, HIGH, MEDIUM, SECURITY, SEVERITIES
from ..services import api_key_service, audit_service, csrf_service
from ..validation import choice_field, datetime_field, get_json_payload, int_field, query_int, text_field
from cafe_api.time_utils import to_utc_z


security_bp = Blueprint("security", __name__, url_prefix="/api/security")

EXPORT_MIMETYPES = {"json": "application/json", "csv": "text/csv"}


def _audit(event_type: str, *, severity: str = MEDIUM, reason: str | None = None) -> None:
    identity = current_identity()
    audit_service.log_event(
        category=SECURITY,
        event_type=event_type,
        success=True,
        severity=severity,
        user_id=identity.user_id,
        username=identity.username,
        reason=reason,
    )


# ---------------------------------------------------------------------------
# CSRF tokens
# ---------------------------------------------------------------------------

@security_bp.post("/csrf-token")
@require_admin
def issue_csrf_token_route():
    token = csrf_service.get_registry().issue(current_identity().user_id)
    return jsonify(token.to_dict()), 201


@security_bp.post("/csrf-token/validate")
@require_admin
def validate_csrf_token_route():
    """Body: {"token", "user_id"?}; user_id defaults to the caller."""
    data = get_json_payload()
    token = text_field(data, "token", required=True)
    user_id = int_field(data, "user_id", minimum=1, default=current_identity().user_id)
    return jsonify({"valid": csrf_service.get_registry().validate(token, user_id)})


@security_bp.delete("/csrf-tokens/user/<int:user_id>")
@require_admin
def revoke_user_csrf_tokens_route(user_id: int):
    revoked = csrf_service.get_registry().revoke_user_tokens(user_id)
    _audit("CSRF_TOKENS_REVOKED", reason=f"user {user_id}: {revoked} tokens")
    return jsonify({"message": f"Revoked {revoked} tokens", "revoked": revoked})


@security_bp.post("/csrf-tokens/cleanup")
@require_admin
def cleanup_csrf_tokens_route():
    removed = csrf_service.get_registry().cleanup_expired()
    return jsonify({"message": f"Removed {removed} expired tokens", "removed": removed})


@security_bp.get("/csrf-tokens/stats")
@require_admin
def csrf_stats_route():
    return jsonify(csrf_service.get_registry().stats())


# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------

def _key_from_body() -> str:
    return text_field(get_json_payload(), "api_key", required=True)


@security_bp.post("/api-keys")
@require_admin
def generate_api_key_route():
    data = get_json_payload()
    registry = api_key_service.get_registry()
    key = registry.generate(
        text_field(data, "service_name", required=True, max_length=64),
        text_field(data, "description", max_length=255),
    )
    _audit("API_KEY_GENERATED", reason=key.service_name)
    return jsonify({
        "message": "Store this key now; it will not be shown again",
        **key.to_dict(reveal=True, warning_days=registry.rotation_warning_days),
    }), 201


@security_bp.get("/api-keys")
@require_admin
def list_api_keys_route():
    return jsonify(api_key_service.get_registry().statistics())


@security_bp.get("/api-keys/rotation-needed")
@require_admin
def rotation_needed_route():
    registry = api_key_service.get_registry()
    days = query_int("days", minimum=0, maximum=365)
    keys = registry.keys_needing_rotation(days)
    return jsonify([key.to_dict(warning_days=registry.rotation_warning_days) for key in keys])


@security_bp.post("/api-keys/rotate")
@require_admin
def rotate_api_key_route():
    registry = api_key_service.get_registry()
    new_key, deprecation_date = registry.rotate(_key_from_body())
    _audit("API_KEY_ROTATED", severity=HIGH, reason=new_key.service_name)
    return jsonify({
        "message": "API key rotated",
        "new_key": new_key.to_dict(reveal=True, warning_days=registry.rotation_warning_days),
        "old_key_expires_at": to_utc_z(deprecation_date),
    })


@security_bp.post("/api-keys/revoke")
@require_admin
def revoke_api_key_route():
    api_key = _key_from_body()
    if not api_key_service.get_registry().revoke(api_key):
        raise NotFoundError("API key not found")
    _audit("API_KEY_REVOKED", severity=HIGH, reason=f"{api_key[:10]}...")
    return jsonify({"message": "API key revoked"})


@security_bp.post("/api-keys/validate")
@require_admin
def validate_api_key_route():
    return jsonify({"valid": api_key_service.get_registry().validate(_key_from_body())})


@security_bp.post("/api-keys/cleanup")
@require_admin
def cleanup_api_keys_route():
    removed = api_key_service.get_registry().cleanup_expired()
    return jsonify({"message": f"Removed {removed} expired or revoked keys", "removed": removed})


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

def _event_filters() -> dict:
    args = request.args
    return {
        "category": choice_field(args, "category", CATEGORIES, case_insensitive=True),
        "severity": choice_field(args, "severity", SEVERITIES, case_insensitive=True),
        "user_id": int_field(args, "user_id", minimum=1),
        "event_type": text_field(args, "event_type", max_length=64),
        "start": datetime_field(args, "start"),
        "end": datetime_field(args, "end"),
        "limit": query_int("limit", default=audit_service.DEFAULT_QUERY_LIMIT, minimum=1,
                           maximum=audit_service.MAX_QUERY_LIMIT),
    }


@security_bp.get("/audit-logs")
@require_admin
def audit_logs_route():
    events = audit_service.query_events(**_event_filters())
    return jsonify([event.to_dict() for event in events])


@security_bp.get("/audit-logs/alerts")
@require_admin
def audit_alerts_route():
    hours = query_int("hours", default=24, minimum=1, maximum=24 * 30)
    return jsonify([event.to_dict() for event in audit_service.security_alerts(hours=hours)])


@security_bp.get("/audit-logs/export")
@require_admin
def audit_export_route():
    fmt = (request.args.get("format") or "json").lower()
    if fmt not in EXPORT_MIMETYPES:
        raise ValidationError("format must be json or csv")
    events = audit_service.query_events(**_event_filters())
    body = audit_service.export_events(events, fmt)
    return Response(
        body,
        mimetype=EXPORT_MIMETYPES[fmt],
        headers={"Content-Disposition": f"attachment; filename=audit_logs.{fmt}"},
    )


@security_bp.get("/audit-logs/stats")
@require_admin
def audit_stats_route():
    hours = query_int("hours", default=24, minimum=1, maximum=24 * 30)
    return jsonify(audit_service.event_statistics(hours=hours))
