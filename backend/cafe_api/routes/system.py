# Overview: Flask API routes for system health; reports database and credential-registry status.

"""
System health endpoint.

Checks the database and the in-memory credential registries so a load
balancer or uptime check can tell a degraded instance from a dead one.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import MenuItem, Outlet, User
from ..services import api_key_service, csrf_service
from cafe_api.time_utils import utcnow


system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """Connectivity plus a couple of cheap counts."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        details = {
            "outlets": db.session.query(Outlet).count(),
            "users": db.session.query(User).count(),
            "menu_items": db.session.query(MenuItem).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


def check_credential_registries() -> dict:
    if "csrf_registry" not in current_app.extensions or "api_key_registry" not in current_app.extensions:
        return {"status": "unhealthy", "error": "Credential registries not initialised"}

    csrf_stats = csrf_service.get_registry().stats()
    key_stats = api_key_service.get_registry().statistics()
    return {
        "status": "healthy",
        "details": {
            "csrf_active_tokens": csrf_stats.get("active_tokens", 0),
            "api_keys_active": key_stats.get("active_keys", 0),
        },
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy
    - 503: one or more checks unhealthy
    """
    start_time = time.time()
    database_health = check_database_health()
    registry_health = check_credential_registries()

    all_checks = [database_health, registry_health]
    healthy = all(check["status"] == "healthy" for check in all_checks)

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "credential_registries": registry_health,
        },
    }
    return response, 200 if healthy else 503
