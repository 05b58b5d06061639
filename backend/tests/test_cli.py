"""
Flask CLI commands: bootstrap, user creation and audit cleanup.
"""

from datetime import timedelta

from cafe_api.extensions import db
from cafe_api.models import Outlet, SecurityEvent, User
from cafe_api.services import outlet_service
from cafe_api.time_utils import utcnow


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init", "--outlet-code", "HQ01"])
    assert first.exit_code == 0, first.output
    assert "DONE Cafe backend initialized" in first.output

    second = runner.invoke(args=["system", "init", "--outlet-code", "HQ01"])
    assert second.exit_code == 0
    assert "already exists" in second.output

    assert db.session.query(Outlet).filter_by(code="HQ01").count() == 1
    admin = db.session.query(User).filter_by(username="admin").one()
    assert admin.role == "admin"
    assert outlet_service.get_assigned_outlet_ids(admin.id) == {admin.default_outlet_id}


def test_users_create_and_list(app, db_session, outlet_a):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "users", "create",
        "--username", "barista",
        "--email", "barista@cafe.test",
        "--password", "brew-123",
        "--role", "manager",
        "--outlet-id", str(outlet_a.id),
    ])
    assert "PASS Created user: barista" in result.output

    listing = runner.invoke(args=["users", "list", "--role", "manager"])
    assert "barista" in listing.output


def test_users_create_unknown_outlet(app, db_session):
    result = app.test_cli_runner().invoke(args=[
        "users", "create",
        "--username", "ghost",
        "--email", "ghost@cafe.test",
        "--password", "brew-123",
        "--role", "user",
        "--outlet-id", "999",
    ])
    assert "FAIL Outlet ID 999 not found" in result.output
    assert db.session.query(User).filter_by(username="ghost").count() == 0


def test_cleanup_audit_events(app, db_session):
    now = utcnow()
    db_session.add_all([
        SecurityEvent(category="Security", severity="Low", event_type="OLD", success=True,
                      occurred_at=now - timedelta(days=120)),
        SecurityEvent(category="Security", severity="Low", event_type="NEW", success=True, occurred_at=now),
    ])
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-audit-events", "--retention-days", "90"])
    assert "Deleted 1 audit events" in result.output
    assert [e.event_type for e in db.session.query(SecurityEvent).all()] == ["NEW"]
