"""
Pytest fixtures for the cafe backend tests.

Provides an in-memory database, the test client, two outlets and one user
per role with ready-made Authorization headers.
"""

import pytest

from cafe_api import create_app
from cafe_api.extensions import db
from cafe_api.models import MenuItem
from cafe_api.models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLE_USER
from cafe_api.services import api_key_service, auth_service, csrf_service, outlet_service, token_service


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'JWT_SECRET_KEY': 'test-jwt-secret-0123456789abcdef0123456789',
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh tables and fresh credential registries for each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        app.extensions["csrf_registry"] = csrf_service.create_registry(app.config)
        app.extensions["api_key_registry"] = api_key_service.create_registry(app.config)

        yield db.session

        db.session.rollback()


# =============================================================================
# OUTLETS
# =============================================================================

@pytest.fixture(scope='function')
def outlet_a(db_session):
    return outlet_service.create_outlet({"name": "Koramangala", "code": "KRM01"}, created_by="tests")


@pytest.fixture(scope='function')
def outlet_b(db_session):
    return outlet_service.create_outlet({"name": "Indiranagar", "code": "IND01"}, created_by="tests")


# =============================================================================
# USERS
# =============================================================================

def _make_user(username, role, outlet_ids=(), default_outlet_id=None):
    user = auth_service.create_user(
        username,
        f"{username}@cafe.test",
        TEST_PASSWORD,
        role=role,
    )
    if outlet_ids or default_outlet_id:
        outlet_service.set_user_outlets(user.id, list(outlet_ids), default_outlet_id=default_outlet_id)
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, outlet_a):
    """Admin whose default outlet is outlet A."""
    return _make_user("admin", ROLE_ADMIN, [outlet_a.id], default_outlet_id=outlet_a.id)


@pytest.fixture(scope='function')
def manager_user(db_session, outlet_a):
    """Manager assigned to outlet A only."""
    return _make_user("manager", ROLE_MANAGER, [outlet_a.id], default_outlet_id=outlet_a.id)


@pytest.fixture(scope='function')
def customer_user(db_session):
    """Self-registered customer with no outlet assignment."""
    return _make_user("customer", ROLE_USER)


def get_auth_token(client, username, password=TEST_PASSWORD):
    """Log in through the API and return the bearer token."""
    resp = client.post("/api/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["token"]


def auth_headers(token, outlet_id=None):
    headers = {"Authorization": f"Bearer {token}"}
    if outlet_id is not None:
        headers["X-Outlet-Id"] = str(outlet_id)
    return headers


def _headers_for(user):
    return auth_headers(token_service.issue_token(user.id, user.username, user.role))


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return _headers_for(admin_user)


@pytest.fixture(scope='function')
def manager_headers(manager_user):
    return _headers_for(manager_user)


@pytest.fixture(scope='function')
def customer_headers(customer_user):
    return _headers_for(customer_user)


# =============================================================================
# MENU
# =============================================================================

@pytest.fixture(scope='function')
def menu_items(db_session, outlet_a):
    """Two items at outlet A: Cappuccino (Rs 150) and Brownie (Rs 90)."""
    coffee = MenuItem(outlet_id=outlet_a.id, name="Cappuccino", price_cents=15000, is_available=True)
    brownie = MenuItem(outlet_id=outlet_a.id, name="Brownie", price_cents=9000, is_available=True)
    db_session.add_all([coffee, brownie])
    db_session.commit()
    return coffee, brownie


# =============================================================================
# EXPENSE TYPES
# =============================================================================

@pytest.fixture(scope='function')
def expense_types(db_session):
    """Default offline and online expense type catalogues."""
    from cafe_api.services import expense_type_service

    expense_type_service.initialize_defaults("Offline")
    expense_type_service.initialize_defaults("Online")
