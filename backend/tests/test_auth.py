"""
Authentication flow tests.

Verifies:
- register -> login -> authenticated call works end to end
- Duplicate usernames/emails are 409, bad input is 400
- Repeated failures lock the identifier with a 429 and Retry-After
- Deactivated accounts cannot log in
- Password change requires the current password
"""

import pytest

from conftest import TEST_PASSWORD, auth_headers, get_auth_token
from cafe_api.extensions import db
from cafe_api.models import SecurityEvent, User


def _register(client, username="latte_lover", email="latte@example.com", password="secret1"):
    return client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": password},
    )


# =============================================================================
# REGISTER / LOGIN
# =============================================================================


class TestRegisterAndLogin:

    def test_register_login_and_fetch_orders(self, client, db_session):
        resp = _register(client)
        assert resp.status_code == 201
        assert resp.get_json() == {
            "message": "User registered successfully",
            "username": "latte_lover",
            "email": "latte@example.com",
        }

        login = client.post("/api/auth/login", json={"username": "latte_lover", "password": "secret1"})
        assert login.status_code == 200
        body = login.get_json()
        assert body["role"] == "user"
        assert body["expires_in"] == 24 * 3600
        assert body["user"]["username"] == "latte_lover"

        orders = client.get("/api/orders/my", headers=auth_headers(body["token"]))
        assert orders.status_code == 200
        assert orders.get_json() == []

    def test_self_registration_is_always_a_customer(self, client, db_session):
        resp = client.post(
            "/api/auth/register",
            json={"username": "sneaky", "email": "s@example.com", "password": "secret1", "role": "admin"},
        )
        assert resp.status_code == 201
        assert db.session.query(User).filter_by(username="sneaky").one().role == "user"

    def test_login_by_email_case_insensitive(self, client, db_session):
        _register(client)
        resp = client.post("/api/auth/login", json={"email": "LATTE@example.com", "password": "secret1"})
        assert resp.status_code == 200

    @pytest.mark.parametrize(
        "username,email",
        [("latte_lover", "other@example.com"), ("LATTE_LOVER", "other@example.com"), ("someone", "LATTE@example.com")],
    )
    def test_duplicates_conflict(self, client, db_session, username, email):
        assert _register(client).status_code == 201
        resp = _register(client, username=username, email=email)
        assert resp.status_code == 409

    @pytest.mark.parametrize(
        "payload",
        [
            {"username": "ab", "email": "a@example.com", "password": "secret1"},
            {"username": "valid_name", "email": "not-an-email", "password": "secret1"},
            {"username": "valid_name", "email": "a@example.com", "password": "12345"},
            {"username": "bad name!", "email": "a@example.com", "password": "secret1"},
            {"email": "a@example.com", "password": "secret1"},
        ],
    )
    def test_invalid_registration(self, client, db_session, payload):
        resp = client.post("/api/auth/register", json=payload)
        assert resp.status_code == 400
        assert "error" in resp.get_json()

    def test_non_json_body(self, client, db_session):
        resp = client.post("/api/auth/register", data="username=x", content_type="text/plain")
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Request body must be JSON"}

    def test_unknown_user_and_wrong_password_look_the_same(self, client, customer_user):
        unknown = client.post("/api/auth/login", json={"username": "ghost", "password": "whatever"})
        wrong = client.post("/api/auth/login", json={"username": "customer", "password": "wrong-pass"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.get_json() == wrong.get_json()

    def test_me_and_validate(self, client, customer_user):
        token = get_auth_token(client, "customer")
        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.get_json()["email"] == "customer@cafe.test"

        validated = client.post("/api/auth/validate", headers=auth_headers(token))
        assert validated.get_json()["user"]["username"] == "customer"


# =============================================================================
# LOCKOUT
# =============================================================================


class TestLoginLockout:

    def test_fifth_failure_locks(self, client, customer_user):
        for _ in range(4):
            resp = client.post("/api/auth/login", json={"username": "customer", "password": "nope-nope"})
            assert resp.status_code == 401

        fifth = client.post("/api/auth/login", json={"username": "customer", "password": "nope-nope"})
        assert fifth.status_code == 429
        assert int(fifth.headers["Retry-After"]) > 0

        # Even the right password is refused while locked
        locked = client.post("/api/auth/login", json={"username": "customer", "password": TEST_PASSWORD})
        assert locked.status_code == 429

        events = db.session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED", username="customer").count()
        assert events == 5

    def test_lockout_is_per_identifier_and_case_insensitive(self, client, customer_user, admin_user):
        for _ in range(5):
            client.post("/api/auth/login", json={"username": "CUSTOMER", "password": "nope-nope"})

        status = client.get("/api/auth/lockout-status/customer").get_json()
        assert status["locked"] is True
        assert status["failed_attempts"] == 5

        assert client.post("/api/auth/login", json={"username": "admin", "password": TEST_PASSWORD}).status_code == 200

    def test_success_resets_the_count(self, client, customer_user):
        for _ in range(3):
            client.post("/api/auth/login", json={"username": "customer", "password": "nope-nope"})
        get_auth_token(client, "customer")

        for _ in range(3):
            resp = client.post("/api/auth/login", json={"username": "customer", "password": "nope-nope"})
            assert resp.status_code == 401


# =============================================================================
# ACCOUNT STATE
# =============================================================================


class TestAccountState:

    def test_deactivated_user_cannot_log_in(self, client, customer_user):
        customer_user.is_active = False
        db.session.commit()
        resp = client.post("/api/auth/login", json={"username": "customer", "password": TEST_PASSWORD})
        assert resp.status_code == 403
        assert resp.get_json() == {"error": "Account is deactivated"}

    def test_change_password(self, client, customer_user):
        token = get_auth_token(client, "customer")
        wrong = client.post(
            "/api/auth/change-password",
            json={"current_password": "not-it", "new_password": "brand-new-1"},
            headers=auth_headers(token),
        )
        assert wrong.status_code == 401

        ok = client.post(
            "/api/auth/change-password",
            json={"current_password": TEST_PASSWORD, "new_password": "brand-new-1"},
            headers=auth_headers(token),
        )
        assert ok.status_code == 200
        assert client.post(
            "/api/auth/login", json={"username": "customer", "password": "brand-new-1"}
        ).status_code == 200

    def test_verify_admin(self, client, admin_headers, customer_headers):
        assert client.get("/api/auth/verify-admin", headers=admin_headers).get_json()["is_admin"] is True
        assert client.get("/api/auth/verify-admin", headers=customer_headers).status_code == 403
