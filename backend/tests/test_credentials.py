"""
Credential tests: passwords, bearer tokens, CSRF tokens and API keys.

Verifies:
- bcrypt hashes verify and reject the wrong password
- Tokens round-trip their claims; tampered/expired/foreign tokens are None
- CSRF tokens are bound to one user, expire, and are capped per user
- API keys validate, rotate onto a grace period and revoke immediately
"""

from datetime import datetime, timedelta

import jwt
import pytest

from cafe_api.errors import NotFoundError, ValidationError
from cafe_api.services import auth_service, token_service
from cafe_api.services.api_key_service import KEY_PREFIX, ApiKeyRegistry
from cafe_api.services.csrf_service import CsrfTokenRegistry


class FakeClock:
    def __init__(self, start=datetime(2024, 6, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


# =============================================================================
# PASSWORDS
# =============================================================================


class TestPasswords:

    def test_hash_and_verify(self, app):
        hashed = auth_service.hash_password("secret1")
        assert hashed != "secret1"
        assert auth_service.verify_password("secret1", hashed)
        assert not auth_service.verify_password("secret2", hashed)

    def test_short_password_rejected(self, app):
        with pytest.raises(ValidationError):
            auth_service.hash_password("abc")

    @pytest.mark.parametrize("password,stored", [("", "x"), ("secret1", ""), ("secret1", "not-a-bcrypt-hash")])
    def test_verify_degenerate_inputs(self, app, password, stored):
        assert auth_service.verify_password(password, stored) is False


# =============================================================================
# BEARER TOKENS
# =============================================================================


class TestBearerTokens:

    def test_round_trip(self, app):
        token = token_service.issue_token(7, "barista", "manager")
        identity = token_service.validate_token(token)
        assert identity.user_id == 7
        assert identity.username == "barista"
        assert identity.role == "manager"
        assert identity.is_manager and not identity.is_admin

    def test_expired_token(self, app):
        token = token_service.issue_token(7, "barista", "manager", expires_in=timedelta(seconds=-5))
        assert token_service.validate_token(token) is None

    def test_wrong_secret(self, app):
        forged = jwt.encode(
            {"sub": "1", "username": "admin", "role": "admin", "exp": datetime(2999, 1, 1)},
            "some-other-secret-that-is-long-enough-for-hs256",
            algorithm="HS256",
        )
        assert token_service.validate_token(forged) is None

    def test_tampered_token(self, app):
        token = token_service.issue_token(7, "barista", "user")
        head, body, sig = token.split(".")
        assert token_service.validate_token(f"{head}.{body}.{sig[::-1]}") is None

    @pytest.mark.parametrize("token", [None, "", "garbage", "a.b.c"])
    def test_garbage(self, app, token):
        assert token_service.validate_token(token) is None

    def test_missing_role_claim(self, app):
        token = jwt.encode(
            {"sub": "3", "username": "x", "exp": datetime(2999, 1, 1)},
            app.config["JWT_SECRET_KEY"],
            algorithm="HS256",
        )
        assert token_service.validate_token(token) is None


# =============================================================================
# CSRF REGISTRY
# =============================================================================


class TestCsrfRegistry:

    def test_token_bound_to_user(self):
        registry = CsrfTokenRegistry()
        token = registry.issue(1)
        assert registry.validate(token.token, 1)
        assert not registry.validate(token.token, 2)
        assert not registry.validate("unknown", 1)
        assert not registry.validate(None, 1)

    def test_expiry(self):
        clock = FakeClock()
        registry = CsrfTokenRegistry(ttl=timedelta(minutes=60), clock=clock)
        token = registry.issue(1)
        clock.advance(minutes=59)
        assert registry.validate(token.token, 1)
        clock.advance(minutes=1)
        assert not registry.validate(token.token, 1)
        assert registry.stats()["total_tokens"] == 0

    def test_cap_evicts_oldest(self):
        clock = FakeClock()
        registry = CsrfTokenRegistry(max_tokens_per_user=3, clock=clock)
        issued = []
        for _ in range(4):
            issued.append(registry.issue(1).token)
            clock.advance(seconds=1)

        assert not registry.validate(issued[0], 1)
        assert all(registry.validate(t, 1) for t in issued[1:])
        assert registry.stats()["active_tokens"] == 3

    def test_consume_is_single_use(self):
        registry = CsrfTokenRegistry()
        token = registry.issue(5).token
        assert registry.validate_and_consume(token, 5)
        assert not registry.validate_and_consume(token, 5)

    def test_revoke_user_tokens_and_cleanup(self):
        clock = FakeClock()
        registry = CsrfTokenRegistry(ttl=timedelta(minutes=10), clock=clock)
        registry.issue(1)
        registry.issue(1)
        registry.issue(2)
        assert registry.revoke_user_tokens(1) == 2

        clock.advance(minutes=11)
        assert registry.cleanup_expired() == 1

        stats = registry.stats()
        assert stats == {
            "total_tokens": 0,
            "active_tokens": 0,
            "expired_tokens": 0,
            "users_with_tokens": 0,
            "ttl_minutes": 10,
            "max_tokens_per_user": 10,
        }


# =============================================================================
# API KEY REGISTRY
# =============================================================================


class TestApiKeyRegistry:

    def test_generate_and_validate(self):
        registry = ApiKeyRegistry()
        key = registry.generate("zomato-sync", "Pulls orders nightly")
        assert key.key.startswith(KEY_PREFIX)
        assert len(key.key) == len(KEY_PREFIX) + 32
        assert registry.validate(key.key)
        assert registry.validate(key.key)
        assert registry.get(key.key).request_count == 2
        assert not registry.validate("cafe_unknown")

    def test_masked_by_default(self):
        registry = ApiKeyRegistry()
        key = registry.generate("svc")
        assert key.to_dict()["api_key"] != key.key
        assert key.to_dict()["api_key"].endswith(key.key[-4:])
        assert key.to_dict(reveal=True)["api_key"] == key.key

    def test_expired_key_deactivates(self):
        clock = FakeClock()
        registry = ApiKeyRegistry(ttl=timedelta(days=90), clock=clock)
        key = registry.generate("svc")
        clock.advance(days=90)
        assert not registry.validate(key.key)
        assert not registry.get(key.key).is_active

    def test_rotation_grace_period(self):
        clock = FakeClock()
        registry = ApiKeyRegistry(grace_period=timedelta(days=30), clock=clock)
        old = registry.generate("svc")

        new, deprecation_date = registry.rotate(old.key)
        assert new.key != old.key
        assert new.service_name == "svc"
        assert deprecation_date == clock.now + timedelta(days=30)

        # Old key keeps working through the grace period
        clock.advance(days=29)
        assert registry.validate(old.key)
        clock.advance(days=1)
        assert not registry.validate(old.key)
        assert registry.validate(new.key)

    def test_list_keys_newest_first(self):
        clock = FakeClock()
        registry = ApiKeyRegistry(clock=clock)
        first = registry.generate("first")
        clock.advance(minutes=1)
        second = registry.generate("second")
        assert [k.key for k in registry.list_keys()] == [second.key, first.key]

    def test_rotating_an_expired_key_is_refused(self):
        clock = FakeClock()
        registry = ApiKeyRegistry(ttl=timedelta(days=90), clock=clock)
        key = registry.generate("svc")
        clock.advance(days=100)

        with pytest.raises(ValidationError):
            registry.rotate(key.key)
        assert not registry.validate(key.key)
        assert len(registry.list_keys()) == 1

    def test_rotating_a_revoked_key_is_refused(self):
        registry = ApiKeyRegistry()
        key = registry.generate("svc")
        registry.revoke(key.key)

        with pytest.raises(ValidationError):
            registry.rotate(key.key)
        assert [k.is_active for k in registry.list_keys()] == [False]

    def test_grace_never_extends_original_expiry(self):
        clock = FakeClock()
        registry = ApiKeyRegistry(ttl=timedelta(days=90), grace_period=timedelta(days=30), clock=clock)
        key = registry.generate("svc")
        clock.advance(days=80)

        _, deprecation_date = registry.rotate(key.key)
        assert deprecation_date == key.expires_at
        clock.advance(days=10)
        assert not registry.validate(key.key)

    def test_rotate_unknown_key(self):
        with pytest.raises(NotFoundError):
            ApiKeyRegistry().rotate("cafe_nope")

    def test_revoke(self):
        registry = ApiKeyRegistry()
        key = registry.generate("svc")
        assert registry.revoke(key.key)
        assert not registry.validate(key.key)
        # Idempotent for known keys
        assert registry.revoke(key.key)
        assert not registry.revoke("cafe_never_issued")

    def test_rotation_needed_and_statistics(self):
        clock = FakeClock()
        registry = ApiKeyRegistry(ttl=timedelta(days=10), rotation_warning=timedelta(days=7), clock=clock)
        key = registry.generate("svc")
        assert registry.keys_needing_rotation() == []

        clock.advance(days=4)
        due = registry.keys_needing_rotation()
        assert [k.key for k in due] == [key.key]

        registry.generate("other")
        stats = registry.statistics()
        assert stats["total_keys"] == 2
        assert stats["active_keys"] == 2
        assert stats["keys_needing_rotation"] == 1
        assert len(stats["keys"]) == 2

    def test_cleanup_removes_revoked_and_expired(self):
        clock = FakeClock()
        registry = ApiKeyRegistry(ttl=timedelta(days=5), clock=clock)
        revoked = registry.generate("a")
        registry.revoke(revoked.key)
        registry.generate("b")
        clock.advance(days=6)
        registry.generate("c")
        assert registry.cleanup_expired() == 2
        assert registry.statistics()["total_keys"] == 1
