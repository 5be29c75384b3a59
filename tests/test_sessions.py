"""Unit tests for auth/credentials.py and auth/sessions.py -- session lifecycle.

Covers:
- bcrypt hashing and verification, including malformed digests and the
  72-byte limit on UTF-8 encoded passwords
- signup: Conflict on duplicate email, ValidationError on empty input
- login: unknown email and wrong password raise the same AuthFailure
- resolve(): Active -> Principal, expired -> None (and row removed)
- sliding expiry: resolve() pushes expires_at forward
- invalidate(): ends one session, idempotent, leaves other sessions alone
- sweep(): removes expired rows only
- stored session ids are keyed hashes, never the raw token
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.credentials import CredentialManager
from auth.sessions import SessionManager
from auth.store import UserStore
from core.errors import AuthFailure, Conflict, ValidationError

_KEY = "k" * 32

# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def credentials():
    return CredentialManager(rounds=4)


@pytest.fixture
def store():
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def manager(store, credentials):
    return SessionManager(store, credentials, secret_key=_KEY, ttl_seconds=60)


def _freeze(manager: SessionManager, when: datetime) -> None:
    manager._now = lambda: when


# ---------------------------------------------------------------------------
# CredentialManager
# ---------------------------------------------------------------------------


class TestCredentialManager:
    def test_hash_then_verify(self, credentials):
        digest = credentials.hash("pw123")
        assert digest != "pw123"
        assert credentials.verify("pw123", digest)
        assert not credentials.verify("pw124", digest)

    def test_same_password_gets_different_salts(self, credentials):
        assert credentials.hash("pw123") != credentials.hash("pw123")

    def test_malformed_digest_is_a_mismatch(self, credentials):
        assert credentials.verify("pw123", "not-a-bcrypt-digest") is False
        assert credentials.verify("pw123", "") is False
        assert credentials.verify("pw123", None) is False

    def test_password_over_72_bytes_rejected(self, credentials):
        # 40 characters, 80 bytes
        with pytest.raises(ValidationError):
            credentials.hash("\u00e9" * 40)

    def test_multibyte_password_at_72_bytes(self, credentials):
        digest = credentials.hash("\u00e9" * 36)
        assert credentials.verify("\u00e9" * 36, digest)

    def test_verify_overlong_password_is_a_mismatch(self, credentials):
        digest = credentials.hash("pw123")
        assert credentials.verify("\u00e9" * 40, digest) is False

    def test_dummy_check_never_succeeds(self, credentials):
        assert credentials.verify_dummy("foldervault_timing_dummy") is False


# ---------------------------------------------------------------------------
# Signup and login
# ---------------------------------------------------------------------------


class TestSignupLogin:
    def test_signup_returns_principal_and_active_session(self, manager):
        principal, session = manager.signup("a@x.com", "pw123")
        assert principal.email == "a@x.com"
        assert session.user_id == principal.id
        assert manager.resolve(session.token) == principal

    def test_signup_stores_hash_not_password(self, manager, store):
        manager.signup("a@x.com", "pw123")
        user = store.get_by_email("a@x.com")
        assert user.password_hash != "pw123"
        assert user.password_hash.startswith("$2")

    def test_duplicate_email_conflicts(self, manager):
        manager.signup("a@x.com", "pw123")
        with pytest.raises(Conflict):
            manager.signup("a@x.com", "other")

    def test_email_is_case_sensitive(self, manager):
        manager.signup("a@x.com", "pw123")
        principal, _ = manager.signup("A@x.com", "pw123")
        assert principal.email == "A@x.com"

    @pytest.mark.parametrize("email,password", [("", "pw123"), ("a@x.com", "")])
    def test_empty_input_rejected(self, manager, email, password):
        with pytest.raises(ValidationError):
            manager.signup(email, password)

    def test_login_issues_new_session(self, manager):
        principal, first = manager.signup("a@x.com", "pw123")
        second = manager.login("a@x.com", "pw123")
        assert second.token != first.token
        assert manager.resolve(second.token) == principal

    def test_unknown_email_and_wrong_password_fail_identically(self, manager):
        manager.signup("a@x.com", "pw123")
        with pytest.raises(AuthFailure) as unknown:
            manager.login("nobody@x.com", "pw123")
        with pytest.raises(AuthFailure) as wrong:
            manager.login("a@x.com", "wrong")
        assert str(unknown.value) == str(wrong.value) == "invalid credentials"
        assert unknown.value.code == wrong.value.code

    def test_concurrent_sessions_stay_valid(self, manager, store):
        principal, first = manager.signup("a@x.com", "pw123")
        second = manager.login("a@x.com", "pw123")
        assert store.count_sessions(principal.id) == 2
        assert manager.resolve(first.token) == principal
        assert manager.resolve(second.token) == principal


# ---------------------------------------------------------------------------
# Resolve, expiry, invalidate, sweep
# ---------------------------------------------------------------------------


class TestSessionLifecycle:
    def test_resolve_without_token(self, manager):
        assert manager.resolve(None) is None
        assert manager.resolve("") is None
        assert manager.resolve("never-issued") is None

    def test_stored_id_is_not_the_token(self, manager, store):
        _, session = manager.signup("a@x.com", "pw123")
        assert store.get_session(session.token) is None
        assert store.get_session(session.id) is not None
        assert len(session.id) == 64

    def test_expired_session_resolves_to_none_and_is_removed(self, manager, store):
        start = datetime(2030, 1, 1, tzinfo=timezone.utc)
        _freeze(manager, start)
        _, session = manager.signup("a@x.com", "pw123")

        _freeze(manager, start + timedelta(seconds=61))
        assert manager.resolve(session.token) is None
        assert store.get_session(session.id) is None

    def test_expiry_slides_on_resolve(self, manager):
        start = datetime(2030, 1, 1, tzinfo=timezone.utc)
        _freeze(manager, start)
        principal, session = manager.signup("a@x.com", "pw123")

        # Touch at 50s pushes expiry to 110s; still valid at 100s.
        _freeze(manager, start + timedelta(seconds=50))
        assert manager.resolve(session.token) == principal
        _freeze(manager, start + timedelta(seconds=100))
        assert manager.resolve(session.token) == principal

    def test_invalidate_is_idempotent(self, manager):
        _, session = manager.signup("a@x.com", "pw123")
        manager.invalidate(session.token)
        manager.invalidate(session.token)
        manager.invalidate(None)
        assert manager.resolve(session.token) is None

    def test_invalidate_leaves_other_sessions(self, manager):
        principal, first = manager.signup("a@x.com", "pw123")
        second = manager.login("a@x.com", "pw123")
        manager.invalidate(first.token)
        assert manager.resolve(first.token) is None
        assert manager.resolve(second.token) == principal

    def test_sweep_removes_only_expired(self, manager, store):
        start = datetime(2030, 1, 1, tzinfo=timezone.utc)
        _freeze(manager, start)
        principal, old = manager.signup("a@x.com", "pw123")
        _freeze(manager, start + timedelta(seconds=30))
        fresh = manager.login("a@x.com", "pw123")

        _freeze(manager, start + timedelta(seconds=75))
        assert manager.sweep() == 1
        assert store.get_session(old.id) is None
        assert store.count_sessions(principal.id) == 1
        assert manager.resolve(fresh.token) == principal

    def test_session_of_deleted_user_is_dropped(self, manager, store):
        _, session = manager.signup("a@x.com", "pw123")
        with store.engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
            conn.exec_driver_sql("DELETE FROM users")
            conn.commit()
        assert manager.resolve(session.token) is None
        assert store.get_session(session.id) is None
