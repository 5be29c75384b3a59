"""
auth/sessions.py -- Session lifecycle: signup, login, issue, resolve, invalidate, sweep.

State machine per session:

    Unauthenticated --login/signup--> Active --logout--> LoggedOut
                                        |
                                        +--expiry------> Expired

Tokens: secrets.token_urlsafe(32) (256 bits). The store keeps
HMAC-SHA256(SECRET_KEY, token) as the session id, the same keyed-hash scheme
used for any long-lived bearer credential: O(1) lookup, and a copy of the DB
alone cannot be replayed as cookies.

Expiry is sliding: resolve() pushes expires_at forward on every successful
call. resolve() always checks expiry itself; sweep() is housekeeping only.

A user may hold any number of concurrent sessions. Issuing a new one never
invalidates the others.

Layer rule: no imports from api/ or storage/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from auth.credentials import CredentialManager
from auth.models import Principal, Session, User
from auth.store import UserStore
from core.errors import AuthFailure, Conflict, ValidationError

logger = logging.getLogger("foldervault.auth")


def _iso(dt: datetime) -> str:
    # Fixed precision keeps stored timestamps lexicographically comparable.
    return dt.isoformat(timespec="microseconds")


class SessionManager:
    """Issue, validate and expire sessions backed by an injected UserStore.

    Usage:
        manager = SessionManager(store, CredentialManager(), secret_key=key)
        principal, session = manager.signup("a@x.com", "pw123")
        session = manager.login("a@x.com", "pw123")
        manager.resolve(session.token)      # Principal(id=1, email="a@x.com")
        manager.invalidate(session.token)
    """

    def __init__(
        self,
        store: UserStore,
        credentials: CredentialManager,
        secret_key: str,
        ttl_seconds: int = 24 * 60 * 60,
    ) -> None:
        self.store = store
        self.credentials = credentials
        self.ttl_seconds = ttl_seconds
        self._secret_key = secret_key.encode("utf-8")

    # ------------------------------------------------------------------
    # Clock -- overridden in tests
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _session_id(self, token: str) -> str:
        return hmac.new(self._secret_key, token.encode("utf-8"), hashlib.sha256).hexdigest()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def signup(self, email: str, password: str) -> tuple[Principal, Session]:
        """Create an account and log it in.

        Raises ValidationError for an empty email or password and Conflict if
        the email is already registered.
        """
        if not email or not password:
            raise ValidationError("Email and password are required.")
        user = User(email=email, password_hash=self.credentials.hash(password))
        try:
            user.id = self.store.create_user(user)
        except IntegrityError as exc:
            raise Conflict("An account with that email already exists.") from exc
        logger.info("User %d signed up", user.id)
        return user.principal(), self.issue(user)

    def login(self, email: str, password: str) -> Session:
        """Verify credentials and issue a session.

        Unknown email and wrong password raise the same AuthFailure. bcrypt
        runs in both branches so timing does not separate them either.
        """
        user = self.store.get_by_email(email)
        if user is None:
            self.credentials.verify_dummy(password)
            logger.info("Login failed")
            raise AuthFailure()
        if not self.credentials.verify(password, user.password_hash):
            logger.info("Login failed")
            raise AuthFailure()
        return self.issue(user)

    def issue(self, user: User) -> Session:
        """Create a new Active session for user and return it with its raw token."""
        token = secrets.token_urlsafe(32)
        now = self._now()
        session = Session(
            id=self._session_id(token),
            user_id=user.id,
            expires_at=_iso(now + timedelta(seconds=self.ttl_seconds)),
            created_at=_iso(now),
            token=token,
        )
        self.store.create_session(session)
        logger.info("Session issued for user %d", user.id)
        return session

    def resolve(self, token: str | None) -> Principal | None:
        """Return the Principal behind token, or None if it is absent, unknown or expired."""
        if not token:
            return None
        session_id = self._session_id(token)
        session = self.store.get_session(session_id)
        if session is None:
            return None
        now = self._now()
        if session.expires_at <= _iso(now):
            self.store.delete_session(session_id)
            return None
        user = self.store.get_by_id(session.user_id)
        if user is None:
            self.store.delete_session(session_id)
            return None
        self.store.touch_session(session_id, _iso(now + timedelta(seconds=self.ttl_seconds)))
        return user.principal()

    def invalidate(self, token: str | None) -> None:
        """End the session behind token. Unknown or already-ended sessions are ignored."""
        if not token:
            return
        if self.store.delete_session(self._session_id(token)):
            logger.info("Session invalidated")

    def sweep(self) -> int:
        """Delete every expired session. Returns the number removed."""
        removed = self.store.purge_expired_sessions(_iso(self._now()))
        if removed:
            logger.info("Session sweep removed %d expired session(s)", removed)
        return removed
