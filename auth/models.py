"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in storage/models.py -- dataclasses own domain shape; stores and services do
the work.

Layer rule: no imports from api/ or storage/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered account.

    email is unique and compared case-sensitively, exactly as stored.
    password_hash is a bcrypt digest; it must never leave the auth layer.
    Outward projections go through Principal (or the API's UserResponse),
    which carry id and email only.
    """

    email: str
    password_hash: str
    id: int | None = None
    created_at: str | None = None

    def principal(self) -> Principal:
        return Principal(id=self.id, email=self.email)


@dataclass
class Session:
    """A server-side login session.

    id is HMAC-SHA256(SECRET_KEY, token). The raw token only exists in memory
    at issue time (token field) and in the client's cookie -- a leaked DB does
    not yield usable session tokens.
    """

    user_id: int
    expires_at: str  # ISO 8601, UTC
    id: str | None = None
    created_at: str | None = None
    token: str | None = None  # set only on the Session returned by issue()


@dataclass(frozen=True)
class Principal:
    """Minimal authenticated identity attached to a request."""

    id: int
    email: str
