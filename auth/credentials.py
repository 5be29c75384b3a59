"""
auth/credentials.py -- Password hashing and verification.

bcrypt is used directly (no passlib wrapper). Its cost factor makes offline
brute-force of low-entropy secrets expensive; the factor is a single
process-wide setting (BCRYPT_ROUNDS) so every digest in the DB is comparable.

Timing equalization: CredentialManager precomputes a dummy hash at the same
cost. SessionManager.login() verifies against it when the email is unknown,
so response time does not reveal whether an account exists.

Layer rule: no imports from api/ or storage/.
"""

from __future__ import annotations

import bcrypt

from core.errors import ValidationError

# bcrypt reads at most 72 bytes; newer releases reject longer input outright.
MAX_PASSWORD_BYTES = 72


class CredentialManager:
    """Hash and verify passwords with a fixed bcrypt cost factor.

    Usage:
        credentials = CredentialManager(rounds=10)
        digest = credentials.hash("pw123")
        credentials.verify("pw123", digest)   # True
    """

    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds
        self._dummy_hash = self.hash("foldervault_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a salted bcrypt digest of plain.

        Raises ValidationError if plain is longer than MAX_PASSWORD_BYTES once
        UTF-8 encoded. api/models.py rejects such input with 422 before it
        gets here.
        """
        encoded = plain.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, digest: str | None) -> bool:
        """Return True if plain matches digest. Never raises on a malformed digest."""
        if not digest:
            return False
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), digest.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def verify_dummy(self, plain: str) -> bool:
        """Burn one bcrypt check for an unknown account. Always returns False."""
        self.verify(plain, self._dummy_hash)
        return False
