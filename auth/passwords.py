"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

The work factor is a deployment parameter (BCRYPT_ROUNDS). Existing hashes
keep verifying after it changes -- the cost is stored inside each hash.
"""

from __future__ import annotations

import bcrypt

# bcrypt refuses (5.x) or silently truncates (4.x) anything longer.
MAX_PASSWORD_BYTES = 72


def password_fits(plain: str) -> bool:
    """True if plain encodes to at most MAX_PASSWORD_BYTES of UTF-8."""
    return len(plain.encode("utf-8")) <= MAX_PASSWORD_BYTES


class PasswordHasher:
    """Salted, slow one-way hashing for stored passwords."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Timing equalization dummy hash [C1]. Computed once so the first
        # unknown-email login is not measurably slower than later ones.
        self._dummy_hash = self.hash("passgate_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the given plaintext password.

        Callers check password_fits() first; AuthFlows rejects longer
        passwords with a 400 before they get here.
        """
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext password matches the bcrypt hash.

        checkpw compares in constant time. A malformed stored hash raises
        ValueError inside bcrypt; that is a mismatch, not a server error.
        """
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False

    def verify_dummy(self, plain: str) -> None:
        """Spend one full bcrypt check when there is no real hash to test [C1]."""
        self.verify(plain, self._dummy_hash)
