"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct bcrypt usage is simpler and has no
compatibility shim.

The cost factor is deliberately expensive (12 rounds in production). That
latency is the brute-force throttle, not a performance bug. Callers run it on
FastAPI's threadpool (sync route handlers) so it never blocks the event loop.

Timing equalization [C1]: dummy_verify() runs a full-cost comparison against a
digest computed once at construction, so a login for an unknown email costs
the same as a login with a wrong password.
"""

from __future__ import annotations

import bcrypt


class PasswordHasher:
    """Salted, cost-parameterized one-way hashing of passwords."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._dummy_hash = self.hash("satsang_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt digest of plain. Input is limited to 72 bytes by validation."""
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str | None) -> bool:
        """Return True if plain matches the digest. Never raises."""
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            # Malformed digest, or a >72 byte password on bcrypt releases that reject it.
            return False

    def dummy_verify(self, plain: str) -> None:
        self.verify(plain, self._dummy_hash)
