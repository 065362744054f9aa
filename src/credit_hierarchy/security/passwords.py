"""
Password hashing collaborator.

The core only talks to the `PasswordHasher` protocol; `BcryptPasswordHasher`
is the production implementation.
"""

from __future__ import annotations

import logging
from typing import Protocol

import bcrypt

logger = logging.getLogger(__name__)

# Bcrypt work factor
BCRYPT_ROUNDS = 12


class PasswordHasher(Protocol):
    def hash(self, plaintext: str) -> str: ...

    def verify(self, plaintext: str, digest: str) -> bool: ...


class BcryptPasswordHasher:
    def __init__(self, rounds: int = BCRYPT_ROUNDS) -> None:
        self._rounds = rounds

    def hash(self, plaintext: str) -> str:
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(plaintext.encode("utf-8"), salt).decode("utf-8")

    def verify(self, plaintext: str, digest: str) -> bool:
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), digest.encode("utf-8"))
        except ValueError as exc:
            # Malformed stored digest; treat as a non-match
            logger.error("Password verification failed: %s", exc)
            return False
