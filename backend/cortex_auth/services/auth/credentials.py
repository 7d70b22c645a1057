"""Password hashing and verification with bcrypt."""

from __future__ import annotations

import bcrypt

DEFAULT_ROUNDS = 12
MAX_PASSWORD_BYTES = 72  # bcrypt only consumes the first 72 bytes


def _encode(password: str) -> bytes:
    # bcrypt>=5 rejects longer inputs instead of truncating them.
    return password.encode("utf-8")[:MAX_PASSWORD_BYTES]


class CredentialVerifier:
    """
    Slow, salted one-way password hashing.

    :param rounds: bcrypt work factor (log2 of the iteration count). Production
        uses 12; test suites may lower it to bcrypt's minimum of 4.
    :raises ValueError: If ``rounds`` is outside bcrypt's supported 4..31 range.
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """
        Hash a plaintext password.

        :param password: Plaintext password.
        :returns: bcrypt hash string (``$2b$<rounds>$...``, 60 characters).
        """
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(_encode(password), salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """
        Check a plaintext password against a stored hash.

        Malformed hashes verify as ``False`` instead of raising.
        """
        try:
            return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
        except (ValueError, TypeError, AttributeError):
            return False
