"""Password hashing service using bcrypt."""

import re

from passlib.context import CryptContext


class PasswordService:
    """Service for hashing and verifying passwords using bcrypt.

    Uses passlib's CryptContext for secure password hashing with
    automatic salt generation and configurable work factor.
    """

    def __init__(self, rounds: int = 12):
        """Initialize the password service.

        Args:
            rounds: bcrypt work factor (default 12, higher = slower + more secure)
        """
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, password: str) -> str:
        """Hash a password.

        Returns:
            Bcrypt hash string (includes algorithm, rounds, salt, and hash)
        """
        return self._context.hash(password)

    def verify(self, password: str, hash: str) -> bool:
        """Verify a password against a hash.

        Returns:
            True if password matches, False otherwise (including malformed hashes)
        """
        try:
            return self._context.verify(password, hash)
        except ValueError:
            return False

    def is_hashed(self, value: str) -> bool:
        """True when *value* is already a hash this service recognizes."""
        return self._context.identify(value) is not None

    @staticmethod
    def is_strong(password: str, pattern: str) -> bool:
        """Check *password* against the configured strength pattern."""
        return re.match(pattern, password) is not None
