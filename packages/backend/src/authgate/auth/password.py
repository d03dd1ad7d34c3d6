"""Password hashing utilities.

Learn: Uses bcrypt for secure password hashing. bcrypt automatically
handles salting and is resistant to rainbow table attacks.
The work factor (rounds=12) takes ~100ms per hash on modern hardware.

OAuth-only accounts have no password hash. Verifying against "nothing"
still runs a full bcrypt check against a throwaway digest, so a login
attempt for such an account costs the same as a wrong password.
"""

from typing import Optional

import bcrypt

MIN_PASSWORD_LENGTH = 8

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


class HashingError(Exception):
    """Raised when bcrypt itself fails (bad salt, resource exhaustion)."""


class PasswordHasher:
    """bcrypt hash/verify with a configurable work factor."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds
        self._dummy_hash = bcrypt.hashpw(
            b"authgate-dummy-password", bcrypt.gensalt(rounds=rounds)
        )

    def hash(self, password: str) -> str:
        """Hash a password with bcrypt.

        Learn: bcrypt includes a random salt automatically and produces
        hashes starting with "$2b$". Passwords are truncated to 72 bytes
        (bcrypt's limit).
        """
        pw_bytes = password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
        try:
            salt = bcrypt.gensalt(rounds=self.rounds)
            return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")
        except (ValueError, TypeError, MemoryError) as e:
            raise HashingError(str(e)) from e

    def verify(self, password: str, password_hash: Optional[str]) -> bool:
        """Verify a password against its hash.

        A missing hash verifies as False after the same amount of work.
        A corrupt stored hash also verifies as False.
        """
        pw_bytes = password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
        if not password_hash:
            bcrypt.checkpw(pw_bytes, self._dummy_hash)
            return False
        try:
            return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
        except (ValueError, TypeError):
            return False
