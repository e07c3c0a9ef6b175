"""Password hashing utilities.

Learn: Uses bcrypt for secure password hashing. bcrypt automatically
handles salting and is resistant to rainbow table attacks.
The work factor (TASKHUB_BCRYPT_ROUNDS, default 12) takes ~100ms per
hash on modern hardware; tests turn it down.
"""

from functools import lru_cache
from typing import Optional

import bcrypt

from taskhub.config import settings


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Hash a password with bcrypt.

    Learn: bcrypt includes a random salt automatically and produces
    hashes starting with "$2b$". Passwords are truncated to 72 bytes
    (bcrypt's limit).
    """
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its bcrypt hash. Malformed hashes never match."""
    try:
        pw_bytes = password.encode("utf-8")[:72]
        return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


@lru_cache(maxsize=1)
def dummy_hash() -> str:
    """A throwaway hash at the configured cost.

    Learn: Checking a password against this when the email is unknown makes
    a failed login cost one bcrypt round-trip either way, so response time
    doesn't tell registered emails apart from unregistered ones.
    """
    return hash_password("taskhub-no-such-user")
