"""bcrypt password hashing for the credential store.

The account database only ever stores the opaque string produced here.
"""

from __future__ import annotations

import logging
from functools import lru_cache

import bcrypt

logger = logging.getLogger(__name__)

BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash ``password`` with a fresh salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def is_hash(value: str) -> bool:
    """Report whether ``value`` looks like a bcrypt hash rather than a lock marker."""
    return value.startswith(BCRYPT_PREFIXES)


@lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> bytes:
    return bcrypt.hashpw(b"dummy", bcrypt.gensalt(rounds))


def check_password(password: str, hashed: str | None, rounds: int = 12) -> bool:
    """Check ``password`` against ``hashed``.

    A missing or locked entry still costs one bcrypt comparison so that
    callers cannot tell unknown users from wrong passwords by timing.
    """
    if hashed is None or not is_hash(hashed):
        if hashed and hashed.startswith("$") and hashed.count("$") >= 2:
            scheme = hashed.split("$")[1]
            logger.debug(f"Unsupported password hash scheme '${scheme}$', treating entry as locked")
        bcrypt.checkpw(password.encode("utf-8"), _dummy_hash(rounds))
        return False
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
