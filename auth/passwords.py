"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection feeds bcrypt a password longer than 72 bytes, which bcrypt 4.x
rejects. Direct usage has no compatibility shim.

bcrypt only ever looks at the first 72 bytes of a password. Newer bcrypt
releases raise instead of truncating, so the input is truncated here
explicitly, identically for hash and verify. The API layer caps passwords at
255 characters.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import bcrypt

DEFAULT_COST = 12
MIN_COST = 4
MAX_COST = 31

_BCRYPT_MAX_BYTES = 72


def _normalize_cost(cost: int) -> int:
    if cost <= 0:
        return DEFAULT_COST
    if not MIN_COST <= cost <= MAX_COST:
        raise ValueError(f"bcrypt cost must be between {MIN_COST} and {MAX_COST}, got {cost}")
    return cost


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str, cost: int = DEFAULT_COST) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Empty and short passwords hash normally; length policy belongs to the
    caller. A cost of 0 or less selects DEFAULT_COST.
    """
    salt = bcrypt.gensalt(rounds=_normalize_cost(cost))
    return bcrypt.hashpw(_encode(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash is a mismatch, not an error.
    """
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except ValueError:
        return False
