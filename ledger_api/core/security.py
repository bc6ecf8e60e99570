"""Security helpers (password hashing, token fingerprints)."""

from __future__ import annotations

import hashlib
from functools import lru_cache

from argon2 import PasswordHasher, exceptions as argon_exc

_ph = PasswordHasher()


def hash_password(password: str) -> str:
    """Create a salted Argon2id hash (encoded string carries its own parameters)."""
    return _ph.hash(password)


@lru_cache
def _dummy_hash() -> str:
    return _ph.hash("ledger-dummy-password")


def verify_password(password: str, stored_hash: str | None) -> bool:
    """
    Check ``password`` against ``stored_hash``.

    A missing hash still costs one Argon2 verification, so callers answer
    unknown users in the same time as wrong passwords.
    """
    if not stored_hash:
        _verify(password, _dummy_hash())
        return False
    return _verify(password, stored_hash)


def _verify(password: str, stored_hash: str) -> bool:
    try:
        return _ph.verify(stored_hash, password)
    except (argon_exc.VerifyMismatchError, argon_exc.VerificationError, argon_exc.InvalidHashError):
        return False


def token_fingerprint(token: str | None) -> str:
    """Short, non-reversible identifier for a token, safe to put in logs."""
    if not token:
        return "-"
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:12]
