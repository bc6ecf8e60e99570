"""Typed errors raised by the ledger and token services.

Handlers map each kind to a transport status; messages never carry password
hashes or raw tokens.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error the core hands back to its callers."""

    default_message = "Ledger operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(LedgerError):
    default_message = "Not found"


class UserNotFoundError(NotFoundError):
    default_message = "User not found"


class TaskNotFoundError(NotFoundError):
    default_message = "Task not found"


class UserAlreadyExistsError(LedgerError):
    default_message = "User already exists"


class InvalidCredentialsError(LedgerError):
    default_message = "Invalid username or password"


class InvalidReferrerError(LedgerError):
    default_message = "Invalid referrer"


class ReferrerAlreadySetError(LedgerError):
    default_message = "User already has a referrer"


class TaskAlreadyCompletedError(LedgerError):
    default_message = "Task already completed"


class InvalidTokenError(LedgerError):
    default_message = "Invalid token"


class TokenInvalidOrRevokedError(LedgerError):
    default_message = "Token is invalid or revoked"


class TokenSigningError(LedgerError):
    default_message = "Failed to sign token"


class TransactionFailure(LedgerError):
    """Begin, commit or rollback of a store transaction failed."""

    default_message = "Transaction failed"


class StoreFailure(LedgerError):
    """A query against the store failed to execute."""

    default_message = "Store query failed"
