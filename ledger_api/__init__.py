"""User-account ledger backend: registration, referral and task rewards, session tokens."""

__version__ = "0.1.0"
