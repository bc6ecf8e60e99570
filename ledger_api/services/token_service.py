"""Session tokens: issue signed JWTs, validate them, revoke them on logout.

A token is trusted only when both layers agree: the HS256 signature and `exp`
claim check out, and the persisted record exists, is unexpired and has not been
revoked. The signature alone cannot reflect a logout.
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from ledger_api.core.config import get_settings
from ledger_api.core.logging import get_logger
from ledger_api.core.security import token_fingerprint
from ledger_api.domain.errors import InvalidTokenError, TokenInvalidOrRevokedError, TokenSigningError
from ledger_api.repositories.base import TokenRepository
from ledger_api.repositories.sql_repository import SQLTokenRepository

log = get_logger(__name__)

ALGORITHM = "HS256"


@dataclass
class IssuedToken:
    token: str
    expires_at: datetime


@dataclass
class TokenService:
    repository: TokenRepository = field(default_factory=SQLTokenRepository)
    secret_key: Optional[str] = None
    ttl_seconds: Optional[int] = None

    def __post_init__(self):
        settings = get_settings()
        if self.secret_key is None:
            self.secret_key = settings.auth_secret_key
        if self.ttl_seconds is None:
            self.ttl_seconds = settings.token_ttl_seconds
        if not self.secret_key:
            raise RuntimeError("AUTH_SECRET_KEY must be configured to issue session tokens.")

    def generate_token(self, user_id: int) -> IssuedToken:
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=self.ttl_seconds)
        claims = {
            "user_id": user_id,
            "exp": expires_at,
            "iat": now,
            # two logins within the same second must still yield distinct tokens
            "jti": secrets.token_hex(8),
        }
        try:
            token = jwt.encode(claims, self.secret_key, algorithm=ALGORITHM)
        except (jwt.PyJWTError, TypeError, ValueError) as exc:
            log.error("token.sign_failed", user_id=user_id, error=str(exc))
            raise TokenSigningError() from exc

        self.repository.store_token(user_id, token, expires_at)
        log.info("token.issued", user_id=user_id, token=token_fingerprint(token), expires_at=expires_at.isoformat())
        return IssuedToken(token=token, expires_at=expires_at)

    def validate_token(self, token: str) -> int:
        fingerprint = token_fingerprint(token)
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "user_id"]},
            )
        except jwt.InvalidTokenError as exc:
            log.warning("token.invalid", token=fingerprint, reason=type(exc).__name__)
            raise InvalidTokenError() from exc

        user_id = claims.get("user_id")
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            log.warning("token.invalid_claims", token=fingerprint)
            raise InvalidTokenError("Invalid user id in token")

        if not self.repository.is_token_valid(token):
            log.warning("token.revoked_or_unknown", token=fingerprint, user_id=user_id)
            raise TokenInvalidOrRevokedError()

        log.debug("token.validated", token=fingerprint, user_id=user_id)
        return user_id

    def revoke_token(self, token: str) -> bool:
        """Idempotent: unknown or already revoked tokens return False instead of failing."""
        revoked = self.repository.revoke_token(token)
        if revoked:
            log.info("token.revoked", token=token_fingerprint(token))
        else:
            log.warning("token.revoke_noop", token=token_fingerprint(token))
        return revoked
