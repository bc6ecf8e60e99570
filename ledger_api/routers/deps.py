"""Shared router dependencies: service lookup, bearer-token guard, error mapping."""
from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ledger_api.core.logging import bind_context, get_logger
from ledger_api.domain.errors import (
    InvalidCredentialsError,
    InvalidReferrerError,
    InvalidTokenError,
    LedgerError,
    NotFoundError,
    ReferrerAlreadySetError,
    TaskAlreadyCompletedError,
    TokenInvalidOrRevokedError,
    UserAlreadyExistsError,
)
from ledger_api.services.token_service import TokenService
from ledger_api.services.user_service import UserService

log = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

_STATUS_BY_ERROR: tuple[tuple[type[LedgerError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (UserAlreadyExistsError, status.HTTP_409_CONFLICT),
    (InvalidCredentialsError, status.HTTP_401_UNAUTHORIZED),
    (InvalidReferrerError, status.HTTP_400_BAD_REQUEST),
    (ReferrerAlreadySetError, status.HTTP_409_CONFLICT),
    (TaskAlreadyCompletedError, status.HTTP_409_CONFLICT),
    (InvalidTokenError, status.HTTP_401_UNAUTHORIZED),
    (TokenInvalidOrRevokedError, status.HTTP_401_UNAUTHORIZED),
)


def http_error(exc: LedgerError) -> HTTPException:
    """Translate a core error into the HTTPException the router raises."""
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=code, detail=exc.message)
    # signing, transaction and store failures
    log.error("request.internal_error", error_type=type(exc).__name__, error=exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


def get_user_service(request: Request) -> UserService:
    svc = getattr(getattr(request.app, "state", None), "user_service", None)
    if not svc:
        raise RuntimeError("UserService not configured")
    return svc


def get_token_service(request: Request) -> TokenService:
    svc = getattr(getattr(request.app, "state", None), "token_service", None)
    if not svc:
        raise RuntimeError("TokenService not configured")
    return svc


def bearer_token(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


def current_user_id(
    token: str = Depends(bearer_token),
    token_service: TokenService = Depends(get_token_service),
) -> int:
    try:
        user_id = token_service.validate_token(token)
    except (InvalidTokenError, TokenInvalidOrRevokedError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except LedgerError as exc:
        raise http_error(exc)
    bind_context(user_id=user_id)
    return user_id


def path_user_id(user_id: int, caller_id: int = Depends(current_user_id)) -> int:
    """Path ``{user_id}`` must be the authenticated user."""
    if user_id != caller_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User ID mismatch")
    return user_id
