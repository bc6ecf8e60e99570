from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ledger_api.core.rate_limiter import rate_limit_ip
from ledger_api.domain.errors import InvalidCredentialsError, LedgerError, UserNotFoundError
from ledger_api.routers.deps import (
    bearer_token,
    current_user_id,
    get_token_service,
    get_user_service,
    http_error,
    path_user_id,
)
from ledger_api.schemas import (
    CredentialsRequest,
    LeaderboardEntryResponse,
    LoginResponse,
    ReferrerAddedResponse,
    ReferrerRequest,
    RegisterResponse,
    StatusMessage,
    TaskCompletedResponse,
    TaskRequest,
    UserStatusResponse,
)
from ledger_api.services.token_service import TokenService
from ledger_api.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/register", response_model=RegisterResponse)
def register(
    request: Request,
    payload: CredentialsRequest,
    users: UserService = Depends(get_user_service),
):
    rate_limit_ip(request, "users:register", limit=20, window_seconds=60)
    try:
        user_id = users.register(payload.username, payload.password)
    except LedgerError as exc:
        raise http_error(exc)
    return RegisterResponse(status="registered", user_id=user_id)


@router.post("/login", response_model=LoginResponse)
def login(
    request: Request,
    payload: CredentialsRequest,
    users: UserService = Depends(get_user_service),
    tokens: TokenService = Depends(get_token_service),
):
    rate_limit_ip(request, "users:login", limit=10, window_seconds=60)
    try:
        result = users.login(payload.username, payload.password)
        issued = tokens.generate_token(result.user_id)
    except (UserNotFoundError, InvalidCredentialsError):
        # same answer for unknown users and bad passwords
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, InvalidCredentialsError.default_message)
    except LedgerError as exc:
        raise http_error(exc)
    return LoginResponse(status="logged in", token=issued.token, expires_at=issued.expires_at)


@router.post("/logout", response_model=StatusMessage)
def logout(
    token: str = Depends(bearer_token),
    _caller_id: int = Depends(current_user_id),
    tokens: TokenService = Depends(get_token_service),
):
    try:
        tokens.revoke_token(token)
    except LedgerError as exc:
        raise http_error(exc)
    return StatusMessage(status="logged out")


@router.get("/leaderboard", response_model=list[LeaderboardEntryResponse])
def leaderboard(
    _caller_id: int = Depends(current_user_id),
    users: UserService = Depends(get_user_service),
):
    try:
        entries = users.get_leaderboard()
    except LedgerError as exc:
        raise http_error(exc)
    return [LeaderboardEntryResponse.model_validate(entry) for entry in entries]


@router.get("/{user_id}/status", response_model=UserStatusResponse)
def user_status(
    owner_id: int = Depends(path_user_id),
    users: UserService = Depends(get_user_service),
):
    try:
        snapshot = users.get_status(owner_id)
    except LedgerError as exc:
        raise http_error(exc)
    return UserStatusResponse.model_validate(snapshot)


@router.post("/{user_id}/task/complete", response_model=TaskCompletedResponse)
def complete_task(
    payload: TaskRequest,
    owner_id: int = Depends(path_user_id),
    users: UserService = Depends(get_user_service),
):
    try:
        reward = users.complete_task(owner_id, payload.task_id)
    except LedgerError as exc:
        raise http_error(exc)
    return TaskCompletedResponse(status="task completed", task_id=payload.task_id, reward=reward)


@router.post("/{user_id}/referrer", response_model=ReferrerAddedResponse)
def add_referrer(
    payload: ReferrerRequest,
    owner_id: int = Depends(path_user_id),
    users: UserService = Depends(get_user_service),
):
    try:
        users.add_referrer(owner_id, payload.referrer_id)
    except LedgerError as exc:
        raise http_error(exc)
    return ReferrerAddedResponse(status="referrer added", referrer_id=payload.referrer_id)
