from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ledger_api.domain.usernames import PASSWORD_MAX_LENGTH, PASSWORD_MIN_LENGTH, is_valid_username


class CredentialsRequest(BaseModel):
    username: str
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("username")
    @classmethod
    def _check_username(cls, value: str) -> str:
        if not is_valid_username(value):
            raise ValueError("username must be 6-15 letters or digits and start with a letter")
        return value


class ReferrerRequest(BaseModel):
    referrer_id: int = Field(..., gt=0)


class TaskRequest(BaseModel):
    task_id: int = Field(..., gt=0)


class RegisterResponse(BaseModel):
    status: str
    user_id: int


class LoginResponse(BaseModel):
    status: str
    token: str
    expires_at: datetime


class StatusMessage(BaseModel):
    status: str


class UserStatusResponse(BaseModel):
    id: int
    username: str
    balance: int
    balance_updated_at: Optional[datetime] = None
    referrer_id: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LeaderboardEntryResponse(BaseModel):
    id: int
    username: str
    balance: int

    model_config = ConfigDict(from_attributes=True)


class ReferrerAddedResponse(BaseModel):
    status: str
    referrer_id: int


class TaskCompletedResponse(BaseModel):
    status: str
    task_id: int
    reward: int
