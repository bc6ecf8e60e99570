"""
Account and ledger use cases: registration, login, status, leaderboard,
referral bonuses and task rewards.

Every balance mutation runs inside one store transaction with the touched user
rows locked for update, so concurrent requests on the same user serialize in
the database rather than in this process.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ledger_api.core.config import get_settings
from ledger_api.core.logging import get_logger
from ledger_api.core.security import hash_password, verify_password
from ledger_api.domain.errors import (
    InvalidCredentialsError,
    InvalidReferrerError,
    ReferrerAlreadySetError,
    TaskAlreadyCompletedError,
    TaskNotFoundError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from ledger_api.repositories.base import UserRepository
from ledger_api.repositories.sql_repository import SQLUserRepository

log = get_logger(__name__)


@dataclass
class LoginResult:
    user_id: int
    username: str


@dataclass
class UserStatus:
    id: int
    username: str
    balance: int
    balance_updated_at: Optional[datetime]
    referrer_id: Optional[int]
    created_at: Optional[datetime]


@dataclass
class LeaderboardEntry:
    id: int
    username: str
    balance: int


@dataclass
class UserService:
    """Ledger core. Holds no per-request state; safe to share across worker threads."""

    repository: UserRepository = field(default_factory=SQLUserRepository)
    referral_bonus: Optional[int] = None
    leaderboard_limit: Optional[int] = None

    def __post_init__(self):
        settings = get_settings()
        if self.referral_bonus is None:
            self.referral_bonus = settings.referral_bonus
        if self.leaderboard_limit is None:
            self.leaderboard_limit = settings.leaderboard_limit

    # -------------------------------------- accounts --------------------------------------
    def register(self, username: str, password: str) -> int:
        log.info("user.register_started", username=username)
        with self.repository.transaction() as tx:
            existing = self.repository.get_user_by_name(username, tx, for_update=True)
            if existing is not None:
                log.warning("user.already_exists", username=username)
                raise UserAlreadyExistsError(f"User {username} already exists")
            user_id = self.repository.create_user(tx, username, hash_password(password))
        log.info("user.registered", user_id=user_id, username=username)
        return user_id

    def login(self, username: str, password: str) -> LoginResult:
        user = self.repository.get_user_by_name(username)
        if user is None:
            # same argon2 cost as a wrong password
            verify_password(password, None)
            log.info("user.login_unknown", username=username)
            raise UserNotFoundError(f"User {username} not found")
        if not verify_password(password, user.password_hash):
            log.warning("user.login_bad_password", username=username)
            raise InvalidCredentialsError()
        log.info("user.logged_in", user_id=user.id)
        return LoginResult(user_id=user.id, username=user.username)

    def get_status(self, user_id: int) -> UserStatus:
        user = self.repository.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError()
        return UserStatus(
            id=user.id,
            username=user.username,
            balance=user.balance,
            balance_updated_at=user.balance_updated_at,
            referrer_id=user.referrer_id,
            created_at=user.created_at,
        )

    def get_leaderboard(self) -> list[LeaderboardEntry]:
        users = self.repository.get_leaderboard(self.leaderboard_limit)
        return [LeaderboardEntry(id=u.id, username=u.username, balance=u.balance) for u in users]

    # -------------------------------------- ledger --------------------------------------
    def add_referrer(self, user_id: int, referrer_id: int) -> None:
        if referrer_id == user_id:
            log.warning("referral.self_reference", user_id=user_id)
            raise InvalidReferrerError("A user cannot refer themselves")

        with self.repository.transaction() as tx:
            # lock in id order so opposite referral attempts cannot deadlock
            locked = {
                uid: self.repository.get_user_by_id(uid, tx, for_update=True)
                for uid in sorted((user_id, referrer_id))
            }
            user = locked[user_id]
            if user is None:
                raise UserNotFoundError()
            if user.referrer_id is not None:
                log.warning("referral.already_set", user_id=user_id, referrer_id=user.referrer_id)
                raise ReferrerAlreadySetError()
            referrer = locked[referrer_id]
            if referrer is None:
                raise UserNotFoundError(f"Referrer {referrer_id} not found")
            if referrer.referrer_id == user_id:
                log.warning("referral.cycle", user_id=user_id, referrer_id=referrer_id)
                raise InvalidReferrerError("Referral cycle detected")

            self.repository.set_referrer(tx, user_id, referrer_id)
            self.repository.add_balance(tx, referrer_id, self.referral_bonus)
        log.info("referral.added", user_id=user_id, referrer_id=referrer_id, bonus=self.referral_bonus)

    def complete_task(self, user_id: int, task_id: int) -> int:
        """Credit the task reward once per (user, task). Returns the reward credited."""
        task = self.repository.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")

        with self.repository.transaction() as tx:
            if self.repository.get_user_by_id(user_id, tx, for_update=True) is None:
                raise UserNotFoundError()
            if self.repository.is_task_completed(tx, user_id, task.id):
                log.warning("task.already_completed", user_id=user_id, task_id=task.id)
                raise TaskAlreadyCompletedError()
            self.repository.add_balance(tx, user_id, task.reward)
            self.repository.mark_task_completed(tx, user_id, task.id)
        log.info("task.completed", user_id=user_id, task_id=task.id, reward=task.reward)
        return task.reward
