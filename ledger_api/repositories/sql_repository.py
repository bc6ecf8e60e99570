"""High-level data access helpers backed by SQLAlchemy."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_api.core.config import get_settings
from ledger_api.core.logging import get_logger
from ledger_api.core.security import token_fingerprint
from ledger_api.db.models import CompletedTask, Task, Token, User
from ledger_api.db.session import get_session
from ledger_api.domain.errors import (
    ReferrerAlreadySetError,
    StoreFailure,
    TaskAlreadyCompletedError,
    TransactionFailure,
    UserAlreadyExistsError,
    UserNotFoundError,
)

log = get_logger(__name__)


def _store_failure(method: str, exc: Exception, **context) -> StoreFailure:
    log.error("store.query_failed", method=method, error=str(exc), **context)
    return StoreFailure(f"{method}: failed to execute query")


class SQLUserRepository:
    """Users, task catalog and completions on top of the SQLAlchemy session."""

    def __init__(self, lock_timeout_ms: int | None = None) -> None:
        if lock_timeout_ms is None:
            lock_timeout_ms = get_settings().db_lock_timeout_ms
        self.lock_timeout_ms = lock_timeout_ms

    # -------------------------- transactions --------------------------
    @contextmanager
    def transaction(self) -> Iterator[Session]:
        with get_session() as session:
            try:
                session.begin()
                conn = session.connection()
                if conn.dialect.name == "postgresql" and self.lock_timeout_ms:
                    conn.exec_driver_sql(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}")
            except SQLAlchemyError as exc:
                log.error("store.begin_failed", error=str(exc))
                raise TransactionFailure("Failed to begin transaction") from exc
            log.debug("store.transaction_started")

            try:
                yield session
            except BaseException:
                self._rollback(session)
                raise

            try:
                session.commit()
            except SQLAlchemyError as exc:
                log.error("store.commit_failed", error=str(exc))
                self._rollback(session)
                raise TransactionFailure("Failed to commit transaction") from exc
            log.debug("store.transaction_committed")

    @staticmethod
    def _rollback(session: Session) -> None:
        try:
            session.rollback()
        except SQLAlchemyError as exc:
            # the first error is already propagating
            log.error("store.rollback_failed", error=str(exc))
        else:
            log.debug("store.transaction_rolled_back")

    def _fetch_one(self, method: str, stmt, tx: Optional[Session], for_update: bool, **context):
        if for_update:
            if tx is None:
                raise ValueError(f"{method}: for_update reads require a transaction")
            stmt = stmt.with_for_update()
        try:
            if tx is not None:
                return tx.execute(stmt).scalar_one_or_none()
            with get_session() as session:
                return session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise _store_failure(method, exc, **context) from exc

    # -------------------------- users --------------------------
    def get_user_by_name(self, username: str, tx: Optional[Session] = None, *, for_update: bool = False) -> Optional[User]:
        stmt = select(User).where(User.username == username)
        return self._fetch_one("get_user_by_name", stmt, tx, for_update, username=username)

    def get_user_by_id(self, user_id: int, tx: Optional[Session] = None, *, for_update: bool = False) -> Optional[User]:
        stmt = select(User).where(User.id == user_id)
        return self._fetch_one("get_user_by_id", stmt, tx, for_update, user_id=user_id)

    def create_user(self, tx: Session, username: str, password_hash: str) -> int:
        now = datetime.now(timezone.utc)
        user = User(
            username=username,
            password_hash=password_hash,
            balance=0,
            balance_updated_at=now,
            created_at=now,
        )
        try:
            tx.add(user)
            tx.flush()
        except IntegrityError as exc:
            log.warning("store.username_conflict", username=username)
            raise UserAlreadyExistsError(f"User {username} already exists") from exc
        except SQLAlchemyError as exc:
            raise _store_failure("create_user", exc, username=username) from exc
        return int(user.id)

    def set_referrer(self, tx: Session, user_id: int, referrer_id: int) -> None:
        stmt = (
            update(User)
            .where(User.id == user_id, User.referrer_id.is_(None))
            .values(referrer_id=referrer_id)
            .execution_options(synchronize_session=False)
        )
        try:
            result = tx.execute(stmt)
        except SQLAlchemyError as exc:
            raise _store_failure("set_referrer", exc, user_id=user_id, referrer_id=referrer_id) from exc
        if result.rowcount == 0:
            raise ReferrerAlreadySetError()

    def add_balance(self, tx: Session, user_id: int, delta: int) -> None:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(balance=User.balance + delta, balance_updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        try:
            result = tx.execute(stmt)
        except SQLAlchemyError as exc:
            raise _store_failure("add_balance", exc, user_id=user_id) from exc
        if result.rowcount == 0:
            raise UserNotFoundError()

    def get_leaderboard(self, limit: int) -> list[User]:
        stmt = select(User).order_by(User.balance.desc(), User.id.asc()).limit(limit)
        try:
            with get_session() as session:
                return list(session.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise _store_failure("get_leaderboard", exc) from exc

    # -------------------------- tasks --------------------------
    def get_task(self, task_id: int) -> Optional[Task]:
        try:
            with get_session() as session:
                return session.get(Task, task_id)
        except SQLAlchemyError as exc:
            raise _store_failure("get_task", exc, task_id=task_id) from exc

    def add_task(self, description: str, reward: int) -> int:
        task = Task(description=description, reward=reward)
        try:
            with get_session() as session:
                session.add(task)
                session.commit()
                return int(task.id)
        except SQLAlchemyError as exc:
            raise _store_failure("add_task", exc) from exc

    def is_task_completed(self, tx: Session, user_id: int, task_id: int) -> bool:
        stmt = (
            select(CompletedTask.user_id)
            .where(CompletedTask.user_id == user_id, CompletedTask.task_id == task_id)
            .limit(1)
        )
        try:
            return tx.execute(stmt).first() is not None
        except SQLAlchemyError as exc:
            raise _store_failure("is_task_completed", exc, user_id=user_id, task_id=task_id) from exc

    def mark_task_completed(self, tx: Session, user_id: int, task_id: int) -> None:
        try:
            tx.add(CompletedTask(user_id=user_id, task_id=task_id, completed_at=datetime.now(timezone.utc)))
            tx.flush()
        except IntegrityError as exc:
            log.warning("store.completion_conflict", user_id=user_id, task_id=task_id)
            raise TaskAlreadyCompletedError() from exc
        except SQLAlchemyError as exc:
            raise _store_failure("mark_task_completed", exc, user_id=user_id, task_id=task_id) from exc


class SQLTokenRepository:
    """Persisted token records used as the server-side revocation list."""

    def store_token(self, user_id: int, token: str, expires_at: datetime) -> None:
        entity = Token(user_id=user_id, token=token, expires_at=expires_at, is_revoked=False)
        try:
            with get_session() as session:
                session.add(entity)
                session.commit()
        except SQLAlchemyError as exc:
            raise _store_failure("store_token", exc, user_id=user_id, token=token_fingerprint(token)) from exc

    def is_token_valid(self, token: str) -> bool:
        now = datetime.now(timezone.utc)
        stmt = (
            select(Token.id)
            .where(Token.token == token, Token.expires_at > now, Token.is_revoked.is_(False))
            .limit(1)
        )
        try:
            with get_session() as session:
                return session.execute(stmt).first() is not None
        except SQLAlchemyError as exc:
            raise _store_failure("is_token_valid", exc, token=token_fingerprint(token)) from exc

    def revoke_token(self, token: str) -> bool:
        stmt = (
            update(Token)
            .where(Token.token == token, Token.is_revoked.is_(False))
            .values(is_revoked=True)
            .execution_options(synchronize_session=False)
        )
        try:
            with get_session() as session:
                result = session.execute(stmt)
                session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise _store_failure("revoke_token", exc, token=token_fingerprint(token)) from exc
