from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, List, Optional, Protocol

from ledger_api.db.models import Task, User


class UserRepository(Protocol):
    """
    Persistence contract consumed by the ledger service.

    Implementations are responsible for:
    - Scoped transactions: commit on normal exit, rollback on any exception.
    - Row-level locking when ``for_update`` is requested inside a transaction.
    - Translating driver errors into ``StoreFailure`` / ``TransactionFailure``.
    """

    def transaction(self) -> AbstractContextManager[Any]:
        """Yield a transaction handle to pass as ``tx`` to the methods below."""

        ...

    def get_user_by_name(self, username: str, tx: Any = None, *, for_update: bool = False) -> Optional[User]:
        ...

    def get_user_by_id(self, user_id: int, tx: Any = None, *, for_update: bool = False) -> Optional[User]:
        ...

    def create_user(self, tx: Any, username: str, password_hash: str) -> int:
        """Insert a user with a zero balance. Raises ``UserAlreadyExistsError`` on a name clash."""

        ...

    def set_referrer(self, tx: Any, user_id: int, referrer_id: int) -> None:
        ...

    def add_balance(self, tx: Any, user_id: int, delta: int) -> None:
        """
        Atomically add ``delta`` to the balance and refresh ``balance_updated_at``.

        Raises ``UserNotFoundError`` when no row was updated.
        """

        ...

    def get_task(self, task_id: int) -> Optional[Task]:
        ...

    def add_task(self, description: str, reward: int) -> int:
        ...

    def is_task_completed(self, tx: Any, user_id: int, task_id: int) -> bool:
        ...

    def mark_task_completed(self, tx: Any, user_id: int, task_id: int) -> None:
        """Record the completion. Raises ``TaskAlreadyCompletedError`` if the pair exists."""

        ...

    def get_leaderboard(self, limit: int) -> List[User]:
        """Users by balance descending, ties by ascending id."""

        ...


class TokenRepository(Protocol):
    """Persisted side of session tokens: the server-side revocation list."""

    def store_token(self, user_id: int, token: str, expires_at: datetime) -> None:
        ...

    def is_token_valid(self, token: str) -> bool:
        """True when the token exists, has not expired and was not revoked."""

        ...

    def revoke_token(self, token: str) -> bool:
        """Flag the token revoked. Returns False when no live record matched."""

        ...
