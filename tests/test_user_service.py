"""
Ledger service rules against an in-memory repository.

The double keeps rows as plain dicts, snapshots them when a transaction starts
and restores the snapshot when the block raises, so partial writes are visible
to the assertions exactly when a rollback did not happen.
"""
from __future__ import annotations

import copy
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime, timezone

import pytest

from ledger_api.db.models import Task, User
from ledger_api.domain.errors import (
    InvalidCredentialsError,
    InvalidReferrerError,
    ReferrerAlreadySetError,
    StoreFailure,
    TaskAlreadyCompletedError,
    TaskNotFoundError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from ledger_api.repositories.base import UserRepository
from ledger_api.services.user_service import UserService


class InMemoryUserRepository(UserRepository):
    def __init__(self):
        self.users: dict[int, dict] = {}
        self.tasks: dict[int, dict] = {}
        self.completed: set[tuple[int, int]] = set()
        self.commits = 0
        self.rollbacks = 0
        # one global lock stands in for the row locks of a real store
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self):
        with self._lock:
            snapshot = (copy.deepcopy(self.users), set(self.completed))
            try:
                yield self
            except BaseException:
                self.users, self.completed = snapshot
                self.rollbacks += 1
                raise
            self.commits += 1

    def _to_model(self, row: dict | None):
        return User(**row) if row else None

    def get_user_by_name(self, username, tx=None, *, for_update=False):
        for row in self.users.values():
            if row["username"] == username:
                return self._to_model(row)
        return None

    def get_user_by_id(self, user_id, tx=None, *, for_update=False):
        return self._to_model(self.users.get(user_id))

    def create_user(self, tx, username, password_hash):
        if any(row["username"] == username for row in self.users.values()):
            raise UserAlreadyExistsError()
        user_id = max(self.users, default=0) + 1
        now = datetime.now(timezone.utc)
        self.users[user_id] = {
            "id": user_id,
            "username": username,
            "password_hash": password_hash,
            "balance": 0,
            "balance_updated_at": now,
            "referrer_id": None,
            "created_at": now,
        }
        return user_id

    def set_referrer(self, tx, user_id, referrer_id):
        row = self.users[user_id]
        if row["referrer_id"] is not None:
            raise ReferrerAlreadySetError()
        row["referrer_id"] = referrer_id

    def add_balance(self, tx, user_id, delta):
        row = self.users.get(user_id)
        if row is None:
            raise UserNotFoundError()
        row["balance"] += delta
        row["balance_updated_at"] = datetime.now(timezone.utc)

    def get_task(self, task_id):
        row = self.tasks.get(task_id)
        return Task(**row) if row else None

    def add_task(self, description, reward):
        task_id = max(self.tasks, default=0) + 1
        self.tasks[task_id] = {"id": task_id, "description": description, "reward": reward}
        return task_id

    def is_task_completed(self, tx, user_id, task_id):
        return (user_id, task_id) in self.completed

    def mark_task_completed(self, tx, user_id, task_id):
        if (user_id, task_id) in self.completed:
            raise TaskAlreadyCompletedError()
        self.completed.add((user_id, task_id))

    def get_leaderboard(self, limit):
        rows = sorted(self.users.values(), key=lambda r: (-r["balance"], r["id"]))
        return [self._to_model(r) for r in rows[:limit]]


@pytest.fixture()
def repo():
    return InMemoryUserRepository()


@pytest.fixture()
def service(repo):
    return UserService(repository=repo)


def _balance(repo: InMemoryUserRepository, user_id: int) -> int:
    return repo.users[user_id]["balance"]


class TestAccounts:
    def test_register_then_login_returns_same_id(self, service):
        user_id = service.register("alice01", "secret1")

        result = service.login("alice01", "secret1")

        assert result.user_id == user_id
        assert result.username == "alice01"

    def test_register_stores_argon2_hash_not_password(self, service, repo):
        user_id = service.register("alice01", "secret1")

        stored = repo.users[user_id]["password_hash"]
        assert stored != "secret1"
        assert stored.startswith("$argon2")

    def test_duplicate_username_rejected_without_second_row(self, service, repo):
        service.register("alice01", "secret1")

        with pytest.raises(UserAlreadyExistsError):
            service.register("alice01", "other22")

        assert len(repo.users) == 1
        assert repo.rollbacks == 1

    def test_wrong_password_leaves_state_untouched(self, service, repo):
        user_id = service.register("alice01", "secret1")
        before = copy.deepcopy(repo.users)

        with pytest.raises(InvalidCredentialsError):
            service.login("alice01", "wrong-pass")

        assert repo.users == before
        assert repo.users[user_id]["balance"] == 0

    def test_login_unknown_user(self, service):
        with pytest.raises(UserNotFoundError):
            service.login("ghost01", "secret1")

    def test_login_unknown_user_still_runs_password_check(self, service, monkeypatch):
        from ledger_api.core import security
        from ledger_api.services import user_service as user_service_module

        calls = []

        def recording_verify(password, stored_hash):
            calls.append(stored_hash)
            return security.verify_password(password, stored_hash)

        monkeypatch.setattr(user_service_module, "verify_password", recording_verify)

        with pytest.raises(UserNotFoundError):
            service.login("ghost01", "secret1")

        assert calls == [None]

    def test_missing_hash_costs_an_argon2_verify(self, monkeypatch):
        from ledger_api.core import security

        seen = []
        real = security._ph

        class CountingHasher:
            def hash(self, password):
                return real.hash(password)

            def verify(self, stored_hash, password):
                seen.append(stored_hash)
                return real.verify(stored_hash, password)

        monkeypatch.setattr(security, "_ph", CountingHasher())

        assert security.verify_password("secret1", None) is False
        assert len(seen) == 1
        assert seen[0].startswith("$argon2")

    def test_status_snapshot(self, service):
        user_id = service.register("alice01", "secret1")

        status = service.get_status(user_id)

        assert status.id == user_id
        assert status.username == "alice01"
        assert status.balance == 0
        assert status.referrer_id is None
        assert status.created_at is not None

    def test_status_unknown_user(self, service):
        with pytest.raises(UserNotFoundError):
            service.get_status(42)


class TestLeaderboard:
    def test_top_ten_by_balance_with_id_tie_break(self, service, repo):
        ids = [service.register(f"player{i:02d}", "secret1") for i in range(12)]
        for offset, user_id in enumerate(ids):
            repo.users[user_id]["balance"] = (offset % 4) * 10

        board = service.get_leaderboard()

        assert len(board) == 10
        balances = [entry.balance for entry in board]
        assert balances == sorted(balances, reverse=True)
        top = [entry.id for entry in board if entry.balance == 30]
        assert top == sorted(top)

    def test_respects_configured_limit(self, repo):
        svc = UserService(repository=repo, leaderboard_limit=3)
        for i in range(5):
            svc.register(f"player{i:02d}", "secret1")

        assert len(svc.get_leaderboard()) == 3


class TestReferrals:
    def test_self_referral_rejected_before_any_transaction(self, service, repo):
        user_id = service.register("alice01", "secret1")
        commits_before = repo.commits

        with pytest.raises(InvalidReferrerError):
            service.add_referrer(user_id, user_id)

        assert repo.commits == commits_before
        assert repo.rollbacks == 0

    def test_referrer_credited_bonus_once(self, service, repo):
        a = service.register("alice01", "secret1")
        b = service.register("bobby01", "secret1")

        service.add_referrer(a, b)
        with pytest.raises(ReferrerAlreadySetError):
            service.add_referrer(a, b)

        assert repo.users[a]["referrer_id"] == b
        assert _balance(repo, b) == 80
        assert _balance(repo, a) == 0

    def test_direct_cycle_rejected(self, service, repo):
        a = service.register("alice01", "secret1")
        b = service.register("bobby01", "secret1")
        service.add_referrer(a, b)

        with pytest.raises(InvalidReferrerError):
            service.add_referrer(b, a)

        assert repo.users[a]["referrer_id"] == b
        assert repo.users[b]["referrer_id"] is None
        assert _balance(repo, a) == 0
        assert _balance(repo, b) == 80

    def test_unknown_referrer_rolls_back(self, service, repo):
        a = service.register("alice01", "secret1")

        with pytest.raises(UserNotFoundError):
            service.add_referrer(a, 999)

        assert repo.users[a]["referrer_id"] is None
        assert repo.rollbacks == 1

    def test_bonus_amount_is_configurable(self, repo):
        svc = UserService(repository=repo, referral_bonus=5)
        a = svc.register("alice01", "secret1")
        b = svc.register("bobby01", "secret1")

        svc.add_referrer(a, b)

        assert _balance(repo, b) == 5


class TestTasks:
    def test_reward_credited_once(self, service, repo):
        user_id = service.register("alice01", "secret1")
        task_id = repo.add_task("Follow the project", 30)

        assert service.complete_task(user_id, task_id) == 30
        with pytest.raises(TaskAlreadyCompletedError):
            service.complete_task(user_id, task_id)

        assert _balance(repo, user_id) == 30
        assert (user_id, task_id) in repo.completed

    def test_unknown_task(self, service, repo):
        user_id = service.register("alice01", "secret1")

        with pytest.raises(TaskNotFoundError):
            service.complete_task(user_id, 404)

        assert _balance(repo, user_id) == 0

    def test_unknown_user(self, service, repo):
        task_id = repo.add_task("Follow the project", 30)

        with pytest.raises(UserNotFoundError):
            service.complete_task(77, task_id)

        assert repo.completed == set()

    def test_failed_completion_record_rolls_back_credit(self, service, repo, monkeypatch):
        user_id = service.register("alice01", "secret1")
        task_id = repo.add_task("Follow the project", 30)

        def broken(tx, uid, tid):
            raise StoreFailure("mark_task_completed: failed to execute query")

        monkeypatch.setattr(repo, "mark_task_completed", broken)

        with pytest.raises(StoreFailure):
            service.complete_task(user_id, task_id)

        assert _balance(repo, user_id) == 0
        assert repo.completed == set()

    def test_concurrent_completions_credit_exactly_once(self, service, repo):
        user_id = service.register("alice01", "secret1")
        task_id = repo.add_task("Follow the project", 30)

        def attempt():
            try:
                service.complete_task(user_id, task_id)
                return "ok"
            except TaskAlreadyCompletedError:
                return "dup"

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(lambda _: attempt(), range(8)))

        assert outcomes.count("ok") == 1
        assert outcomes.count("dup") == 7
        assert _balance(repo, user_id) == 30
