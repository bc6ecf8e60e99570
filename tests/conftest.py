from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make the package importable when running the suite from a plain checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ledger_api.core import config as core_config  # noqa: E402
from ledger_api.core.rate_limiter import reset_rate_limits  # noqa: E402
from ledger_api.db import models  # noqa: E402
from ledger_api.db import session as db_session  # noqa: E402

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


@pytest.fixture(autouse=True)
def settings_env(monkeypatch):
    """Pin the settings every test relies on and drop cached Settings between tests."""
    monkeypatch.setenv("AUTH_SECRET_KEY", TEST_SECRET)
    for name in ("REFERRAL_BONUS", "LEADERBOARD_LIMIT", "TOKEN_TTL_SECONDS", "DB_LOCK_TIMEOUT_MS", "TRUSTED_PROXIES"):
        monkeypatch.delenv(name, raising=False)
    core_config.get_settings.cache_clear()
    reset_rate_limits()
    yield
    core_config.get_settings.cache_clear()


@pytest.fixture()
def temp_db(tmp_path, monkeypatch):
    """Temporary SQLite database with a fresh schema; caches are reset so the engine points at it."""
    db_file = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]

    engine = db_session.get_engine()
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)

    yield db_file

    try:
        models.Base.metadata.drop_all(bind=engine)
    except Exception:
        pass
    engine.dispose()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]
