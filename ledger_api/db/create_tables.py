"""Utility script to create the database schema and seed the task catalog."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .session import Base, get_engine, get_session
from . import models  # noqa: F401  # ensure models are imported for metadata

DEFAULT_TASKS: tuple[tuple[str, int], ...] = (
    ("Subscribe to the project channel", 50),
    ("Follow the project account", 30),
    ("Invite a friend", 100),
)


def create_all() -> None:
    engine = get_engine()
    Base.metadata.create_all(bind=engine)


def seed_tasks(tasks: tuple[tuple[str, int], ...] = DEFAULT_TASKS) -> int:
    """Insert the catalog only when the tasks table is empty. Returns rows inserted."""
    with get_session() as session:
        if session.execute(select(models.Task.id).limit(1)).first() is not None:
            return 0
        session.add_all(models.Task(description=description, reward=reward) for description, reward in tasks)
        session.commit()
    return len(tasks)


if __name__ == "__main__":
    try:
        create_all()
        inserted = seed_tasks()
        print(f"Database tables created successfully ({inserted} tasks seeded).")
    except SQLAlchemyError as exc:
        raise SystemExit(f"Failed to create tables: {exc}") from exc
