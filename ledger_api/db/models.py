"""SQLAlchemy models for users, the task catalog, completions and session tokens."""
from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    false,
    func,
)

from .session import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_users_balance_non_negative"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(32), unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    balance = Column(Integer, default=0, server_default="0", nullable=False)
    balance_updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    # set once, never rewritten
    referrer_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (CheckConstraint("reward > 0", name="ck_tasks_reward_positive"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    description = Column(Text, nullable=False)
    reward = Column(Integer, nullable=False)


class CompletedTask(Base):
    __tablename__ = "completed_tasks"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)
    completed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Token(Base):
    __tablename__ = "tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(512), unique=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_revoked = Column(Boolean, default=False, server_default=false(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
