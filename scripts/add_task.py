#!/usr/bin/env python3
"""
Add a task to the reward catalog.

Usage:
  python scripts/add_task.py --description "Follow the project account" --reward 30
  python scripts/add_task.py --init   # create tables and seed the default catalog
"""
from __future__ import annotations

import argparse
import sys

from ledger_api.db.create_tables import create_all, seed_tasks
from ledger_api.repositories.sql_repository import SQLUserRepository


def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(description="Add a task to the reward catalog")
    ap.add_argument("--description", help="Task description shown to users")
    ap.add_argument("--reward", type=int, help="Points credited on completion (> 0)")
    ap.add_argument("--init", action="store_true", help="Create tables and seed default tasks first")
    args = ap.parse_args(argv)

    if args.init:
        create_all()
        print(f"OK: schema ready, {seed_tasks()} default tasks seeded")
        if not args.description:
            return

    description = (args.description or "").strip()
    if not description:
        raise SystemExit("Description is required")
    if args.reward is None or args.reward <= 0:
        raise SystemExit("Reward must be a positive integer")

    task_id = SQLUserRepository().add_task(description, args.reward)
    print("OK: task added")
    print(f"  ID: {task_id}")
    print(f"  Reward: {args.reward}")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # pragma: no cover - CLI usage
        sys.stderr.write(f"Error: {exc}\n")
        raise SystemExit(1)
