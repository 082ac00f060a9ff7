#!/usr/bin/env python
"""Permanently remove tasks that have been soft deleted for too long."""
import argparse
import logging

from taskmanager.config import CLEANUP_RETENTION_DAYS, LOG_LEVEL
from taskmanager.database import get_session
from taskmanager.logging_setup import setup_logging
from taskmanager.services.task_store import TaskStore


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--days-old",
        type=int,
        default=CLEANUP_RETENTION_DAYS,
        help="remove tasks deleted more than this many days ago (default: %(default)s)",
    )
    args = parser.parse_args()

    setup_logging(LOG_LEVEL)
    with get_session() as session:
        removed = TaskStore(session).cleanup_deleted(days_old=args.days_old)
    logging.getLogger("taskmanager.cleanup").info("Removed %d tasks", removed)
    print(f"Permanently deleted {removed} tasks")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
