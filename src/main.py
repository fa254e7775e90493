"""Command-line entry point for maintenance tasks.

Usage:
    python src/main.py init-db
    python src/main.py lifecycle [--auto-complete-hours N] [--retention-hours N]
    python src/main.py add-friend USER_A USER_B [--status accepted]
    python src/main.py store-favorites USER_ID FAVORITES_JSON
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from config import (
    LIFECYCLE_AUTO_COMPLETE_AFTER_HOURS,
    LIFECYCLE_BATCH_SIZE,
    LIFECYCLE_COMPLETED_RETENTION_HOURS,
)
from core.database import SessionLocal, init_db
from core.exceptions import SessionServiceError
from core.logging_config import setup_logging
from utils.favorites_manager import FavoritesManager
from utils.friendship_manager import FriendshipManager
from utils.session_lifecycle import SessionLifecycleMaintenance

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Session service maintenance")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create missing database tables")

    lifecycle = subparsers.add_parser(
        "lifecycle", help="Auto-complete stale sessions and archive completed ones"
    )
    lifecycle.add_argument(
        "--auto-complete-hours",
        type=int,
        default=LIFECYCLE_AUTO_COMPLETE_AFTER_HOURS,
        help="Hours after start before an active session is completed",
    )
    lifecycle.add_argument(
        "--retention-hours",
        type=int,
        default=LIFECYCLE_COMPLETED_RETENTION_HOURS,
        help="Hours a completed session stays listed before it is archived",
    )
    lifecycle.add_argument(
        "--batch-size",
        type=int,
        default=LIFECYCLE_BATCH_SIZE,
        help="Maximum sessions changed per pass",
    )

    friend = subparsers.add_parser("add-friend", help="Record a friendship between two users")
    friend.add_argument("user_a", help="User who initiated the friendship")
    friend.add_argument("user_b", help="The other user")
    friend.add_argument(
        "--status", choices=["pending", "accepted", "blocked"], default="accepted"
    )

    favorites = subparsers.add_parser(
        "store-favorites", help="Replace a user's cached favorites from a JSON file"
    )
    favorites.add_argument("user_id")
    favorites.add_argument("path", help="JSON list of {id, name, url, thumbnailUrl}")
    return parser


def run_lifecycle(auto_complete_hours: int, retention_hours: int, batch_size: int) -> dict:
    """Run one lifecycle pass against the configured database.

    Returns:
        The run result as a dictionary.
    """
    db = SessionLocal()
    try:
        maintenance = SessionLifecycleMaintenance(
            db,
            auto_complete_after_hours=auto_complete_hours,
            completed_retention_hours=retention_hours,
            batch_size=batch_size,
        )
        return maintenance.process_lifecycle().model_dump()
    finally:
        db.close()


def add_friend(user_a: str, user_b: str, status: str) -> int:
    db = SessionLocal()
    try:
        FriendshipManager(db).add_friendship(user_a, user_b, status=status)
    except ValueError as e:
        logger.error("Cannot add friendship: %s", e)
        return 1
    finally:
        db.close()
    return 0


def store_favorites(user_id: str, path: str) -> int:
    """Load favorites from a JSON file into the quick-play cache."""
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, list):
        logger.error("Expected a JSON list of favorites in %s", path)
        return 1
    db = SessionLocal()
    try:
        stored = FavoritesManager(db).store_favorites(user_id, raw)
    finally:
        db.close()
    logger.info("Cached %d favorites for user %s", len(stored), user_id)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)

    if args.command == "init-db":
        init_db()
        logger.info("Database tables are up to date")
        return 0

    init_db()
    if args.command == "add-friend":
        return add_friend(args.user_a, args.user_b, args.status)
    if args.command == "store-favorites":
        return store_favorites(args.user_id, args.path)

    try:
        result = run_lifecycle(args.auto_complete_hours, args.retention_hours, args.batch_size)
    except SessionServiceError as e:
        logger.error("Lifecycle run failed: %s", e)
        return 1
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
