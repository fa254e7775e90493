"""Friendship lookups used for friends-only session visibility."""

import logging
from typing import List, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from models.friendship import FriendshipModel
from utils.converters import utc_now_iso

logger = logging.getLogger(__name__)


def canonical_pair(user_a: str, user_b: str) -> Tuple[str, str]:
    """Friendships are stored once, with the smaller id first."""
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


class FriendshipManager:
    """Answers whether two users are mutually connected."""

    def __init__(self, db: Session):
        self.db = db

    def are_friends(self, user_a: str, user_b: str) -> bool:
        if not user_a or not user_b or user_a == user_b:
            return False
        user_id, friend_id = canonical_pair(user_a, user_b)
        row = (
            self.db.query(FriendshipModel.id)
            .filter(
                FriendshipModel.user_id == user_id,
                FriendshipModel.friend_id == friend_id,
                FriendshipModel.status == "accepted",
            )
            .first()
        )
        return row is not None

    def list_friend_ids(self, user_id: str) -> List[str]:
        """Ids of every user with an accepted friendship with ``user_id``."""
        rows = (
            self.db.query(FriendshipModel.user_id, FriendshipModel.friend_id)
            .filter(
                or_(
                    FriendshipModel.user_id == user_id,
                    FriendshipModel.friend_id == user_id,
                ),
                FriendshipModel.status == "accepted",
            )
            .all()
        )
        return [friend_id if uid == user_id else uid for uid, friend_id in rows]

    def add_friendship(
        self, user_a: str, user_b: str, status: str = "accepted"
    ) -> FriendshipModel:
        """Record a friendship between two users.

        Args:
            user_a: User who initiated the friendship.
            user_b: The other user.
            status: 'pending', 'accepted' or 'blocked'.

        Returns:
            The stored FriendshipModel.
        """
        if user_a == user_b:
            raise ValueError("A user cannot befriend themselves")
        user_id, friend_id = canonical_pair(user_a, user_b)
        now = utc_now_iso()
        model = FriendshipModel(
            user_id=user_id,
            friend_id=friend_id,
            status=status,
            initiated_by=user_a,
            created_at=now,
            accepted_at=now if status == "accepted" else None,
        )
        self.db.add(model)
        self.db.commit()
        self.db.refresh(model)
        logger.info("Recorded %s friendship between %s and %s", status, user_id, friend_id)
        return model
