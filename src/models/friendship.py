from sqlalchemy import CheckConstraint, Column, Integer, String, UniqueConstraint

from .base import Base


class FriendshipModel(Base):
    """Friendship between two users, stored once per ordered pair."""

    __tablename__ = "friendships"
    __table_args__ = (
        UniqueConstraint("user_id", "friend_id", name="uq_friendships_pair"),
        CheckConstraint("user_id < friend_id", name="ck_friendships_ordered_pair"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    friend_id = Column(String, index=True, nullable=False)
    status = Column(String, nullable=False)  # pending, accepted, blocked
    initiated_by = Column(String, nullable=False)
    created_at = Column(String, nullable=False)
    accepted_at = Column(String, nullable=True)
