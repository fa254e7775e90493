from sqlalchemy import Column, Integer, String, UniqueConstraint

from .base import Base


class UserPushTokenModel(Base):
    __tablename__ = "user_push_tokens"
    __table_args__ = (
        UniqueConstraint("user_id", "push_token", name="uq_user_push_tokens_user_token"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    push_token = Column(String, nullable=False)
    created_at = Column(String, nullable=False)
