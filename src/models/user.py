"""User database model.

Users sign in through the activity platform; ``external_user_id`` is the
platform account id hosts use when inviting someone directly.
"""

from sqlalchemy import Column, String
from .base import Base


class UserModel(Base):
    """App user linked to at most one platform account."""

    __tablename__ = "users"

    user_id = Column(String, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    display_name = Column(String, nullable=True)
    external_user_id = Column(String, unique=True, index=True, nullable=True)
    create_at = Column(String, nullable=False)  # ISO format string
