from sqlalchemy import Column, ForeignKey, String

from .base import Base


class SessionInvitedUserModel(Base):
    """A host's direct invitation of a platform account, linked or not."""

    __tablename__ = "session_invited_users"

    session_id = Column(
        String, ForeignKey("sessions.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    external_user_id = Column(String, primary_key=True, index=True)
    created_at = Column(String, nullable=False)
