"""Session participant database model.

The hand-off column does not exist in older schema generations, so it is
mapped deferred with a server default: it is only read or written when the
engine runs with hand-off support enabled.
"""

from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import deferred, relationship

from .base import Base


class SessionParticipantModel(Base):
    __tablename__ = "session_participants"

    session_id = Column(
        String, ForeignKey("sessions.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    user_id = Column(String, primary_key=True, index=True)
    role = Column(String, nullable=False)  # host or member
    state = Column(String, nullable=False)  # invited, joined, left, kicked
    handoff_state = deferred(
        Column(String, nullable=False, server_default="rsvp_joined")
    )
    joined_at = Column(String, nullable=True)  # ISO format string, first join only

    session = relationship("SessionModel", back_populates="participants")
