from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import Base


class SessionModel(Base):
    __tablename__ = "sessions"

    id = Column(String, primary_key=True, index=True)
    activity_id = Column(
        String, ForeignKey("activity_records.activity_id"), index=True, nullable=False
    )
    host_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    visibility = Column(String, nullable=False, default="public")  # public, friends, invite_only
    status = Column(String, index=True, nullable=False)  # scheduled, active, completed, cancelled
    max_participants = Column(Integer, nullable=False)
    scheduled_start = Column(String, nullable=True)  # ISO format string
    scheduled_end = Column(String, nullable=True)
    original_input_url = Column(String, nullable=True)
    normalized_from = Column(String, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
    archived_at = Column(String, nullable=True)

    activity = relationship("ActivityRecordModel")
    participants = relationship(
        "SessionParticipantModel",
        back_populates="session",
        order_by="SessionParticipantModel.joined_at",
    )
    invites = relationship("SessionInviteModel", back_populates="session")
