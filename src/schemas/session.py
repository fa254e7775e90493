"""Session schema definitions.

This module defines the request and response models for sessions,
participants, invites and hand-off tracking.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

import config
from utils.invite_codes import is_valid_invite_code

SessionVisibility = Literal["public", "friends", "invite_only"]
SessionStatus = Literal["scheduled", "active", "completed", "cancelled"]
ParticipantRole = Literal["host", "member"]
ParticipantState = Literal["invited", "joined", "left", "kicked"]
HandoffState = Literal["rsvp_joined", "opened_activity", "confirmed_in_activity", "stuck"]

VISIBILITIES = ("public", "friends", "invite_only")
HANDOFF_STATES = ("rsvp_joined", "opened_activity", "confirmed_in_activity", "stuck")


class ActivityInfo(BaseModel):
    activity_id: str
    canonical_url: str
    start_url: str
    display_name: Optional[str] = None
    thumbnail_url: Optional[str] = None


class SessionInfo(BaseModel):
    """Session row as returned to clients, with the joined participant count."""
    id: str
    activity_id: str
    host_id: str
    title: str
    description: Optional[str] = None
    visibility: SessionVisibility
    status: SessionStatus
    max_participants: int
    current_participants: int
    scheduled_start: Optional[str] = None
    activity: ActivityInfo
    created_at: str


class ParticipantInfo(BaseModel):
    user_id: str
    role: ParticipantRole
    state: ParticipantState
    handoff_state: HandoffState = "rsvp_joined"
    joined_at: Optional[str] = None


class SessionDetail(SessionInfo):
    participants: List[ParticipantInfo] = Field(default_factory=list)
    invite_link: Optional[str] = None


class SessionWithInvite(BaseModel):
    session: SessionInfo
    invite_link: str


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class SessionListResponse(BaseModel):
    sessions: List[SessionInfo]
    pagination: Pagination


class SessionSummary(BaseModel):
    """Participant counts of a session, broken down by hand-off state."""
    session_id: str
    current_participants: int
    max_participants: int
    handoff_counts: Dict[str, int] = Field(
        description="Joined participants per hand-off state; every state is present."
    )


class HandoffStateInfo(BaseModel):
    session_id: str
    user_id: str
    handoff_state: HandoffState


class InvitePreview(BaseModel):
    """What an invite link shows before the holder joins."""
    session_id: str
    title: str
    activity: ActivityInfo
    current_participants: int
    max_participants: int


class BulkDeleteResult(BaseModel):
    deleted_count: int


# --- Requests ---

class CreateSessionRequest(BaseModel):
    activity_url: str = Field(min_length=1, description="Any supported link to the activity.")
    title: str = Field(min_length=1, max_length=config.MAX_TITLE_LENGTH)
    description: Optional[str] = Field(default=None, max_length=2000)
    visibility: SessionVisibility = "public"
    max_participants: Optional[int] = Field(
        default=None, ge=1, le=config.MAX_PARTICIPANTS_LIMIT
    )
    scheduled_start: Optional[datetime] = None
    invited_external_ids: Optional[List[str]] = Field(
        default=None,
        description="Platform account ids the host invites directly.",
    )

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title cannot be empty")
        return value


class JoinSessionRequest(BaseModel):
    invite_code: Optional[str] = Field(default=None, description="Invite code to redeem.")

    @field_validator("invite_code")
    @classmethod
    def check_invite_code(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_valid_invite_code(value):
            raise ValueError("invalid invite code")
        return value


class BulkDeleteRequest(BaseModel):
    ids: List[UUID] = Field(min_length=1, max_length=config.MAX_BULK_DELETE_IDS)
