"""Session management routes.

This module handles HTTP endpoints for creating, listing, joining and
cancelling sessions and for reporting hand-off progress. Domain errors are
rendered by the application's exception handler.
"""

from enum import Enum
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

import config
from api.routes.auth import get_current_user_id, get_optional_user_id
from core.dependencies import SessionManagerDep
from core.exceptions import NotFoundError
from schemas.session import (
    BulkDeleteRequest,
    BulkDeleteResult,
    CreateSessionRequest,
    HandoffStateInfo,
    JoinSessionRequest,
    SessionDetail,
    SessionListResponse,
    SessionStatus,
    SessionSummary,
    SessionVisibility,
    SessionWithInvite,
)

router = APIRouter(prefix="/api/sessions", tags=["Session"])


class HandoffStep(str, Enum):
    opened = "opened"
    confirmed = "confirmed"
    stuck = "stuck"


HANDOFF_STEP_STATES = {
    HandoffStep.opened: "opened_activity",
    HandoffStep.confirmed: "confirmed_in_activity",
    HandoffStep.stuck: "stuck",
}


@router.post(
    "",
    response_model=SessionWithInvite,
    status_code=status.HTTP_201_CREATED,
    summary="Create a session",
)
def create_session(
    req: CreateSessionRequest,
    session_manager: SessionManagerDep,
    user_id: str = Depends(get_current_user_id),
) -> SessionWithInvite:
    """Create a new session hosted by the caller.

    Args:
        req: CreateSessionRequest with the activity link, title and options.
        session_manager: Injected SessionManager instance.
        user_id: Authenticated caller.

    Returns:
        SessionWithInvite holding the session and its invite link.
    """
    return session_manager.create_session(
        host_id=user_id,
        activity_url=req.activity_url,
        title=req.title,
        visibility=req.visibility,
        max_participants=req.max_participants,
        scheduled_start=req.scheduled_start,
        invited_external_ids=req.invited_external_ids,
        description=req.description,
    )


@router.post(
    "/quick",
    response_model=SessionWithInvite,
    status_code=status.HTTP_201_CREATED,
    summary="Create a quick-play session",
)
def create_quick_session(
    session_manager: SessionManagerDep,
    user_id: str = Depends(get_current_user_id),
) -> SessionWithInvite:
    return session_manager.create_quick_session(user_id)


@router.get("", response_model=SessionListResponse, summary="List visible sessions")
def list_sessions(
    session_manager: SessionManagerDep,
    user_id: Optional[str] = Depends(get_optional_user_id),
    status_filter: SessionStatus = Query(default="active", alias="status"),
    visibility: Optional[SessionVisibility] = None,
    activity_id: Optional[str] = None,
    host_id: Optional[str] = None,
    limit: int = Query(default=config.DEFAULT_LIST_LIMIT, ge=1, le=config.MAX_LIST_LIMIT),
    offset: int = Query(default=0, ge=0),
) -> SessionListResponse:
    return session_manager.list_sessions(
        requester_id=user_id,
        status=status_filter,
        visibility=visibility,
        activity_id=activity_id,
        host_id=host_id,
        limit=limit,
        offset=offset,
    )


@router.post("/bulk-delete", response_model=BulkDeleteResult, summary="Cancel several sessions")
def bulk_delete_sessions(
    req: BulkDeleteRequest,
    session_manager: SessionManagerDep,
    user_id: str = Depends(get_current_user_id),
) -> BulkDeleteResult:
    """Cancel every listed session the caller hosts.

    Sessions hosted by someone else are skipped.
    """
    deleted = session_manager.bulk_delete_sessions([str(i) for i in req.ids], user_id)
    return BulkDeleteResult(deleted_count=deleted)


@router.get("/{session_id}", response_model=SessionDetail, summary="Get a session")
def get_session(
    session_id: UUID,
    session_manager: SessionManagerDep,
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> SessionDetail:
    """Get a session with its participants.

    Raises:
        NotFoundError: If the session does not exist or is hidden from the caller.
    """
    detail = session_manager.get_session_by_id(str(session_id), requester_id=user_id)
    if detail is None:
        raise NotFoundError("Session", str(session_id))
    return detail


@router.get(
    "/{session_id}/summary",
    response_model=SessionSummary,
    summary="Participant counts by hand-off state",
)
def get_session_summary(
    session_id: UUID,
    session_manager: SessionManagerDep,
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> SessionSummary:
    return session_manager.get_session_summary(str(session_id), requester_id=user_id)


@router.post("/{session_id}/join", response_model=SessionDetail, summary="Join a session")
def join_session(
    session_id: UUID,
    session_manager: SessionManagerDep,
    req: Optional[JoinSessionRequest] = None,
    user_id: str = Depends(get_current_user_id),
) -> SessionDetail:
    """Join a session, optionally with an invite code.

    Args:
        session_id: Session to join.
        session_manager: Injected SessionManager instance.
        req: Optional body carrying an invite code.
        user_id: Authenticated caller.

    Returns:
        The session as seen after joining.
    """
    invite_code = req.invite_code if req else None
    return session_manager.join_session(str(session_id), user_id, invite_code=invite_code)


@router.post(
    "/{session_id}/handoff/{step}",
    response_model=HandoffStateInfo,
    summary="Report hand-off progress",
)
def update_handoff_state(
    session_id: UUID,
    step: HandoffStep,
    session_manager: SessionManagerDep,
    user_id: str = Depends(get_current_user_id),
) -> HandoffStateInfo:
    return session_manager.update_handoff_state(
        str(session_id), user_id, HANDOFF_STEP_STATES[step]
    )


@router.delete("/{session_id}", summary="Cancel a session")
def delete_session(
    session_id: UUID,
    session_manager: SessionManagerDep,
    user_id: str = Depends(get_current_user_id),
) -> dict:
    """Cancel a session the caller hosts.

    Returns:
        Dictionary with success message.
    """
    session_manager.delete_session(str(session_id), user_id)
    return {"message": "Session deleted successfully"}
