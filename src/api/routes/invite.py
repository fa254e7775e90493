"""Invite routes.

Invite previews are public so that an invite link can be shown to someone
who is not signed in yet.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from core.dependencies import SessionManagerDep
from core.exceptions import ValidationError
from schemas.session import InvitePreview
from utils.invite_codes import is_valid_invite_code

router = APIRouter(prefix="/api/invites", tags=["Invite"])


def valid_invite_code(code: str = Path(description="Invite code")) -> str:
    if not is_valid_invite_code(code):
        raise ValidationError("Invalid invite code format")
    return code


@router.get("/{code}", response_model=InvitePreview, summary="Preview an invite")
def get_invite_preview(
    session_manager: SessionManagerDep,
    code: Annotated[str, Depends(valid_invite_code)],
) -> InvitePreview:
    return session_manager.get_invite_preview(code)
