"""Conversions between ORM models, schemas and stored timestamps.

Timestamps are stored as ISO-8601 UTC strings with microsecond precision so
that comparing the strings compares the instants.
"""

from datetime import datetime
from typing import Iterable, Optional

import pytz

from config import ACTIVITY_START_URL_TEMPLATE, ACTIVITY_WEB_URL_TEMPLATE
from models.activity_record import ActivityRecordModel
from models.session import SessionModel
from models.session_participant import SessionParticipantModel
from models.user import UserModel
from schemas.session import ActivityInfo, ParticipantInfo, SessionInfo
from schemas.user import User


def to_iso(value: datetime) -> str:
    """Render a datetime as a UTC ISO string; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = pytz.utc.localize(value)
    return value.astimezone(pytz.utc).isoformat(timespec="microseconds")


def utc_now_iso() -> str:
    return to_iso(datetime.now(pytz.utc))


def parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = pytz.utc.localize(parsed)
    return parsed


def model_to_activity(
    model: Optional[ActivityRecordModel], activity_id: str
) -> ActivityInfo:
    if model is None:
        return ActivityInfo(
            activity_id=activity_id,
            canonical_url=ACTIVITY_WEB_URL_TEMPLATE.format(activity_id=activity_id),
            start_url=ACTIVITY_START_URL_TEMPLATE.format(activity_id=activity_id),
        )
    return ActivityInfo(
        activity_id=model.activity_id,
        canonical_url=model.canonical_url,
        start_url=model.start_url,
        display_name=model.display_name,
        thumbnail_url=model.thumbnail_url,
    )


def model_to_session_info(model: SessionModel, current_participants: int) -> SessionInfo:
    return SessionInfo(
        id=model.id,
        activity_id=model.activity_id,
        host_id=model.host_id,
        title=model.title,
        description=model.description,
        visibility=model.visibility,
        status=model.status,
        max_participants=model.max_participants,
        current_participants=current_participants,
        scheduled_start=model.scheduled_start,
        activity=model_to_activity(model.activity, model.activity_id),
        created_at=model.created_at,
    )


def models_to_participants(
    models: Iterable[SessionParticipantModel], with_handoff: bool = True
) -> list:
    """Convert participant rows; hand-off state is only read when supported."""
    results = []
    for m in models:
        results.append(
            ParticipantInfo(
                user_id=m.user_id,
                role=m.role,
                state=m.state,
                handoff_state=m.handoff_state if with_handoff else "rsvp_joined",
                joined_at=m.joined_at,
            )
        )
    return results


def model_to_user(model: UserModel) -> User:
    return User(
        user_id=model.user_id,
        username=model.username,
        display_name=model.display_name,
        external_user_id=model.external_user_id,
        create_at=model.create_at,
    )
