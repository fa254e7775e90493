"""Visibility rules deciding who may see a session."""

import logging
from typing import List, Optional, Protocol

from sqlalchemy.orm import Session

from models.session import SessionModel
from models.session_participant import SessionParticipantModel

logger = logging.getLogger(__name__)

# Participant states that grant read access to non-public sessions
VISIBLE_PARTICIPANT_STATES = ("joined", "invited")


class FriendshipOracle(Protocol):
    def are_friends(self, user_a: str, user_b: str) -> bool: ...

    def list_friend_ids(self, user_id: str) -> List[str]: ...

class SessionAccessPolicy:
    """Applies the visibility algorithm shared by reads and joins.

    - public sessions are visible to everyone;
    - the host always sees the session;
    - joined or invited participants see it;
    - friends sessions are visible to confirmed friends of the host;
    - invite_only sessions are otherwise hidden.
    """

    def __init__(self, db: Session, friendship_oracle: FriendshipOracle):
        self.db = db
        self.friendship_oracle = friendship_oracle

    def get_participant(
        self, session_id: str, user_id: str
    ) -> Optional[SessionParticipantModel]:
        return (
            self.db.query(SessionParticipantModel)
            .filter(
                SessionParticipantModel.session_id == session_id,
                SessionParticipantModel.user_id == user_id,
            )
            .first()
        )

    def can_view(
        self,
        session: SessionModel,
        requester_id: Optional[str],
        participant: Optional[SessionParticipantModel] = None,
    ) -> bool:
        """Return whether ``requester_id`` may see ``session``.

        Args:
            session: The session being accessed.
            requester_id: Caller, or None for anonymous requests.
            participant: The caller's participant row if already loaded.
        """
        if session.visibility == "public":
            return True
        if not requester_id:
            return False
        if session.host_id == requester_id:
            return True

        if participant is None:
            participant = self.get_participant(session.id, requester_id)
        if participant is not None and participant.state in VISIBLE_PARTICIPANT_STATES:
            return True

        if session.visibility == "friends":
            return bool(self.friendship_oracle.are_friends(requester_id, session.host_id))

        return False
