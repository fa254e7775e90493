"""Database models.

Importing this package registers every table with ``Base.metadata``.
"""

from .activity_record import ActivityRecordModel
from .favorite_experience import FavoriteExperiencesCacheModel
from .friendship import FriendshipModel
from .push_token import UserPushTokenModel
from .session import SessionModel
from .session_invite import SessionInviteModel
from .session_invited_user import SessionInvitedUserModel
from .session_participant import SessionParticipantModel
from .user import UserModel

__all__ = [
    "ActivityRecordModel",
    "FavoriteExperiencesCacheModel",
    "FriendshipModel",
    "SessionInviteModel",
    "SessionInvitedUserModel",
    "SessionModel",
    "SessionParticipantModel",
    "UserModel",
    "UserPushTokenModel",
]
