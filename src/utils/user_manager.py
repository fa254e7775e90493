"""User management utilities.

This module provides user storage and lookup, including resolving linked
activity-platform account ids to local users for direct invitations.
"""

import logging
import uuid
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.user import UserModel
from schemas.user import User
from utils.converters import model_to_user, utc_now_iso

logger = logging.getLogger(__name__)


class UserAlreadyExistsError(Exception):
    """Exception raised when trying to create a user that already exists."""

    pass


class UserManager:
    """Manages user data persistence and operations using SQLAlchemy."""

    def __init__(self, db: Session):
        """Initialize UserManager.

        Args:
            db: SQLAlchemy Session.
        """
        self.db = db

    def create_user(
        self,
        username: str,
        display_name: Optional[str] = None,
        external_user_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> User:
        """Create a new user.

        Args:
            username: Username for the new user.
            display_name: Optional display name.
            external_user_id: Optional linked activity-platform account id.
            user_id: Optional explicit id; a UUID is generated otherwise.

        Returns:
            Created User object.

        Raises:
            UserAlreadyExistsError: If the username or linked account is taken.
        """
        existing = self.db.query(UserModel).filter(UserModel.username == username).first()
        if existing:
            raise UserAlreadyExistsError(f"User '{username}' already exists")

        model = UserModel(
            user_id=user_id or str(uuid.uuid4()),
            username=username,
            display_name=display_name,
            external_user_id=external_user_id,
            create_at=utc_now_iso(),
        )

        # Two concurrent requests may both pass the check above
        try:
            self.db.add(model)
            self.db.commit()
            self.db.refresh(model)
        except IntegrityError as e:
            self.db.rollback()
            raise UserAlreadyExistsError(f"User '{username}' already exists") from e

        logger.info("Created user: %s", username)
        return model_to_user(model)

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Get a user by username.

        Args:
            username: Username to look up.

        Returns:
            User object if found, None otherwise.
        """
        model = self.db.query(UserModel).filter(UserModel.username == username).first()
        if model:
            return model_to_user(model)
        return None

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Get a user by user ID.

        Args:
            user_id: User ID to look up.

        Returns:
            User object if found, None otherwise.
        """
        model = self.db.query(UserModel).filter(UserModel.user_id == user_id).first()
        if model:
            return model_to_user(model)
        return None

    def get_users_by_external_ids(self, external_user_ids: Sequence[str]) -> List[User]:
        """Resolve linked platform account ids to local users.

        Unknown ids are ignored.
        """
        if not external_user_ids:
            return []
        models = (
            self.db.query(UserModel)
            .filter(UserModel.external_user_id.in_(list(external_user_ids)))
            .all()
        )
        return [model_to_user(m) for m in models]

