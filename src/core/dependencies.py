"""Dependency injection module for FastAPI.

This module provides dependency injection functions for FastAPI routes.
Collaborators that run after the response is sent open their own database
sessions through ``SessionLocal``.
"""

from typing import Annotated

from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

from core.database import SessionLocal, get_db
from utils import session_manager
from utils import user_manager
from utils.enrichment import ActivityEnrichmentService
from utils.favorites_manager import FavoritesManager
from utils.friendship_manager import FriendshipManager
from utils.link_normalizer import ActivityLinkNormalizer
from utils.notifier import PushNotifier

# Built once; the HTTP clients they hold are reused across requests
_link_normalizer: ActivityLinkNormalizer = None
_enrichment: ActivityEnrichmentService = None
_notifier: PushNotifier = None
_capabilities: session_manager.SchemaCapabilities = None


def get_link_normalizer() -> ActivityLinkNormalizer:
    global _link_normalizer
    if _link_normalizer is None:
        _link_normalizer = ActivityLinkNormalizer()
    return _link_normalizer


def get_enrichment() -> ActivityEnrichmentService:
    global _enrichment
    if _enrichment is None:
        _enrichment = ActivityEnrichmentService(SessionLocal)
    return _enrichment


def get_notifier() -> PushNotifier:
    global _notifier
    if _notifier is None:
        _notifier = PushNotifier(SessionLocal)
    return _notifier


def get_schema_capabilities() -> session_manager.SchemaCapabilities:
    """Get the schema capabilities decided at startup.

    Returns:
        SchemaCapabilities instance (singleton).
    """
    global _capabilities
    if _capabilities is None:
        _capabilities = session_manager.SchemaCapabilities.from_config()
    return _capabilities


def get_session_manager(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    link_normalizer: ActivityLinkNormalizer = Depends(get_link_normalizer),
    enrichment: ActivityEnrichmentService = Depends(get_enrichment),
    notifier: PushNotifier = Depends(get_notifier),
    capabilities: session_manager.SchemaCapabilities = Depends(get_schema_capabilities),
) -> session_manager.SessionManager:
    """Get SessionManager instance with request-scoped DB session.

    Enrichment and invite notifications are queued as background tasks so
    they run after the response is sent.

    Args:
        background_tasks: Request background task queue.
        db: Database session.
        link_normalizer: Activity link normalizer.
        enrichment: Activity metadata enrichment service.
        notifier: Invite push notifier.
        capabilities: Schema capabilities of the connected database.

    Returns:
        SessionManager instance.
    """
    return session_manager.SessionManager(
        db,
        link_resolver=link_normalizer,
        friendship_oracle=FriendshipManager(db),
        enrichment=enrichment,
        notifier=notifier,
        favorites=FavoritesManager(db),
        dispatch=background_tasks.add_task,
        capabilities=capabilities,
    )


def get_user_manager(db: Session = Depends(get_db)) -> user_manager.UserManager:
    """Get UserManager instance with request-scoped DB session.

    Args:
        db: Database session.

    Returns:
        UserManager instance.
    """
    return user_manager.UserManager(db)


# Type aliases for dependency injection
SessionManagerDep = Annotated[
    session_manager.SessionManager, Depends(get_session_manager)
]
UserManagerDep = Annotated[
    user_manager.UserManager, Depends(get_user_manager)
]