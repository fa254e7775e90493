"""Periodic maintenance of session status.

Active sessions that were never closed are completed after a grace period,
and completed sessions are archived once their retention period is over.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

import pytz
from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import (
    LIFECYCLE_AUTO_COMPLETE_AFTER_HOURS,
    LIFECYCLE_BATCH_SIZE,
    LIFECYCLE_COMPLETED_RETENTION_HOURS,
)
from core.exceptions import InternalError
from models.session import SessionModel
from schemas.activity import LifecycleRunResult
from utils.converters import to_iso

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 1000


def _positive_int(value, default: int) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


class SessionLifecycleMaintenance:
    def __init__(
        self,
        db: Session,
        auto_complete_after_hours: int = LIFECYCLE_AUTO_COMPLETE_AFTER_HOURS,
        completed_retention_hours: int = LIFECYCLE_COMPLETED_RETENTION_HOURS,
        batch_size: int = LIFECYCLE_BATCH_SIZE,
    ):
        self.db = db
        self.auto_complete_after_hours = _positive_int(
            auto_complete_after_hours, LIFECYCLE_AUTO_COMPLETE_AFTER_HOURS
        )
        self.completed_retention_hours = _positive_int(
            completed_retention_hours, LIFECYCLE_COMPLETED_RETENTION_HOURS
        )
        self.batch_size = min(_positive_int(batch_size, LIFECYCLE_BATCH_SIZE), MAX_BATCH_SIZE)

    def process_lifecycle(self, now: Optional[datetime] = None) -> LifecycleRunResult:
        """Complete stale active sessions, then archive old completed ones.

        Args:
            now: Reference time; the current UTC time when omitted.

        Returns:
            LifecycleRunResult with the number of rows changed by each pass.

        Raises:
            InternalError: If the store cannot be read or updated.
        """
        now = now or datetime.now(pytz.utc)
        now_iso = to_iso(now)
        complete_cutoff = to_iso(now - timedelta(hours=self.auto_complete_after_hours))
        archive_cutoff = to_iso(now - timedelta(hours=self.completed_retention_hours))

        try:
            completed = self._auto_complete(complete_cutoff, now_iso)
            archived = self._archive_completed(archive_cutoff, now_iso)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Session lifecycle run failed: %s", exc)
            raise InternalError(f"Session lifecycle run failed: {exc}") from exc

        logger.info(
            "Session lifecycle: %d auto-completed, %d archived", completed, archived
        )
        return LifecycleRunResult(
            auto_completed_count=completed,
            archived_completed_count=archived,
            checked_at=now_iso,
        )

    def _auto_complete(self, cutoff: str, now_iso: str) -> int:
        # Sessions without a scheduled start age from their creation time
        stale = or_(
            SessionModel.scheduled_start < cutoff,
            and_(SessionModel.scheduled_start.is_(None), SessionModel.created_at < cutoff),
        )
        rows = (
            self.db.query(SessionModel)
            .filter(
                SessionModel.status == "active",
                SessionModel.archived_at.is_(None),
                stale,
            )
            .order_by(SessionModel.created_at.asc())
            .limit(self.batch_size)
            .all()
        )
        for row in rows:
            row.status = "completed"
            row.scheduled_end = now_iso
            row.updated_at = now_iso
        self.db.commit()
        return len(rows)

    def _archive_completed(self, cutoff: str, now_iso: str) -> int:
        rows = (
            self.db.query(SessionModel)
            .filter(
                SessionModel.status == "completed",
                SessionModel.archived_at.is_(None),
                SessionModel.updated_at < cutoff,
            )
            .order_by(SessionModel.updated_at.asc())
            .limit(self.batch_size)
            .all()
        )
        for row in rows:
            row.archived_at = now_iso
        self.db.commit()
        return len(rows)
