"""Tests for SessionLifecycleMaintenance."""

from datetime import datetime, timedelta

import pytest
import pytz
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import InternalError
from main import main
from models.session import SessionModel
from utils.converters import to_iso
from utils.session_lifecycle import SessionLifecycleMaintenance

GAME_URL = "https://www.roblox.com/games/606849621/Jailbreak"
NOW = datetime(2030, 1, 1, 12, 0, tzinfo=pytz.utc)


def _session(manager, db, status="active", created=None, start=None, updated=None):
    session_id = manager.create_session("host-1", GAME_URL, "Session").session.id
    model = db.query(SessionModel).filter_by(id=session_id).one()
    model.status = status
    model.created_at = to_iso(created or NOW)
    model.scheduled_start = to_iso(start) if start else None
    model.updated_at = to_iso(updated or created or NOW)
    db.commit()
    return session_id


def _reload(db, session_id):
    db.expire_all()
    return db.query(SessionModel).filter_by(id=session_id).one()


def test_stale_active_sessions_are_completed(manager, db):
    stale = _session(manager, db, created=NOW - timedelta(hours=3))
    fresh = _session(manager, db, created=NOW - timedelta(minutes=30))
    started_long_ago = _session(
        manager, db, created=NOW - timedelta(minutes=10), start=NOW - timedelta(hours=5)
    )

    result = SessionLifecycleMaintenance(db).process_lifecycle(now=NOW)

    assert result.auto_completed_count == 2
    assert result.archived_completed_count == 0
    assert result.checked_at == to_iso(NOW)
    assert _reload(db, stale).status == "completed"
    assert _reload(db, stale).scheduled_end == to_iso(NOW)
    assert _reload(db, started_long_ago).status == "completed"
    assert _reload(db, fresh).status == "active"


def test_old_completed_sessions_are_archived(manager, db):
    old = _session(manager, db, status="completed", updated=NOW - timedelta(hours=3))
    recent = _session(manager, db, status="completed", updated=NOW - timedelta(hours=1))

    result = SessionLifecycleMaintenance(db).process_lifecycle(now=NOW)

    assert result.archived_completed_count == 1
    assert _reload(db, old).archived_at == to_iso(NOW)
    assert _reload(db, recent).archived_at is None
    assert [s.id for s in manager.list_sessions(status="completed").sessions] == [recent]


def test_batch_size_limits_each_pass(manager, db):
    for hours in (5, 4, 3):
        _session(manager, db, created=NOW - timedelta(hours=hours))

    result = SessionLifecycleMaintenance(db, batch_size=2).process_lifecycle(now=NOW)

    assert result.auto_completed_count == 2


@pytest.mark.parametrize("value", [0, -3, "abc", None])
def test_invalid_options_fall_back_to_defaults(db, value):
    maintenance = SessionLifecycleMaintenance(
        db, auto_complete_after_hours=value, completed_retention_hours=value, batch_size=value
    )

    assert maintenance.auto_complete_after_hours == 2
    assert maintenance.completed_retention_hours == 2
    assert maintenance.batch_size == 200


def test_store_failure_raises_internal_error(db, monkeypatch):
    maintenance = SessionLifecycleMaintenance(db)

    def broken(*args):
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(maintenance, "_auto_complete", broken)

    with pytest.raises(InternalError):
        maintenance.process_lifecycle(now=NOW)


def test_cli_runs_lifecycle(capsys):
    assert main(["lifecycle", "--batch-size", "10"]) == 0

    out = capsys.readouterr().out
    assert '"auto_completed_count": 0' in out
