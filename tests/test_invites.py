"""Tests for invite codes and their redemption."""

from datetime import datetime, timedelta

import pytest
import pytz
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import ConflictError, InternalError, SessionFullError
from models.session_invite import SessionInviteModel
from models.session_participant import SessionParticipantModel
from utils.invite_codes import generate_invite_code, is_valid_invite_code

GAME_URL = "https://www.roblox.com/games/606849621/Jailbreak"


def _code(result):
    return result.invite_link.rsplit("/", 1)[1]


def _uses(db, code):
    db.expire_all()
    return db.query(SessionInviteModel).filter_by(code=code).one().uses_count


def test_generated_codes_use_unambiguous_alphabet():
    codes = {generate_invite_code() for _ in range(50)}

    assert all(is_valid_invite_code(code) for code in codes)
    assert all(ch not in code for code in codes for ch in "01OIl")
    assert len(codes) > 1


@pytest.mark.parametrize("code", ["", "ABC", "ABCDEFGH0", "abcdefghj", None])
def test_invalid_invite_codes(code):
    assert not is_valid_invite_code(code)


def test_exhausted_invite_rejected(manager, db):
    created = manager.create_session("host-1", GAME_URL, "Once", max_participants=5, invite_max_uses=1)
    code = _code(created)
    manager.join_session(created.session.id, "player-1", invite_code=code)

    with pytest.raises(ConflictError):
        manager.join_session(created.session.id, "player-2", invite_code=code)

    assert _uses(db, code) == 1
    assert (
        db.query(SessionParticipantModel)
        .filter_by(session_id=created.session.id, user_id="player-2")
        .first()
        is None
    )


def test_rejoin_does_not_consume_invite_use(manager, db):
    created = manager.create_session("host-1", GAME_URL, "Once", max_participants=5, invite_max_uses=1)
    code = _code(created)
    manager.join_session(created.session.id, "player-1", invite_code=code)

    detail = manager.join_session(created.session.id, "player-1", invite_code=code)

    assert detail.current_participants == 2
    assert _uses(db, code) == 1


def test_expired_invite_rejected(manager, db):
    expired = datetime.now(pytz.utc) - timedelta(hours=1)
    created = manager.create_session(
        "host-1", GAME_URL, "Old", max_participants=5, invite_expires_at=expired
    )

    with pytest.raises(ConflictError):
        manager.join_session(created.session.id, "player-1", invite_code=_code(created))

    assert _uses(db, _code(created)) == 0


def test_unlimited_invite_counts_every_use(manager, db):
    created = manager.create_session("host-1", GAME_URL, "Many", max_participants=5)
    code = _code(created)

    for player in ("player-1", "player-2", "player-3"):
        manager.join_session(created.session.id, player, invite_code=code)

    assert _uses(db, code) == 3


def test_full_session_does_not_consume_invite(manager, db):
    created = manager.create_session("host-1", GAME_URL, "Tiny", max_participants=1)

    with pytest.raises(SessionFullError):
        manager.join_session(created.session.id, "player-1", invite_code=_code(created))

    assert _uses(db, _code(created)) == 0


def test_failed_participant_write_does_not_consume_invite(manager, db, monkeypatch):
    created = manager.create_session("host-1", GAME_URL, "Once", max_participants=5, invite_max_uses=1)
    code = _code(created)

    def failing_commit():
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(db, "commit", failing_commit)
    with pytest.raises(InternalError):
        manager.join_session(created.session.id, "player-1", invite_code=code)
    monkeypatch.undo()

    assert _uses(db, code) == 0
    detail = manager.join_session(created.session.id, "player-1", invite_code=code)
    assert detail.current_participants == 2
    assert _uses(db, code) == 1
