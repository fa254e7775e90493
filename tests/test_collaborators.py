"""Tests for the database- and HTTP-backed collaborators."""

import json
from datetime import timedelta

import httpx
import pytest

from models.activity_record import ActivityRecordModel
from models.push_token import UserPushTokenModel
from utils.converters import utc_now_iso
from utils.enrichment import ActivityEnrichmentService
from utils.favorites_manager import FavoritesManager, normalize_favorites
from utils.friendship_manager import FriendshipManager
from utils.notifier import PushNotifier
from utils.user_manager import UserAlreadyExistsError


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


# --- FriendshipManager ---


def test_friendship_is_symmetric(db):
    friends = FriendshipManager(db)
    friends.add_friendship("user-b", "user-a")

    assert friends.are_friends("user-a", "user-b")
    assert friends.are_friends("user-b", "user-a")
    assert friends.list_friend_ids("user-a") == ["user-b"]
    assert friends.list_friend_ids("user-b") == ["user-a"]


def test_pending_friendship_does_not_count(db):
    friends = FriendshipManager(db)
    friends.add_friendship("user-a", "user-b", status="pending")

    assert not friends.are_friends("user-a", "user-b")
    assert friends.list_friend_ids("user-a") == []


def test_user_is_not_their_own_friend(db):
    friends = FriendshipManager(db)

    assert not friends.are_friends("user-a", "user-a")
    with pytest.raises(ValueError):
        friends.add_friendship("user-a", "user-a")


# --- FavoritesManager ---


def test_favorites_round_trip_drops_malformed_entries(db):
    favorites = FavoritesManager(db)
    favorites.store_favorites(
        "user-a",
        [
            {"id": 920587237, "name": " Adopt Me! ", "thumbnailUrl": "https://t.rbxcdn.com/a"},
            {"id": "", "name": "No id"},
            {"id": "1", "name": ""},
            "garbage",
        ],
    )

    cached = favorites.get_cached_favorites("user-a")

    assert [(f.id, f.name, f.thumbnail_url) for f in cached] == [
        ("920587237", "Adopt Me!", "https://t.rbxcdn.com/a")
    ]
    assert favorites.get_cached_favorites("user-b") == []


def test_normalize_favorites_rejects_non_lists():
    assert normalize_favorites({"id": "1", "name": "x"}) == []
    assert normalize_favorites(None) == []


# --- UserManager ---


def test_user_manager_resolves_external_ids(users):
    users.create_user("alice", external_user_id="1001", user_id="alice-1")
    users.create_user("bob", user_id="bob-1")

    found = users.get_users_by_external_ids(["1001", "9999"])

    assert [u.user_id for u in found] == ["alice-1"]
    assert users.get_users_by_external_ids([]) == []


def test_user_manager_rejects_duplicates(users):
    users.create_user("alice", external_user_id="1001")

    with pytest.raises(UserAlreadyExistsError):
        users.create_user("alice")
    with pytest.raises(UserAlreadyExistsError):
        users.create_user("alice-2", external_user_id="1001")


# --- PushNotifier ---


def _add_tokens(db, user_id, *tokens):
    for token in tokens:
        db.add(UserPushTokenModel(user_id=user_id, push_token=token, created_at=utc_now_iso()))
    db.commit()


def test_notifier_posts_batches(db, session_factory):
    _add_tokens(db, "user-a", "ExponentPushToken[1]", "ExponentPushToken[2]", "ExponentPushToken[3]")
    batches = []

    def handler(request):
        batches.append(json.loads(request.content))
        return httpx.Response(200, json={"data": [{"status": "ok"}]})

    notifier = PushNotifier(session_factory, http_client=_client(handler), batch_size=2)
    notifier.send_invite("user-a", "session-1", "Heist night", host_display_name="Host")

    assert [len(batch) for batch in batches] == [2, 1]
    message = batches[0][0]
    assert message["body"] == 'Host invited you to "Heist night"'
    assert message["data"] == {"type": "session_invite", "sessionId": "session-1"}


def test_notifier_without_tokens_sends_nothing(session_factory):
    def handler(request):
        raise AssertionError("no request expected")

    PushNotifier(session_factory, http_client=_client(handler)).send_invite("user-a", "s", "t")


def test_notifier_swallows_transport_errors(db, session_factory):
    _add_tokens(db, "user-a", "ExponentPushToken[1]")

    def handler(request):
        raise httpx.ConnectError("offline")

    PushNotifier(session_factory, http_client=_client(handler)).send_invite("user-a", "s", "t")


# --- ActivityEnrichmentService ---


def _activity(db, activity_id="606849621", **fields):
    db.add(
        ActivityRecordModel(
            activity_id=activity_id,
            canonical_url=f"https://www.roblox.com/games/{activity_id}",
            start_url=f"https://www.roblox.com/games/start?placeId={activity_id}",
            updated_at=utc_now_iso(),
            **fields,
        )
    )
    db.commit()


def _metadata_handler(request):
    if "universe" in request.url.path:
        return httpx.Response(200, json={"universeId": 245662005})
    if request.url.host == "games.roblox.com":
        return httpx.Response(200, json={"data": [{"name": "Jailbreak"}]})
    return httpx.Response(
        200, json={"data": [{"state": "Completed", "imageUrl": "https://t.rbxcdn.com/icon"}]}
    )


def test_enrichment_stores_name_and_thumbnail(db, session_factory):
    _activity(db)

    ActivityEnrichmentService(session_factory, http_client=_client(_metadata_handler)).enrich("606849621")

    db.expire_all()
    record = db.query(ActivityRecordModel).one()
    assert record.display_name == "Jailbreak"
    assert record.thumbnail_url == "https://t.rbxcdn.com/icon"
    assert record.enriched_at is not None


def test_enrichment_skips_fresh_records(db, session_factory):
    _activity(db, display_name="Cached", enriched_at=utc_now_iso())

    def handler(request):
        raise AssertionError("no request expected")

    ActivityEnrichmentService(
        session_factory, http_client=_client(handler), ttl=timedelta(hours=1)
    ).enrich("606849621")

    db.expire_all()
    assert db.query(ActivityRecordModel).one().display_name == "Cached"


def test_enrichment_failure_is_swallowed(db, session_factory):
    _activity(db)

    def handler(request):
        return httpx.Response(503)

    ActivityEnrichmentService(session_factory, http_client=_client(handler)).enrich("606849621")

    db.expire_all()
    assert db.query(ActivityRecordModel).one().display_name is None
