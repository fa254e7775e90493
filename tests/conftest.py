import os
import re

# Keep the module-level engine in memory before anything imports core.database
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from core import dependencies
from core.database import build_engine, get_db, init_db
from core.exceptions import ValidationError
from schemas.activity import FavoriteExperience, NormalizedActivityLink
from utils.session_manager import SchemaCapabilities, SessionManager
from utils.user_manager import UserManager

_PLACE_RE = re.compile(r"(\d+)")


class FakeLinkResolver:
    """Accepts any URL containing a number and uses it as the activity id."""

    def __init__(self):
        self.calls = []

    def normalize(self, url):
        self.calls.append(url)
        match = _PLACE_RE.search(url or "")
        if not match:
            raise ValidationError("Unable to extract activity id from URL")
        activity_id = match.group(1)
        return NormalizedActivityLink(
            activity_id=activity_id,
            canonical_url=f"https://www.roblox.com/games/{activity_id}",
            start_url=f"https://www.roblox.com/games/start?placeId={activity_id}",
            original_input_url=url,
            normalized_from="web_games",
        )


class FakeFriendshipOracle:
    def __init__(self, pairs=()):
        self.pairs = {frozenset(p) for p in pairs}

    def befriend(self, user_a, user_b):
        self.pairs.add(frozenset((user_a, user_b)))

    def are_friends(self, user_a, user_b):
        return user_a != user_b and frozenset((user_a, user_b)) in self.pairs

    def list_friend_ids(self, user_id):
        return [other for pair in self.pairs if user_id in pair for other in pair if other != user_id]


class RecordingEnrichment:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def enrich(self, activity_id):
        self.calls.append(activity_id)
        if self.fail:
            raise RuntimeError("metadata service unavailable")


class RecordingNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send_invite(self, user_id, session_id, title, host_display_name=None):
        self.sent.append((user_id, session_id, title, host_display_name))
        if self.fail:
            raise RuntimeError("push service unavailable")


class FakeFavorites:
    def __init__(self, favorites=None):
        self.favorites = favorites or {}

    def set(self, user_id, *entries):
        self.favorites[user_id] = [FavoriteExperience(**entry) for entry in entries]

    def get_cached_favorites(self, user_id):
        return list(self.favorites.get(user_id, []))


@pytest.fixture()
def engine():
    test_engine = build_engine("sqlite://")
    init_db(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def link_resolver():
    return FakeLinkResolver()


@pytest.fixture()
def friendships():
    return FakeFriendshipOracle()


@pytest.fixture()
def enrichment():
    return RecordingEnrichment()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def favorites():
    return FakeFavorites()


@pytest.fixture()
def make_manager(db, link_resolver, friendships, enrichment, notifier, favorites):
    """Build a SessionManager over the test database; keyword overrides win."""

    def factory(**overrides):
        options = dict(
            link_resolver=link_resolver,
            friendship_oracle=friendships,
            enrichment=enrichment,
            notifier=notifier,
            favorites=favorites,
            capabilities=SchemaCapabilities(handoff_state=True),
        )
        options.update(overrides)
        return SessionManager(db, **options)

    return factory


@pytest.fixture()
def manager(make_manager):
    return make_manager()


@pytest.fixture()
def users(db):
    return UserManager(db)


@pytest.fixture()
def client(session_factory, link_resolver, enrichment, notifier):
    from app import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[dependencies.get_link_normalizer] = lambda: link_resolver
    app.dependency_overrides[dependencies.get_enrichment] = lambda: enrichment
    app.dependency_overrides[dependencies.get_notifier] = lambda: notifier
    app.dependency_overrides[dependencies.get_schema_capabilities] = (
        lambda: SchemaCapabilities(handoff_state=True)
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
