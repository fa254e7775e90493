"""Cached favorite activities, read for quick play."""

import hashlib
import json
import logging
from datetime import timedelta
from typing import List, Sequence

from sqlalchemy.orm import Session

from models.favorite_experience import FavoriteExperiencesCacheModel
from schemas.activity import FavoriteExperience
from utils.converters import parse_iso, to_iso, utc_now_iso

logger = logging.getLogger(__name__)

SERVER_CACHE_TTL = timedelta(minutes=15)


def normalize_favorites(raw: object) -> List[FavoriteExperience]:
    """Keep only well-formed favorite entries."""
    if not isinstance(raw, list):
        return []
    favorites = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        favorite_id = item.get("id")
        name = item.get("name")
        if favorite_id in (None, "") or not isinstance(name, str) or not name.strip():
            continue
        favorites.append(
            FavoriteExperience(
                id=str(favorite_id),
                name=name.strip(),
                url=item.get("url") or None,
                thumbnail_url=item.get("thumbnailUrl") or item.get("thumbnail_url") or None,
            )
        )
    return favorites


def favorites_etag(favorites: Sequence[FavoriteExperience]) -> str:
    payload = json.dumps([f.model_dump() for f in favorites], sort_keys=True)
    return '"' + hashlib.sha256(payload.encode("utf-8")).hexdigest()[:32] + '"'


class FavoritesManager:
    """Reads and stores the per-user favorites cache."""

    def __init__(self, db: Session):
        self.db = db

    def get_cached_favorites(self, user_id: str) -> List[FavoriteExperience]:
        """Return the cached favorites, stale or not; refreshing is done elsewhere."""
        row = (
            self.db.query(FavoriteExperiencesCacheModel)
            .filter(FavoriteExperiencesCacheModel.user_id == user_id)
            .first()
        )
        if row is None:
            return []
        if parse_iso(row.expires_at) < parse_iso(utc_now_iso()):
            logger.debug("Serving stale favorites cache for user %s", user_id)
        return normalize_favorites(row.favorites_json)

    def store_favorites(self, user_id: str, favorites: Sequence[dict]) -> List[FavoriteExperience]:
        """Replace the cached favorites of a user."""
        normalized = normalize_favorites(list(favorites))
        now = parse_iso(utc_now_iso())
        payload = [
            {
                "id": f.id,
                "name": f.name,
                "url": f.url,
                "thumbnailUrl": f.thumbnail_url,
            }
            for f in normalized
        ]
        row = (
            self.db.query(FavoriteExperiencesCacheModel)
            .filter(FavoriteExperiencesCacheModel.user_id == user_id)
            .first()
        )
        if row is None:
            row = FavoriteExperiencesCacheModel(user_id=user_id)
            self.db.add(row)
        row.favorites_json = payload
        row.etag = favorites_etag(normalized)
        row.cached_at = to_iso(now)
        row.expires_at = to_iso(now + SERVER_CACHE_TTL)
        self.db.commit()
        return normalized
