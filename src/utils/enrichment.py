"""Best-effort activity metadata enrichment.

Fetches the display name and icon thumbnail of an activity and stores them on
its activity record. Runs after the request that created the session has been
answered, so it opens its own database session and never raises.
"""

import logging
from datetime import timedelta
from typing import Callable, Optional

import httpx
from sqlalchemy.orm import Session

from config import ENRICHMENT_TTL_HOURS, HTTP_TIMEOUT_SECONDS
from models.activity_record import ActivityRecordModel
from utils.converters import parse_iso, utc_now_iso

logger = logging.getLogger(__name__)

UNIVERSE_URL = "https://apis.roblox.com/universes/v1/places/{place_id}/universe"
GAMES_URL = "https://games.roblox.com/v1/games"
THUMBNAIL_URL = "https://thumbnails.roblox.com/v1/places/gameicons"


class ActivityEnrichmentService:
    """Resolves display metadata for activity records."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        http_client: Optional[httpx.Client] = None,
        ttl: timedelta = timedelta(hours=ENRICHMENT_TTL_HOURS),
    ):
        self._session_factory = session_factory
        self._http = http_client or httpx.Client(timeout=HTTP_TIMEOUT_SECONDS)
        self._ttl = ttl

    def enrich(self, activity_id: str) -> None:
        """Fetch and store metadata for an activity; failures are only logged."""
        try:
            self._enrich(activity_id)
        except Exception as exc:
            logger.warning("Enrichment failed for activity %s: %s", activity_id, exc)

    def _enrich(self, activity_id: str) -> None:
        db = self._session_factory()
        try:
            record = (
                db.query(ActivityRecordModel)
                .filter(ActivityRecordModel.activity_id == activity_id)
                .first()
            )
            if record is None:
                logger.info("No activity record for %s, skipping enrichment", activity_id)
                return
            if record.display_name and record.enriched_at and not self._is_stale(record.enriched_at):
                return

            universe_id = self._fetch_universe_id(activity_id)
            name = self._fetch_name(universe_id)
            thumbnail = self._fetch_thumbnail(activity_id)

            if name:
                record.display_name = name
            if thumbnail:
                record.thumbnail_url = thumbnail
            now = utc_now_iso()
            record.enriched_at = now
            record.updated_at = now
            db.commit()
            logger.info("Enriched activity %s (%s)", activity_id, name)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _is_stale(self, enriched_at: str) -> bool:
        return parse_iso(enriched_at) + self._ttl < parse_iso(utc_now_iso())

    def _fetch_universe_id(self, place_id: str) -> int:
        response = self._http.get(UNIVERSE_URL.format(place_id=place_id))
        response.raise_for_status()
        universe_id = response.json().get("universeId")
        if not universe_id:
            raise ValueError(f"No universe for place {place_id}")
        return int(universe_id)

    def _fetch_name(self, universe_id: int) -> Optional[str]:
        response = self._http.get(GAMES_URL, params={"universeIds": universe_id})
        response.raise_for_status()
        data = response.json().get("data") or []
        return data[0].get("name") if data else None

    def _fetch_thumbnail(self, place_id: str) -> Optional[str]:
        # A missing thumbnail does not void the name we already have
        try:
            response = self._http.get(
                THUMBNAIL_URL,
                params={
                    "placeIds": place_id,
                    "size": "256x256",
                    "format": "Png",
                    "isCircular": "false",
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.info("Thumbnail lookup failed for place %s: %s", place_id, exc)
            return None
        data = response.json().get("data") or []
        if not data or data[0].get("state") != "Completed":
            return None
        return data[0].get("imageUrl")
