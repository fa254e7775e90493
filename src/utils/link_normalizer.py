"""Activity link normalization.

Parses the link formats users paste or share and extracts the canonical
activity (place) id plus canonical URLs. Supported formats:

- https://www.roblox.com/games/<placeId>/<slug>
- https://www.roblox.com/games/start?placeId=<placeId>
- roblox://placeId=<placeId> and roblox://experiences/start?placeId=<placeId>
- https://ro.blox.com/<code> (af_web_dp parameter or redirect following)
- https://www.roblox.com/share?code=...&type=... and /share-links
"""

import logging
import re
from typing import Optional
from urllib.parse import ParseResult, parse_qs, urlencode, urlparse

import httpx

from config import (
    ACTIVITY_START_URL_TEMPLATE,
    ACTIVITY_WEB_URL_TEMPLATE,
    HTTP_TIMEOUT_SECONDS,
)
from core.exceptions import ValidationError
from schemas.activity import NormalizedActivityLink

logger = logging.getLogger(__name__)

WEB_HOSTS = ("www.roblox.com", "roblox.com")
SHORTLINK_HOST = "ro.blox.com"
SHARE_PATHS = ("/share", "/share-links")

_GAMES_PATH_RE = re.compile(r"^/games/(\d+)")
_PROTOCOL_PLACE_RE = re.compile(r"placeId=(\d+)")
_START_PLACE_META_RE = re.compile(
    r'<meta\s+name="roblox:start_place_id"\s+content="(\d+)"', re.IGNORECASE
)


class ActivityLinkNormalizer:
    """Turns a free-form activity URL into a canonical identifier and URLs."""

    def __init__(self, http_client: Optional[httpx.Client] = None):
        """Initialize the normalizer.

        Args:
            http_client: Client used for shortlink redirects and share-link
                pages. A client with the configured timeout is created when
                omitted.
        """
        self._http = http_client or httpx.Client(
            timeout=HTTP_TIMEOUT_SECONDS, follow_redirects=True
        )

    def normalize(self, url: str) -> NormalizedActivityLink:
        """Normalize any supported link format.

        Args:
            url: Link as entered by the user.

        Returns:
            NormalizedActivityLink for the extracted activity.

        Raises:
            ValidationError: If the link is malformed or names no activity.
        """
        original = (url or "").strip()
        if not original:
            raise ValidationError("Activity URL is required")

        if original.startswith("roblox://"):
            place_id = self._extract_from_protocol(original)
            if place_id:
                return self._build(place_id, original, "protocol")

        parsed = urlparse(original)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValidationError("Invalid URL format")

        if parsed.hostname == SHORTLINK_HOST:
            place_id = self._extract_from_shortlink(parsed, original)
            if place_id:
                normalized_from = (
                    "shortlink_param"
                    if "af_web_dp" in parse_qs(parsed.query)
                    else "shortlink_redirect"
                )
                return self._build(place_id, original, normalized_from)

        if parsed.hostname in WEB_HOSTS:
            if parsed.path in SHARE_PATHS:
                place_id = self._resolve_share_link(parsed)
                if place_id:
                    return self._build(place_id, original, "share_link")
                raise ValidationError("Unable to resolve share link to an activity")

            place_id = self._extract_from_web_games(parsed)
            if place_id:
                return self._build(place_id, original, "web_games")

            place_id = self._extract_from_web_start(parsed)
            if place_id:
                return self._build(place_id, original, "web_start")

        raise ValidationError("Unable to extract activity id from URL")

    @staticmethod
    def _build(place_id: str, original: str, normalized_from: str) -> NormalizedActivityLink:
        return NormalizedActivityLink(
            activity_id=place_id,
            canonical_url=ACTIVITY_WEB_URL_TEMPLATE.format(activity_id=place_id),
            start_url=ACTIVITY_START_URL_TEMPLATE.format(activity_id=place_id),
            original_input_url=original,
            normalized_from=normalized_from,
        )

    @staticmethod
    def _extract_from_web_games(parsed: ParseResult) -> Optional[str]:
        match = _GAMES_PATH_RE.match(parsed.path)
        return match.group(1) if match else None

    @staticmethod
    def _extract_from_web_start(parsed: ParseResult) -> Optional[str]:
        values = parse_qs(parsed.query).get("placeId")
        if values and values[0].isdigit():
            return values[0]
        return None

    @staticmethod
    def _extract_from_protocol(url: str) -> Optional[str]:
        match = _PROTOCOL_PLACE_RE.search(url)
        return match.group(1) if match else None

    def _extract_from_web_url(self, url: str) -> Optional[str]:
        parsed = urlparse(url)
        if parsed.hostname not in WEB_HOSTS:
            return None
        return self._extract_from_web_games(parsed) or self._extract_from_web_start(parsed)

    def _extract_from_shortlink(self, parsed: ParseResult, original: str) -> Optional[str]:
        """Read the destination from af_web_dp, else follow the redirect chain."""
        destination = parse_qs(parsed.query).get("af_web_dp")
        if destination:
            # parse_qs already percent-decoded the value
            place_id = self._extract_from_web_url(destination[0])
            if place_id:
                return place_id

        try:
            response = self._http.head(original)
        except httpx.HTTPError as exc:
            logger.info("Failed to follow shortlink %s: %s", original, exc)
            return None
        return self._extract_from_web_url(str(response.url))

    def _resolve_share_link(self, parsed: ParseResult) -> Optional[str]:
        """Fetch a share-link page and read its start place meta tag."""
        query = parse_qs(parsed.query)
        code = query.get("code")
        link_type = query.get("type")
        if not code or not link_type:
            return None

        canonical = "https://www.roblox.com/share-links?" + urlencode(
            {"code": code[0], "type": link_type[0]}
        )
        try:
            response = self._http.get(canonical)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.info("Failed to resolve share link %s: %s", canonical, exc)
            return None

        match = _START_PLACE_META_RE.search(response.text)
        return match.group(1) if match else None
