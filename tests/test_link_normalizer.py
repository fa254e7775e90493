"""Tests for ActivityLinkNormalizer."""

import httpx
import pytest

from core.exceptions import ValidationError
from utils.link_normalizer import ActivityLinkNormalizer

SHARE_PAGE = """
<html><head>
<meta name="roblox:start_place_id" content="2753915549">
</head><body></body></html>
"""


def _normalizer(handler=None):
    def refuse(request):
        raise AssertionError(f"unexpected request to {request.url}")

    transport = httpx.MockTransport(handler or refuse)
    return ActivityLinkNormalizer(httpx.Client(transport=transport, follow_redirects=True))


@pytest.mark.parametrize(
    "url, normalized_from",
    [
        ("https://www.roblox.com/games/606849621/Jailbreak", "web_games"),
        ("https://roblox.com/games/606849621", "web_games"),
        ("https://www.roblox.com/games/start?placeId=606849621&launchData=x", "web_start"),
        ("roblox://placeId=606849621", "protocol"),
        ("roblox://experiences/start?placeId=606849621", "protocol"),
        (
            "https://ro.blox.com/Ebh5?af_web_dp=https%3A%2F%2Fwww.roblox.com%2Fgames%2F606849621",
            "shortlink_param",
        ),
    ],
)
def test_offline_formats(url, normalized_from):
    link = _normalizer().normalize(url)

    assert link.activity_id == "606849621"
    assert link.canonical_url == "https://www.roblox.com/games/606849621"
    assert link.start_url == "https://www.roblox.com/games/start?placeId=606849621"
    assert link.normalized_from == normalized_from
    assert link.original_input_url == url


def test_shortlink_follows_redirects():
    def handler(request):
        if request.url.host == "ro.blox.com":
            return httpx.Response(302, headers={"Location": "https://www.roblox.com/games/920587237/Adopt-Me"})
        return httpx.Response(200)

    link = _normalizer(handler).normalize("https://ro.blox.com/Ebh5")

    assert link.activity_id == "920587237"
    assert link.normalized_from == "shortlink_redirect"


def test_share_link_reads_start_place_meta():
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, text=SHARE_PAGE)

    link = _normalizer(handler).normalize(
        "https://www.roblox.com/share?code=abc123&type=ExperienceDetails"
    )

    assert link.activity_id == "2753915549"
    assert link.normalized_from == "share_link"
    assert seen[0].path == "/share-links"
    assert seen[0].params["code"] == "abc123"


def test_share_link_without_meta_is_invalid():
    normalizer = _normalizer(lambda request: httpx.Response(200, text="<html></html>"))

    with pytest.raises(ValidationError):
        normalizer.normalize("https://www.roblox.com/share-links?code=abc&type=Server")


def test_share_link_fetch_failure_is_invalid():
    def handler(request):
        raise httpx.ConnectError("offline")

    with pytest.raises(ValidationError):
        _normalizer(handler).normalize("https://www.roblox.com/share?code=abc&type=Server")


@pytest.mark.parametrize(
    "url",
    [
        "",
        "   ",
        "not a url",
        "ftp://www.roblox.com/games/1",
        "https://example.com/games/606849621",
        "https://www.roblox.com/catalog/123",
        "roblox://nothing-here",
    ],
)
def test_unsupported_links_raise_validation_error(url):
    with pytest.raises(ValidationError):
        _normalizer().normalize(url)
