"""GitHub profile cache and its sticky change flag."""

from functools import partial
from unittest.mock import AsyncMock

import httpx
import pytest

from binder.core.cache import Freshness
from binder.core.errors import NoDataAvailable, UpstreamUnavailable
from binder.services.profile import ProfileService, profile_fingerprint
from binder.sources.github import fetch_profile


def make_profile(bio="Card collector", stars=3, **overrides) -> dict:
    profile = {
        "name":         "Niko",
        "login":        "KatsuneNiko",
        "bio":          bio,
        "avatar_url":   "https://avatars.example/1?v=4",
        "public_repos": 12,
        "followers":    5,
        "following":    2,
        "repos": [
            {"name": "binder", "description": "YGO binder", "language": "Python",
             "stargazers_count": stars, "forks_count": 0, "updated_at": "2024-05-01T00:00:00Z"},
        ],
        "pinned": [],
        "recentActivity": [{"type": "PushEvent", "repo": "KatsuneNiko/binder"}],
    }
    profile.update(overrides)
    return profile


# ── Fingerprint ───────────────────────────────────────────────────────────────

def test_fingerprint_ignores_volatile_fields():
    a = make_profile()
    b = make_profile(avatar_url="https://avatars.example/1?v=5", recentActivity=[])
    b["repos"][0]["updated_at"] = "2024-06-01T00:00:00Z"
    assert profile_fingerprint(a) == profile_fingerprint(b)


def test_fingerprint_sees_tracked_fields():
    assert profile_fingerprint(make_profile()) != profile_fingerprint(make_profile(bio="Duelist"))
    assert profile_fingerprint(make_profile()) != profile_fingerprint(make_profile(stars=4))


# ── Change flag ───────────────────────────────────────────────────────────────

async def test_first_fetch_is_baseline():
    service = ProfileService(AsyncMock(return_value=make_profile()))

    await service.refresh()

    assert service.fingerprint is not None
    assert service.consume_change_flag() is False


async def test_change_flag_is_sticky_until_consumed():
    fetch = AsyncMock(side_effect=[make_profile(), make_profile(bio="Duelist"), make_profile(bio="Duelist")])
    service = ProfileService(fetch)

    await service.refresh()
    await service.refresh()
    # an identical third fetch must not lower the flag
    await service.refresh()

    assert service.consume_change_flag() is True
    assert service.consume_change_flag() is False


async def test_unchanged_refetch_keeps_flag_down():
    service = ProfileService(AsyncMock(return_value=make_profile()))

    await service.refresh()
    await service.refresh()

    assert service.consume_change_flag() is False


async def test_cache_hit_does_not_refetch():
    fetch   = AsyncMock(return_value=make_profile())
    service = ProfileService(fetch)

    await service.get_profile()
    result = await service.get_profile_result()

    assert result.freshness is Freshness.MEMORY
    fetch.assert_awaited_once()


# ── Failures ──────────────────────────────────────────────────────────────────

async def test_failed_refresh_serves_last_profile():
    fetch   = AsyncMock(side_effect=[make_profile(), UpstreamUnavailable("github", "rate limited")])
    service = ProfileService(fetch)

    await service.refresh()
    result = await service.refresh()

    assert result.freshness is Freshness.STALE
    assert result.value["login"] == "KatsuneNiko"
    assert service.consume_change_flag() is False


async def test_no_profile_ever_fetched_raises():
    service = ProfileService(AsyncMock(side_effect=UpstreamUnavailable("github")))
    with pytest.raises(NoDataAvailable):
        await service.get_profile()


async def test_malformed_refetch_serves_last_profile():
    events = [{"type": "PushEvent", "repo": {"name": "u/binder"}}]

    def handler(request):
        path = request.url.path
        if path.endswith("/repos"):
            return httpx.Response(200, json=[])
        if path.endswith("/events/public"):
            return httpx.Response(200, json=events)
        return httpx.Response(200, json={"login": "u", "name": "U"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        service = ProfileService(partial(fetch_profile, client, "u", ""))
        await service.refresh()

        events[:] = [{"repo": "not-an-object"}]
        result = await service.refresh()

    assert result.freshness is Freshness.STALE
    assert result.value["recentActivity"][0]["repo"] == "u/binder"
