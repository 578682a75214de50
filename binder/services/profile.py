"""
binder/services/profile.py
═══════════════════════════════════════════════════════════════════════════════
GitHub profile cache with change detection.

  • Memory-only FreshnessCache (1 h TTL); no persisted row, so an upstream
    failure falls back to the last profile held in memory or raises
    NoDataAvailable when there has never been one.
  • After every SUCCESSFUL upstream fetch (never on a cache hit) a SHA-256
    fingerprint is taken over a fixed field subset. Timestamps, events and
    avatar URLs are left out.
  • First fingerprint ever = baseline, reported as unchanged.
  • A later differing fingerprint raises a sticky flag that stays up until
    consume_change_flag() reads it.
═══════════════════════════════════════════════════════════════════════════════
"""

import hashlib
import json
import logging
from typing import Awaitable, Callable, Optional

from binder.core.cache import CacheResult, FreshnessCache
from binder.core.config import PROFILE_MEMORY_TTL_S
from binder.sources.github import fetch_profile

log = logging.getLogger("profile")

_PROFILE_FIELDS = (
    "name", "login", "bio", "public_repos", "followers", "following",
    "location", "blog", "twitter_username",
)
_REPO_FIELDS   = ("name", "description", "language", "stargazers_count", "forks_count")
_PINNED_FIELDS = ("name", "description", "stargazers_count")


def profile_fingerprint(profile: dict) -> str:
    subset = {k: profile.get(k) for k in _PROFILE_FIELDS}
    subset["repos"] = [
        {k: r.get(k) for k in _REPO_FIELDS} for r in profile.get("repos") or []
    ]
    subset["pinned"] = [
        {k: r.get(k) for k in _PINNED_FIELDS} for r in profile.get("pinned") or []
    ]
    blob = json.dumps(subset, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


class ProfileService:
    def __init__(
        self,
        fetch_upstream: Callable[[], Awaitable[dict]] = fetch_profile,
        *,
        memory_ttl:     float = PROFILE_MEMORY_TTL_S,
    ):
        self._fetch_upstream = fetch_upstream
        self._fingerprint: Optional[str] = None
        self._changed = False
        self.cache: FreshnessCache[dict] = FreshnessCache(
            "github_profile",
            self._fetch_and_observe,
            memory_ttl=memory_ttl,
        )

    @property
    def fingerprint(self) -> Optional[str]:
        return self._fingerprint

    async def get_profile(self) -> dict:
        return await self.cache.get()

    async def get_profile_result(self) -> CacheResult[dict]:
        return await self.cache.get_result()

    async def refresh(self) -> CacheResult[dict]:
        """Skip the memory tier and fetch now. Used by the background task and POST /refresh."""
        self.cache.invalidate()
        return await self.cache.get_result()

    def consume_change_flag(self) -> bool:
        changed, self._changed = self._changed, False
        return changed

    async def _fetch_and_observe(self) -> dict:
        profile = await self._fetch_upstream()
        self._observe(profile)
        return profile

    def _observe(self, profile: dict) -> None:
        fp = profile_fingerprint(profile)
        if self._fingerprint is None:
            log.info(f"Profile baseline fingerprint {fp[:12]}")
        elif fp != self._fingerprint:
            log.info(f"Profile changed: {self._fingerprint[:12]} → {fp[:12]}")
            self._changed = True
        self._fingerprint = fp
