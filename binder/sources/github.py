"""
binder/sources/github.py
═══════════════════════════════════════════════════════════════════════════════
GitHub profile for the landing page.

REST (always):
  /users/{user}                              → profile
  /users/{user}/repos?sort=updated&per_page=6 → recent repositories
  /users/{user}/events/public?per_page=10     → recent activity

GraphQL (only with GITHUB_TOKEN — the endpoint refuses anonymous calls):
  pinnedItems(first: 6)                       → pinned repositories

The REST calls are required; a failing GraphQL call only drops "pinned".
═══════════════════════════════════════════════════════════════════════════════
"""

import asyncio
import logging
from typing import Any

import httpx

from binder.core.config import (
    GITHUB_ACTIVITY_MAX,
    GITHUB_API,
    GITHUB_EVENT_COUNT,
    GITHUB_GRAPHQL,
    GITHUB_REPO_COUNT,
    GITHUB_TOKEN,
    GITHUB_USERNAME,
)
from binder.core.errors import MalformedUpstreamPayload, UpstreamUnavailable
from binder.core.http_client import github_client

log = logging.getLogger("github")

SOURCE = "github"

_PINNED_QUERY = """
query($login: String!) {
  user(login: $login) {
    pinnedItems(first: 6, types: REPOSITORY) {
      nodes {
        ... on Repository {
          name
          description
          url
          stargazerCount
          forkCount
          primaryLanguage { name }
        }
      }
    }
  }
}
"""


async def _get_json(client: httpx.AsyncClient, url: str, params: dict | None = None) -> Any:
    try:
        r = await client.get(url, params=params)
        r.raise_for_status()
        return r.json()
    except httpx.HTTPError as ex:
        raise UpstreamUnavailable(SOURCE, f"{url}: {ex}") from ex
    except ValueError as ex:
        raise MalformedUpstreamPayload(SOURCE, f"{url}: response is not JSON") from ex


async def fetch_pinned(
    client:   httpx.AsyncClient,
    username: str,
    token:    str = GITHUB_TOKEN,
) -> list[dict]:
    if not token:
        return []
    try:
        r = await client.post(
            GITHUB_GRAPHQL,
            json={"query": _PINNED_QUERY, "variables": {"login": username}},
            headers={"Authorization": f"bearer {token}"},
        )
        r.raise_for_status()
        nodes = r.json()["data"]["user"]["pinnedItems"]["nodes"]
        return [
            {
                "name":             n.get("name"),
                "description":      n.get("description"),
                "html_url":         n.get("url"),
                "language":         (n.get("primaryLanguage") or {}).get("name"),
                "stargazers_count": n.get("stargazerCount", 0),
                "forks_count":      n.get("forkCount", 0),
            }
            for n in nodes or []
            if isinstance(n, dict) and n.get("name")
        ]
    except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as ex:
        log.warning(f"Pinned repositories unavailable: {ex}")
        return []


def _build_profile(profile: dict, repos: list, events: list, pinned: list[dict]) -> dict:
    return {
        "name":             profile.get("name") or profile.get("login"),
        "login":            profile.get("login"),
        "bio":              profile.get("bio"),
        "avatar_url":       profile.get("avatar_url"),
        "html_url":         profile.get("html_url"),
        "public_repos":     profile.get("public_repos", 0),
        "followers":        profile.get("followers", 0),
        "following":        profile.get("following", 0),
        "location":         profile.get("location"),
        "blog":             profile.get("blog"),
        "twitter_username": profile.get("twitter_username"),
        "repos": [
            {
                "name":             repo.get("name"),
                "description":      repo.get("description"),
                "html_url":         repo.get("html_url"),
                "language":         repo.get("language"),
                "stargazers_count": repo.get("stargazers_count", 0),
                "forks_count":      repo.get("forks_count", 0),
                "updated_at":       repo.get("updated_at"),
            }
            for repo in repos
            if isinstance(repo, dict)
        ],
        "pinned": pinned,
        "recentActivity": [
            {
                "type":       ev.get("type"),
                "repo":       (ev.get("repo") or {}).get("name"),
                "created_at": ev.get("created_at"),
            }
            for ev in events[:GITHUB_ACTIVITY_MAX]
            if isinstance(ev, dict)
        ],
    }


async def fetch_profile(
    client:   httpx.AsyncClient | None = None,
    username: str = GITHUB_USERNAME,
    token:    str = GITHUB_TOKEN,
) -> dict:
    client = client or github_client()
    log.info(f"🔄 Fetching GitHub profile for {username}...")

    profile, repos, events, pinned = await asyncio.gather(
        _get_json(client, f"{GITHUB_API}/users/{username}"),
        _get_json(client, f"{GITHUB_API}/users/{username}/repos",
                  {"sort": "updated", "per_page": GITHUB_REPO_COUNT}),
        _get_json(client, f"{GITHUB_API}/users/{username}/events/public",
                  {"per_page": GITHUB_EVENT_COUNT}),
        fetch_pinned(client, username, token),
    )

    if not isinstance(profile, dict) or not profile.get("login"):
        raise MalformedUpstreamPayload(SOURCE, "profile response has no login")
    if not isinstance(repos, list) or not isinstance(events, list):
        raise MalformedUpstreamPayload(SOURCE, "repos/events response is not a list")

    try:
        return _build_profile(profile, repos, events, pinned)
    except (AttributeError, TypeError, ValueError) as ex:
        raise MalformedUpstreamPayload(SOURCE, f"unexpected profile shape: {ex}") from ex
