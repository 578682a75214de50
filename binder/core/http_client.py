"""
binder/core/http_client.py
Shared async httpx clients.
  • plain_client()  → YGOProDeck and fixer.io (no auth headers)
  • github_client() → GitHub REST + GraphQL (token header when configured)
"""

import httpx

from binder.core.config import GITHUB_HEADERS

_plain_client:  httpx.AsyncClient | None = None
_github_client: httpx.AsyncClient | None = None

_LIMITS  = httpx.Limits(max_connections=10, max_keepalive_connections=5)
# the full card dump is tens of MB
_TIMEOUT = httpx.Timeout(60.0, connect=15.0)


def plain_client() -> httpx.AsyncClient:
    global _plain_client
    if _plain_client is None or _plain_client.is_closed:
        _plain_client = httpx.AsyncClient(
            timeout=_TIMEOUT,
            follow_redirects=True,
            limits=_LIMITS,
        )
    return _plain_client


def github_client() -> httpx.AsyncClient:
    global _github_client
    if _github_client is None or _github_client.is_closed:
        _github_client = httpx.AsyncClient(
            headers=GITHUB_HEADERS,
            timeout=_TIMEOUT,
            follow_redirects=True,
            limits=_LIMITS,
        )
    return _github_client


async def close_all() -> None:
    for c in [_plain_client, _github_client]:
        if c and not c.is_closed:
            await c.aclose()
