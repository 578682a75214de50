"""
binder/sources/fixer.py
fixer.io latest rates. The free tier is EUR-based, so a cross rate is
derived: USD→AUD = rates[AUD] / rates[USD].
"""

import logging

import httpx

from binder.core.config import FIXER_API, FIXER_API_KEY
from binder.core.errors import MalformedUpstreamPayload, UpstreamUnavailable
from binder.core.http_client import plain_client

log = logging.getLogger("fixer")

SOURCE = "fixer"


async def fetch_rate(
    from_currency: str,
    to_currency:   str,
    client:        httpx.AsyncClient | None = None,
    api_key:       str = FIXER_API_KEY,
) -> float:
    client = client or plain_client()
    if not api_key:
        raise UpstreamUnavailable(SOURCE, "FIXER_API_KEY not configured")

    try:
        r = await client.get(
            FIXER_API,
            params={
                "access_key": api_key,
                "symbols":    f"{from_currency},{to_currency}",
                "format":     1,
            },
        )
        r.raise_for_status()
        payload = r.json()
    except httpx.HTTPError as ex:
        raise UpstreamUnavailable(SOURCE, str(ex)) from ex
    except ValueError as ex:
        raise MalformedUpstreamPayload(SOURCE, f"response is not JSON: {ex}") from ex

    rates = payload.get("rates") if isinstance(payload, dict) else None
    if not isinstance(rates, dict):
        # fixer reports errors as 200 + {"success": false, "error": {...}}
        err = payload.get("error") if isinstance(payload, dict) else None
        raise MalformedUpstreamPayload(SOURCE, f"no rates in response: {err}")

    try:
        base  = float(rates[from_currency])
        quote = float(rates[to_currency])
    except (KeyError, TypeError, ValueError) as ex:
        raise MalformedUpstreamPayload(SOURCE, f"missing {from_currency}/{to_currency} rate") from ex
    if base <= 0 or quote <= 0:
        raise MalformedUpstreamPayload(
            SOURCE, f"non-positive rate ({from_currency}: {base}, {to_currency}: {quote})"
        )

    rate = quote / base
    log.info(f"💱 {from_currency}: {base}, {to_currency}: {quote} → {from_currency}->{to_currency} {rate:.4f}")
    return rate
