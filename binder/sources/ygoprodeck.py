"""
binder/sources/ygoprodeck.py
═══════════════════════════════════════════════════════════════════════════════
YGOProDeck card database (free, no key).

Endpoint used:
  /api/v7/cardinfo.php   → every card, with sets, set prices, marketplace
                           prices and images. No delta endpoint exists, so
                           each refresh downloads the complete snapshot.

card_prices arrives as [{"tcgplayer_price": "0.24", "ebay_price": ...}];
it is flattened here into an ordered quote list, [{source, price}], in
PRICE_SOURCES order so the preferred marketplace is always first.
═══════════════════════════════════════════════════════════════════════════════
"""

import logging
from typing import Optional

import httpx

from binder.core.config import PRICE_SOURCES, YGOPRODECK_API
from binder.core.errors import MalformedUpstreamPayload, UpstreamUnavailable
from binder.core.http_client import plain_client

log = logging.getLogger("ygoprodeck")

SOURCE = "ygoprodeck"


def _int_or_none(v) -> Optional[int]:
    try:
        return int(v) if v is not None else None
    except (TypeError, ValueError):
        return None


def _price_quotes(card_prices: list) -> list[dict]:
    merged = card_prices[0] if card_prices and isinstance(card_prices[0], dict) else {}
    out = []
    for source in PRICE_SOURCES:
        price = merged.get(f"{source}_price")
        if price not in (None, ""):
            out.append({"source": source, "price": str(price)})
    return out


def _card_sets(raw: list) -> list[dict]:
    return [
        {
            "set_code":   cs.get("set_code", ""),
            "set_name":   cs.get("set_name", ""),
            "set_rarity": cs.get("set_rarity", ""),
            "set_price":  str(cs.get("set_price", "") or ""),
        }
        for cs in raw or []
        if isinstance(cs, dict)
    ]


def _card_images(raw: list) -> list[dict]:
    return [
        {
            "id":              img.get("id"),
            "image_url":       img.get("image_url", ""),
            "image_url_small": img.get("image_url_small", ""),
        }
        for img in raw or []
        if isinstance(img, dict)
    ]


def build_card_row(card: dict) -> Optional[dict]:
    """Map one cardinfo.php entry to CardInfo column values. None if unusable."""
    card_id = _int_or_none(card.get("id"))
    name    = card.get("name")
    if card_id is None or not name:
        return None
    return {
        "card_id":     card_id,
        "name":        name,
        "type":        card.get("type"),
        "desc":        card.get("desc"),
        "race":        card.get("race"),
        "attribute":   card.get("attribute"),
        "atk":         _int_or_none(card.get("atk")),
        "def_":        _int_or_none(card.get("def")),
        "level":       _int_or_none(card.get("level")),
        "card_sets":   _card_sets(card.get("card_sets")),
        "card_prices": _price_quotes(card.get("card_prices")),
        "card_images": _card_images(card.get("card_images")),
    }


async def fetch_card_database(client: httpx.AsyncClient | None = None) -> list[dict]:
    """Download and normalise the full card database."""
    client = client or plain_client()
    try:
        r = await client.get(YGOPRODECK_API)
        r.raise_for_status()
        payload = r.json()
    except httpx.HTTPError as ex:
        raise UpstreamUnavailable(SOURCE, str(ex)) from ex
    except ValueError as ex:
        raise MalformedUpstreamPayload(SOURCE, f"response is not JSON: {ex}") from ex

    cards = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(cards, list):
        raise MalformedUpstreamPayload(SOURCE, "missing 'data' list")

    rows, seen = [], set()
    for card in cards:
        if not isinstance(card, dict):
            continue
        try:
            row = build_card_row(card)
        except (AttributeError, TypeError, ValueError) as ex:
            raise MalformedUpstreamPayload(SOURCE, f"card {card.get('id')!r}: {ex}") from ex
        if row is None or row["card_id"] in seen:
            continue
        seen.add(row["card_id"])
        rows.append(row)

    log.info(f"📦 Downloaded {len(rows)} cards from YGOProDeck")
    return rows
