"""
binder/services/pricing.py
═══════════════════════════════════════════════════════════════════════════════
Card database cache + price resolution.

resolve_price(card, set_code) trust order:
  1. first marketplace quote in card_prices (TCGplayer when present)
  2. card_sets entry whose set_code matches
  3. None  → "unknown"; callers keep the old price or show N/A.
     Unknown is never turned into 0.0, which stays the "never priced" default.

PriceService owns the weekly bulk cache of the card database and the daily
re-pricing pass over the owned inventory.
═══════════════════════════════════════════════════════════════════════════════
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from binder.core.cache import BulkFreshnessCache, CacheResult
from binder.core.config import CARD_DB_TTL_S, MEMORY_TTL_S, PRICE_REFRESH_AGE_S
from binder.models import CardInfo, OwnedCard
from binder.sources.ygoprodeck import fetch_card_database
from binder.store import CardInfoStore, OwnedCardStore

log = logging.getLogger("pricing")


def parse_price(raw: Any) -> Optional[float]:
    """Float value of a price string, or None if it is empty, junk, NaN or inf."""
    if raw is None or raw == "":
        return None
    try:
        value = float(str(raw).strip())
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _field(card: Any, name: str) -> list:
    if isinstance(card, dict):
        return card.get(name) or []
    return getattr(card, name, None) or []


def resolve_price(card: Any, set_code: str) -> Optional[float]:
    """Best price for set_code from a cached card (CardInfo or its dict form)."""
    if card is None:
        return None

    quotes = _field(card, "card_prices")
    if quotes:
        price = parse_price(quotes[0].get("price"))
        if price is not None:
            return price

    for cs in _field(card, "card_sets"):
        if cs.get("set_code") == set_code:
            return parse_price(cs.get("set_price"))

    return None


class PriceService:
    def __init__(
        self,
        cards:          CardInfoStore,
        owned:          OwnedCardStore,
        fetch_upstream: Callable[[], Awaitable[list[dict]]] = fetch_card_database,
        *,
        card_db_ttl:    float = CARD_DB_TTL_S,
        memory_ttl:     float = MEMORY_TTL_S,
        refresh_age:    float = PRICE_REFRESH_AGE_S,
    ):
        self.cards       = cards
        self.owned       = owned
        self.refresh_age = refresh_age
        self.card_db = BulkFreshnessCache(
            "card_db",
            fetch_upstream,
            memory_ttl=memory_ttl,
            persistent_ttl=card_db_ttl,
            load_persisted=cards.snapshot,
            persist=cards.replace_all,
        )

    # ── Card database ─────────────────────────────────────────────────────────

    async def ensure_card_database(self) -> CacheResult[int]:
        """Make sure the card database is no older than its TTL. Returns row count."""
        result = await self.card_db.get_result()
        log.info(f"✅ Card database: {result.value} cards ({result.freshness.value})")
        return result

    async def refresh_card_database(self) -> CacheResult[int]:
        return await self.card_db.refresh()

    async def search_cards(self, name: str, limit: int = 50) -> list[dict]:
        rows = await self.cards.search_by_name(name, limit)
        return [r.to_dict() for r in rows]

    # ── Prices ────────────────────────────────────────────────────────────────

    async def price_for_set_code(self, set_code: str) -> Optional[float]:
        card = await self.cards.find_by_set_code(set_code)
        return resolve_price(card, set_code)

    async def price_for(self, card_id: int, set_code: str, info: Optional[CardInfo] = None) -> Optional[float]:
        """Price via the card's own cached entry, else via any card printed under set_code."""
        if info is None:
            info = await self.cards.find_by_card_id(card_id)
        price = resolve_price(info, set_code)
        if price is None:
            price = await self.price_for_set_code(set_code)
        return price

    def is_due(self, card: OwnedCard, now: Optional[datetime] = None) -> bool:
        now  = now or datetime.now(timezone.utc)
        last = card.last_price_update
        if last is None:
            return True
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return (now - last).total_seconds() > self.refresh_age

    async def update_prices_daily(self) -> int:
        """Re-price every owned card last priced more than refresh_age ago."""
        now    = datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self.refresh_age)
        due    = await self.owned.priced_before(cutoff)
        log.info(f"🔄 Updating prices for {len(due)} owned cards...")

        infos   = await self.cards.find_by_card_ids([c.card_id for c in due])
        updated = 0
        for card in due:
            price = await self.price_for(card.card_id, card.set_code, infos.get(card.card_id))
            if price is None:
                # unknown → keep the last known price
                continue
            await self.owned.update_fields(card.id, price=price, last_price_update=now)
            updated += 1

        log.info(f"✅ Updated prices for {updated} cards")
        return updated

    async def list_inventory(self, search: Optional[str] = None) -> list[dict]:
        """
        Inventory for the binder views. Rows older than refresh_age are
        re-priced on the way out; missing images are back-filled from the
        card database.
        """
        now   = datetime.now(timezone.utc)
        cards = await self.owned.list_cards(search)
        infos = await self.cards.find_by_card_ids([c.card_id for c in cards])

        out = []
        for card in cards:
            info    = infos.get(card.card_id)
            item    = card.to_dict()
            changes: dict = {}

            if info is not None:
                img   = info.first_image()
                small = img.get("image_url_small") or img.get("image_url") or ""
                large = img.get("image_url") or ""
                if not card.image_url_small and small:
                    changes["image_url_small"] = item["image_url_small"] = small
                if not card.image_url and large:
                    changes["image_url"] = item["image_url"] = large

            if self.is_due(card, now):
                price = await self.price_for(card.card_id, card.set_code, info)
                if price is not None:
                    changes["price"]             = item["price"] = price
                    changes["last_price_update"] = now
                    item["last_price_update"]    = now.isoformat()

            if changes:
                await self.owned.update_fields(card.id, **changes)
            out.append(item)

        return out
