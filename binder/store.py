"""
binder/store.py
═══════════════════════════════════════════════════════════════════════════════
Record store access. Every method is async and runs its ORM work in a worker
thread through Database.run_sync(); SQLAlchemy errors surface as StorageError.

  CardInfoStore      bulk card database: count / oldest / replace-all / lookups
  ExchangeRateStore  one row per currency pair: find / upsert
  OwnedCardStore     the inventory CRUD; rows vanish when quantity hits 0
  UserStore          login accounts
═══════════════════════════════════════════════════════════════════════════════
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Text, cast, delete, func, select
from sqlalchemy.orm import Session

from binder.core.cache import Persisted
from binder.core.config import CARD_BATCH_SIZE
from binder.core.db import Database
from binder.models import CardInfo, ExchangeRate, OwnedCard, User, as_epoch, utcnow

log = logging.getLogger("store")


# ── Card database ─────────────────────────────────────────────────────────────

class CardInfoStore:
    def __init__(self, db: Database):
        self.db = db

    async def count(self) -> int:
        return await self.db.run_sync(
            lambda s: s.scalar(select(func.count()).select_from(CardInfo)) or 0
        )

    async def snapshot(self) -> Optional[Persisted[int]]:
        """Row count + the OLDEST cached_at, or None when the table is empty."""

        def _work(s: Session) -> Optional[Persisted[int]]:
            total, oldest = s.execute(
                select(func.count(CardInfo.id), func.min(CardInfo.cached_at))
            ).one()
            if not total or oldest is None:
                return None
            return Persisted(value=total, updated_at=as_epoch(oldest))

        return await self.db.run_sync(_work)

    async def replace_all(self, rows: list[dict]) -> None:
        """Delete every row and insert the new snapshot in one transaction."""

        def _work(s: Session) -> None:
            s.execute(delete(CardInfo))
            now = utcnow()
            for i in range(0, len(rows), CARD_BATCH_SIZE):
                batch = rows[i:i + CARD_BATCH_SIZE]
                s.add_all(CardInfo(cached_at=now, **row) for row in batch)
                s.flush()
                log.info(f"  ✓ Cached {min(i + CARD_BATCH_SIZE, len(rows))}/{len(rows)} cards")

        await self.db.run_sync(_work)

    async def find_by_card_id(self, card_id: int) -> Optional[CardInfo]:
        return await self.db.run_sync(
            lambda s: s.scalar(select(CardInfo).where(CardInfo.card_id == card_id))
        )

    async def find_by_card_ids(self, card_ids: list[int]) -> dict[int, CardInfo]:
        if not card_ids:
            return {}

        def _work(s: Session) -> dict[int, CardInfo]:
            rows = s.scalars(select(CardInfo).where(CardInfo.card_id.in_(set(card_ids))))
            return {r.card_id: r for r in rows}

        return await self.db.run_sync(_work)

    async def find_by_set_code(self, set_code: str) -> Optional[CardInfo]:
        """First cached card that was printed under set_code."""

        def _work(s: Session) -> Optional[CardInfo]:
            # text match narrows the scan; the exact check below decides
            candidates = s.scalars(
                select(CardInfo).where(cast(CardInfo.card_sets, Text).contains(f'"{set_code}"'))
            )
            for card in candidates:
                if any(cs.get("set_code") == set_code for cs in card.card_sets or []):
                    return card
            return None

        return await self.db.run_sync(_work)

    async def search_by_name(self, name: str, limit: int = 50) -> list[CardInfo]:
        def _work(s: Session) -> list[CardInfo]:
            stmt = (
                select(CardInfo)
                .where(func.lower(CardInfo.name).contains(name.lower()))
                .order_by(CardInfo.name)
                .limit(limit)
            )
            return list(s.scalars(stmt))

        return await self.db.run_sync(_work)


# ── Exchange rates ────────────────────────────────────────────────────────────

class ExchangeRateStore:
    def __init__(self, db: Database):
        self.db = db

    async def find(self, from_currency: str, to_currency: str) -> Optional[Persisted[float]]:
        def _work(s: Session) -> Optional[Persisted[float]]:
            row = s.scalar(
                select(ExchangeRate).where(
                    ExchangeRate.from_currency == from_currency,
                    ExchangeRate.to_currency == to_currency,
                )
            )
            if row is None:
                return None
            return Persisted(value=row.rate, updated_at=as_epoch(row.updated_at))

        return await self.db.run_sync(_work)

    async def upsert(self, from_currency: str, to_currency: str, rate: float) -> None:
        def _work(s: Session) -> None:
            row = s.scalar(
                select(ExchangeRate).where(
                    ExchangeRate.from_currency == from_currency,
                    ExchangeRate.to_currency == to_currency,
                )
            )
            if row is None:
                row = ExchangeRate(from_currency=from_currency, to_currency=to_currency, rate=rate)
                s.add(row)
            row.rate       = rate
            row.updated_at = utcnow()

        await self.db.run_sync(_work)


# ── Inventory ─────────────────────────────────────────────────────────────────

@dataclass
class QuantityChange:
    card:    Optional[dict]
    removed: bool = False


class OwnedCardStore:
    def __init__(self, db: Database):
        self.db = db

    async def list_cards(self, search: Optional[str] = None) -> list[OwnedCard]:
        def _work(s: Session) -> list[OwnedCard]:
            stmt = select(OwnedCard).order_by(OwnedCard.name)
            if search:
                stmt = stmt.where(func.lower(OwnedCard.name).contains(search.lower()))
            return list(s.scalars(stmt))

        return await self.db.run_sync(_work)

    async def get(self, row_id: int) -> Optional[OwnedCard]:
        return await self.db.run_sync(lambda s: s.get(OwnedCard, row_id))

    async def find(self, card_id: int, set_code: str) -> Optional[OwnedCard]:
        return await self.db.run_sync(
            lambda s: s.scalar(
                select(OwnedCard).where(OwnedCard.card_id == card_id, OwnedCard.set_code == set_code)
            )
        )

    async def add(
        self,
        card_id:         int,
        name:            str,
        set_code:        str,
        set_rarity:      str,
        quantity:        int,
        price:           Optional[float],
        image_url:       str = "",
        image_url_small: str = "",
    ) -> tuple[dict, bool]:
        """Create the (card_id, set_code) row or bump its quantity. Returns (card, created)."""

        def _work(s: Session) -> tuple[dict, bool]:
            row = s.scalar(
                select(OwnedCard).where(OwnedCard.card_id == card_id, OwnedCard.set_code == set_code)
            )
            if row is not None:
                row.quantity += quantity
                if not row.image_url_small and image_url_small:
                    row.image_url_small = image_url_small
                if not row.image_url and image_url:
                    row.image_url = image_url
                s.flush()
                return row.to_dict(), False

            row = OwnedCard(
                card_id=card_id,
                name=name,
                set_code=set_code,
                set_rarity=set_rarity,
                quantity=quantity,
                price=price or 0.0,
                image_url=image_url,
                image_url_small=image_url_small,
                last_price_update=utcnow(),
            )
            s.add(row)
            s.flush()
            return row.to_dict(), True

        return await self.db.run_sync(_work)

    async def set_quantity(self, row_id: int, quantity: int) -> Optional[QuantityChange]:
        def _work(s: Session) -> Optional[QuantityChange]:
            row = s.get(OwnedCard, row_id)
            if row is None:
                return None
            if quantity <= 0:
                s.delete(row)
                return QuantityChange(card=None, removed=True)
            row.quantity = quantity
            s.flush()
            return QuantityChange(card=row.to_dict())

        return await self.db.run_sync(_work)

    async def adjust_quantity(self, row_id: int, delta: int) -> Optional[QuantityChange]:
        def _work(s: Session) -> Optional[QuantityChange]:
            row = s.get(OwnedCard, row_id)
            if row is None:
                return None
            row.quantity += delta
            if row.quantity <= 0:
                s.delete(row)
                return QuantityChange(card=None, removed=True)
            s.flush()
            return QuantityChange(card=row.to_dict())

        return await self.db.run_sync(_work)

    async def delete(self, row_id: int) -> bool:
        def _work(s: Session) -> bool:
            row = s.get(OwnedCard, row_id)
            if row is None:
                return False
            s.delete(row)
            return True

        return await self.db.run_sync(_work)

    async def update_fields(self, row_id: int, **fields) -> None:
        def _work(s: Session) -> None:
            row = s.get(OwnedCard, row_id)
            if row is None:
                return
            for k, v in fields.items():
                setattr(row, k, v)

        await self.db.run_sync(_work)

    async def priced_before(self, cutoff: datetime) -> list[OwnedCard]:
        """Rows whose price was last refreshed before cutoff (UTC)."""

        def _work(s: Session) -> list[OwnedCard]:
            rows = s.scalars(select(OwnedCard))
            return [r for r in rows if (as_epoch(r.last_price_update) or 0) < cutoff.timestamp()]

        return await self.db.run_sync(_work)


# ── Users ─────────────────────────────────────────────────────────────────────

class UserStore:
    def __init__(self, db: Database):
        self.db = db

    async def find(self, username: str) -> Optional[User]:
        return await self.db.run_sync(
            lambda s: s.scalar(select(User).where(User.username == username))
        )

    # sync variants for the create_user CLI, which runs outside any event loop

    def exists_sync(self, username: str) -> bool:
        with self.db.session_scope() as s:
            return s.scalar(select(User.id).where(User.username == username)) is not None

    def upsert_sync(self, username: str, password_hash: str) -> bool:
        """Returns True if an existing user was overwritten."""
        with self.db.session_scope() as s:
            row = s.scalar(select(User).where(User.username == username))
            if row is not None:
                row.password_hash = password_hash
                row.created_at    = datetime.now(timezone.utc)
                return True
            s.add(User(username=username, password_hash=password_hash))
            return False
