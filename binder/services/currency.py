"""
binder/services/currency.py
USD → AUD conversion backed by a FreshnessCache over fixer.io.

  memory 1 h → persisted row 24 h → fixer.io → stale row → FALLBACK_USD_AUD

The fallback constant means get() never raises: an approximate conversion
is more useful on the binder page than none.
"""

import logging
from functools import partial
from typing import Awaitable, Callable, Optional

from binder.core.cache import CacheResult, FreshnessCache
from binder.core.config import (
    FALLBACK_USD_AUD,
    FROM_CURRENCY,
    MEMORY_TTL_S,
    RATE_PERSISTENT_TTL_S,
    TO_CURRENCY,
)
from binder.sources.fixer import fetch_rate
from binder.store import ExchangeRateStore

log = logging.getLogger("currency")


class ExchangeRateService:
    def __init__(
        self,
        rates:          ExchangeRateStore,
        fetch_upstream: Optional[Callable[[], Awaitable[float]]] = None,
        *,
        from_currency:  str = FROM_CURRENCY,
        to_currency:    str = TO_CURRENCY,
        memory_ttl:     float = MEMORY_TTL_S,
        persistent_ttl: float = RATE_PERSISTENT_TTL_S,
        fallback:       float = FALLBACK_USD_AUD,
    ):
        self.from_currency = from_currency
        self.to_currency   = to_currency
        self.cache: FreshnessCache[float] = FreshnessCache(
            "exchange_rate",
            fetch_upstream or partial(fetch_rate, from_currency, to_currency),
            key=f"{from_currency}->{to_currency}",
            memory_ttl=memory_ttl,
            persistent_ttl=persistent_ttl,
            load_persisted=partial(rates.find, from_currency, to_currency),
            persist=partial(rates.upsert, from_currency, to_currency),
            fallback=fallback,
        )

    async def get_rate(self) -> float:
        return await self.cache.get()

    async def get_rate_result(self) -> CacheResult[float]:
        return await self.cache.get_result()

    async def convert(self, amount: float) -> float:
        return amount * await self.get_rate()

    async def format_price(self, amount: float) -> str:
        """e.g. "$15.00 AUD ($10.00 USD)"."""
        converted = await self.convert(amount)
        return f"${converted:.2f} {self.to_currency} (${amount:.2f} {self.from_currency})"
