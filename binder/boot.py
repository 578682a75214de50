"""
binder/boot.py
Builds every long-lived object once per process and wires them together.
The FastAPI lifespan stores the result on app.state.services; routers get
it through dependencies, tests build their own with fake upstreams.
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from binder.core.config import (
    CARD_DB_REFRESH_S,
    PRICE_UPDATE_INTERVAL_S,
    PROFILE_REFRESH_S,
)
from binder.core.db import Database
from binder.core.scheduler import PeriodicTask, Scheduler
from binder.core.security import LoginLimiter
from binder.services.currency import ExchangeRateService
from binder.services.pricing import PriceService
from binder.services.profile import ProfileService
from binder.store import CardInfoStore, ExchangeRateStore, OwnedCardStore, UserStore

log = logging.getLogger("boot")


@dataclass
class Services:
    db:            Database
    cards:         CardInfoStore
    owned:         OwnedCardStore
    users:         UserStore
    prices:        PriceService
    rates:         ExchangeRateService
    profile:       ProfileService
    scheduler:     Scheduler
    login_limiter: LoginLimiter = field(default_factory=LoginLimiter)


def build_services(
    db:             Database,
    fetch_cards:    Optional[Callable[[], Awaitable[list[dict]]]] = None,
    fetch_rate:     Optional[Callable[[], Awaitable[float]]] = None,
    fetch_profile:  Optional[Callable[[], Awaitable[dict]]] = None,
) -> Services:
    cards = CardInfoStore(db)
    owned = OwnedCardStore(db)

    prices  = PriceService(cards, owned, fetch_cards) if fetch_cards else PriceService(cards, owned)
    rates   = ExchangeRateService(ExchangeRateStore(db), fetch_rate)
    profile = ProfileService(fetch_profile) if fetch_profile else ProfileService()

    scheduler = Scheduler([
        # warm-up run fills an empty card database before the first search
        PeriodicTask("card_db", CARD_DB_REFRESH_S, prices.ensure_card_database, run_immediately=True),
        PeriodicTask("prices",  PRICE_UPDATE_INTERVAL_S, prices.update_prices_daily),
        PeriodicTask("profile", PROFILE_REFRESH_S, profile.refresh),
    ])

    return Services(
        db=db,
        cards=cards,
        owned=owned,
        users=UserStore(db),
        prices=prices,
        rates=rates,
        profile=profile,
        scheduler=scheduler,
    )
