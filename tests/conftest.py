"""
Fixtures shared by the test suite.

Every test gets a fresh in-memory SQLite database; upstream sources are
replaced by AsyncMocks so nothing leaves the process.
"""

import os

# Set test environment variables BEFORE any application code is imported.
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("FIXER_API_KEY", "test-key")

import pytest

import binder.models  # noqa: F401  (registers the tables on Base.metadata)
from binder.core.db import Database
from binder.store import CardInfoStore, ExchangeRateStore, OwnedCardStore, UserStore


class FakeClock:
    """Manually advanced stand-in for time.time()."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def card_row(card_id: int, name: str, sets: list[tuple], quotes: list[tuple] = ()) -> dict:
    """CardInfo column values: sets = [(code, rarity, price)], quotes = [(source, price)]."""
    return {
        "card_id": card_id,
        "name":    name,
        "type":    "Normal Monster",
        "card_sets": [
            {"set_code": code, "set_name": "Test Set", "set_rarity": rarity, "set_price": price}
            for code, rarity, price in sets
        ],
        "card_prices": [{"source": s, "price": p} for s, p in quotes],
        "card_images": [
            {
                "id":              card_id,
                "image_url":       f"https://img.example/{card_id}.jpg",
                "image_url_small": f"https://img.example/{card_id}_s.jpg",
            }
        ],
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db():
    database = Database("sqlite://")
    database.create_tables()
    yield database
    database.dispose()


@pytest.fixture
def card_store(db) -> CardInfoStore:
    return CardInfoStore(db)


@pytest.fixture
def owned_store(db) -> OwnedCardStore:
    return OwnedCardStore(db)


@pytest.fixture
def rate_store(db) -> ExchangeRateStore:
    return ExchangeRateStore(db)


@pytest.fixture
def user_store(db) -> UserStore:
    return UserStore(db)


@pytest.fixture
def sample_cards() -> list[dict]:
    return [
        card_row(89631139, "Blue-Eyes White Dragon",
                 [("LOB-001", "Ultra Rare", "9.99"), ("SDK-001", "Ultra Rare", "4.10")],
                 [("tcgplayer", "12.50"), ("ebay", "15.00")]),
        card_row(46986414, "Dark Magician",
                 [("LOB-005", "Ultra Rare", "7.25")]),
        card_row(55144522, "Pot of Greed",
                 [("LOB-119", "Rare", "not-a-price")],
                 [("tcgplayer", "")]),
    ]
