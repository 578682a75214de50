"""
binder/models.py
ORM rows.

  CardInfo      one YGOProDeck card (bulk-cached, replaced wholesale weekly)
  ExchangeRate  one row per currency pair
  OwnedCard     the inventory — one row per (card_id, set_code)
  User          login for the edit view
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from binder.core.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_epoch(dt: Optional[datetime]) -> Optional[float]:
    """SQLite hands datetimes back naive; every stored value is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


class CardInfo(Base):
    __tablename__ = "card_info"

    id:        Mapped[int]           = mapped_column(Integer, primary_key=True, autoincrement=True)
    card_id:   Mapped[int]           = mapped_column(Integer, unique=True, nullable=False, index=True)
    name:      Mapped[str]           = mapped_column(String(255), nullable=False, index=True)
    type:      Mapped[Optional[str]] = mapped_column(String(64))
    desc:      Mapped[Optional[str]] = mapped_column(Text)
    race:      Mapped[Optional[str]] = mapped_column(String(64))
    attribute: Mapped[Optional[str]] = mapped_column(String(32))
    atk:       Mapped[Optional[int]] = mapped_column(Integer)
    def_:      Mapped[Optional[int]] = mapped_column("def", Integer)
    level:     Mapped[Optional[int]] = mapped_column(Integer)

    # [{set_code, set_name, set_rarity, set_price}]
    card_sets:   Mapped[list] = mapped_column(JSON, default=list)
    # [{source, price}] in PRICE_SOURCES order
    card_prices: Mapped[list] = mapped_column(JSON, default=list)
    # [{id, image_url, image_url_small}]
    card_images: Mapped[list] = mapped_column(JSON, default=list)

    cached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    def first_image(self) -> dict:
        return (self.card_images or [{}])[0] or {}

    def to_dict(self) -> dict:
        return {
            "id":          self.card_id,
            "name":        self.name,
            "type":        self.type,
            "desc":        self.desc,
            "race":        self.race,
            "attribute":   self.attribute,
            "atk":         self.atk,
            "def":         self.def_,
            "level":       self.level,
            "card_sets":   self.card_sets or [],
            "card_prices": self.card_prices or [],
            "card_images": self.card_images or [],
        }


class ExchangeRate(Base):
    __tablename__ = "exchange_rates"
    __table_args__ = (UniqueConstraint("from_currency", "to_currency", name="uq_currency_pair"),)

    id:            Mapped[int]      = mapped_column(Integer, primary_key=True, autoincrement=True)
    from_currency: Mapped[str]      = mapped_column(String(3), nullable=False)
    to_currency:   Mapped[str]      = mapped_column(String(3), nullable=False)
    rate:          Mapped[float]    = mapped_column(Float, nullable=False)
    updated_at:    Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class OwnedCard(Base):
    __tablename__ = "owned_cards"
    __table_args__ = (UniqueConstraint("card_id", "set_code", name="uq_owned_card_set"),)

    id:                Mapped[int]      = mapped_column(Integer, primary_key=True, autoincrement=True)
    card_id:           Mapped[int]      = mapped_column(Integer, nullable=False, index=True)
    name:              Mapped[str]      = mapped_column(String(255), nullable=False, index=True)
    set_code:          Mapped[str]      = mapped_column(String(32), nullable=False)
    set_rarity:        Mapped[str]      = mapped_column(String(64), nullable=False)
    quantity:          Mapped[int]      = mapped_column(Integer, nullable=False, default=1)
    price:             Mapped[float]    = mapped_column(Float, nullable=False, default=0.0)
    image_url:         Mapped[str]      = mapped_column(String(512), nullable=False, default="")
    image_url_small:   Mapped[str]      = mapped_column(String(512), nullable=False, default="")
    last_price_update: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_at:        Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at:        Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id":                self.id,
            "card_id":           self.card_id,
            "name":              self.name,
            "set_code":          self.set_code,
            "set_rarity":        self.set_rarity,
            "quantity":          self.quantity,
            "price":             self.price,
            "image_url":         self.image_url,
            "image_url_small":   self.image_url_small,
            "last_price_update": _iso(self.last_price_update),
        }


class User(Base):
    __tablename__ = "users"

    id:            Mapped[int]      = mapped_column(Integer, primary_key=True, autoincrement=True)
    username:      Mapped[str]      = mapped_column(String(64), unique=True, nullable=False)
    password_hash: Mapped[str]      = mapped_column(String(128), nullable=False)
    created_at:    Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()
