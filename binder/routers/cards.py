"""
binder/routers/cards.py
═══════════════════════════════════════════════════════════════════════════════
Inventory endpoints.

  GET    /api/cards?search=           → owned cards, re-priced when > 24 h old
  POST   /api/cards                   → add card / bump quantity       (auth)
  PATCH  /api/cards/{id}              → set quantity, ≤ 0 deletes      (auth)
  POST   /api/cards/{id}/increment    → +1                             (auth)
  POST   /api/cards/{id}/decrement    → −1, 0 deletes                  (auth)
  DELETE /api/cards/{id}              → delete                         (auth)
  GET    /api/cards/search/ygopro     → search the cached card database
  GET    /api/cards/exchange-rate     → USD→AUD rate and its freshness

Prices are in USD in the "price" field; the client converts with the rate.
═══════════════════════════════════════════════════════════════════════════════
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field

from binder.boot import Services
from binder.core.security import get_current_user
from binder.routers.deps import get_services

log    = logging.getLogger("cards_router")
router = APIRouter(prefix="/api/cards", tags=["cards"])


class AddCardRequest(BaseModel):
    id:         int
    name:       str = Field(..., min_length=1)
    set_code:   str = Field(..., min_length=1)
    set_rarity: str = Field(..., min_length=1)
    quantity:   int = Field(1, ge=1)


class QuantityRequest(BaseModel):
    quantity: Optional[int] = None


@router.get("")
async def list_cards(
    search:   Optional[str] = Query(None),
    services: Services      = Depends(get_services),
):
    return await services.prices.list_inventory(search)


@router.get("/search/ygopro")
async def search_ygopro(
    name:     str      = Query(..., min_length=1),
    limit:    int      = Query(50, ge=1, le=200),
    services: Services = Depends(get_services),
):
    return await services.prices.search_cards(name, limit)


@router.get("/exchange-rate")
async def exchange_rate(services: Services = Depends(get_services)):
    result = await services.rates.get_rate_result()
    return {
        "from":      services.rates.from_currency,
        "to":        services.rates.to_currency,
        "rate":      result.value,
        "freshness": result.freshness.value,
        "stale":     result.is_stale,
    }


@router.post("", status_code=201)
async def add_card(
    body:     AddCardRequest,
    response: Response,
    services: Services = Depends(get_services),
    _user:    str      = Depends(get_current_user),
):
    info  = await services.cards.find_by_card_id(body.id)
    img   = info.first_image() if info else {}
    small = img.get("image_url_small") or img.get("image_url") or ""
    large = img.get("image_url") or ""

    existing = await services.owned.find(body.id, body.set_code)
    price    = None
    if existing is None:
        price = await services.prices.price_for(body.id, body.set_code, info)

    card, created = await services.owned.add(
        card_id=body.id,
        name=body.name,
        set_code=body.set_code,
        set_rarity=body.set_rarity,
        quantity=body.quantity,
        price=price,
        image_url=large,
        image_url_small=small,
    )
    if created:
        return {"message": "Card added successfully", "card": card}
    response.status_code = 200
    return {"message": "Card quantity updated", "card": card}


@router.patch("/{row_id}")
async def update_card(
    row_id:   int,
    body:     QuantityRequest,
    services: Services = Depends(get_services),
    _user:    str      = Depends(get_current_user),
):
    if body.quantity is None:
        card = await services.owned.get(row_id)
        if card is None:
            raise HTTPException(404, detail="Card not found")
        return {"message": "Card updated", "card": card.to_dict()}

    change = await services.owned.set_quantity(row_id, body.quantity)
    if change is None:
        raise HTTPException(404, detail="Card not found")
    if change.removed:
        return {"message": "Card removed (quantity reached 0)"}
    return {"message": "Card updated", "card": change.card}


@router.post("/{row_id}/increment")
async def increment_card(
    row_id:   int,
    services: Services = Depends(get_services),
    _user:    str      = Depends(get_current_user),
):
    change = await services.owned.adjust_quantity(row_id, 1)
    if change is None:
        raise HTTPException(404, detail="Card not found")
    return {"message": "Card quantity incremented", "card": change.card}


@router.post("/{row_id}/decrement")
async def decrement_card(
    row_id:   int,
    services: Services = Depends(get_services),
    _user:    str      = Depends(get_current_user),
):
    change = await services.owned.adjust_quantity(row_id, -1)
    if change is None:
        raise HTTPException(404, detail="Card not found")
    if change.removed:
        return {"message": "Card removed (quantity reached 0)"}
    return {"message": "Card quantity decremented", "card": change.card}


@router.delete("/{row_id}")
async def delete_card(
    row_id:   int,
    services: Services = Depends(get_services),
    _user:    str      = Depends(get_current_user),
):
    if not await services.owned.delete(row_id):
        raise HTTPException(404, detail="Card not found")
    return {"message": "Card deleted successfully"}
