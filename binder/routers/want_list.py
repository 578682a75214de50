"""
binder/routers/want_list.py
  POST /api/list/export  {items}               → text/csv body
  POST /api/list/import  {csv}                 → matched list + report
  POST /api/list/apply   {items, mode}         → add/remove against binder (auth)
"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from binder.boot import Services
from binder.core.security import get_current_user
from binder.routers.deps import get_services
from binder.services.want_list import apply_list, export_csv, import_csv

log    = logging.getLogger("list_router")
router = APIRouter(prefix="/api/list", tags=["list"])


class ListItem(BaseModel):
    card_id:    int
    name:       str
    set_code:   str
    set_rarity: str
    quantity:   int = Field(..., ge=1)
    price:      float = 0.0


class ExportRequest(BaseModel):
    items: list[ListItem]


class ImportRequest(BaseModel):
    csv: str


class ApplyRequest(BaseModel):
    items: list[ListItem]
    mode:  Literal["add", "remove"]


@router.post("/export", response_class=PlainTextResponse)
async def export_list(body: ExportRequest):
    return export_csv(i.model_dump() for i in body.items)


@router.post("/import")
async def import_list(body: ImportRequest, services: Services = Depends(get_services)):
    inventory = [c.to_dict() for c in await services.owned.list_cards()]
    return import_csv(body.csv, inventory).to_dict()


@router.post("/apply")
async def apply(
    body:     ApplyRequest,
    services: Services = Depends(get_services),
    _user:    str      = Depends(get_current_user),
):
    return await apply_list([i.model_dump() for i in body.items], body.mode, services.owned)
