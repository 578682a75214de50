"""
binder/routers/github.py
  GET  /api/github/profile  → cached profile (+ freshness)
  POST /api/github/refresh  → drop the memory copy and refetch     (auth)
  GET  /api/github/changed  → one-shot "profile changed" flag

All reads go through the profile cache. NoDataAvailable becomes a 503 via
the app-level exception handler.
"""

import logging

from fastapi import APIRouter, Depends

from binder.boot import Services
from binder.core.security import get_current_user
from binder.routers.deps import get_services

log    = logging.getLogger("github_router")
router = APIRouter(prefix="/api/github", tags=["github"])


@router.get("/profile")
async def get_profile(services: Services = Depends(get_services)):
    result = await services.profile.get_profile_result()
    return {
        **result.value,
        "freshness": result.freshness.value,
        "stale":     result.is_stale,
        "age_s":     services.profile.cache.age(),
    }


@router.post("/refresh")
async def refresh_profile(
    services: Services = Depends(get_services),
    _user:    str      = Depends(get_current_user),
):
    result = await services.profile.refresh()
    return {
        **result.value,
        "freshness": result.freshness.value,
        "stale":     result.is_stale,
    }


@router.get("/changed")
async def profile_changed(services: Services = Depends(get_services)):
    return {"changed": services.profile.consume_change_flag()}
