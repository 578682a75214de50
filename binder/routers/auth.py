"""
binder/routers/auth.py
  POST /api/auth/login   → {message, token, user}   (5 attempts / 15 min per IP)
  GET  /api/auth/verify  → {valid, user}
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel

from binder.boot import Services
from binder.core.security import bearer, decode_token, make_token, verify_password
from binder.routers.deps import get_services

log    = logging.getLogger("auth_router")
router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


@router.post("/login")
async def login(body: LoginRequest, request: Request, services: Services = Depends(get_services)):
    client = request.client.host if request.client else "unknown"
    if not services.login_limiter.hit(client):
        log.warning(f"Login rate limit hit for {client}")
        raise HTTPException(429, detail="Too many login attempts. Please try again after 15 minutes.")

    if not body.username or not body.password:
        raise HTTPException(400, detail="Username and password are required.")

    user = await services.users.find(body.username)
    if user is None or not verify_password(body.password, user.password_hash):
        raise HTTPException(401, detail="Invalid username or password.")

    return {
        "message": "Login successful",
        "token":   make_token(user.username),
        "user":    {"id": user.id, "username": user.username},
    }


@router.get("/verify")
async def verify(credentials: HTTPAuthorizationCredentials | None = Depends(bearer)):
    if not credentials:
        raise HTTPException(401, detail={"valid": False})
    username = decode_token(credentials.credentials)
    if not username:
        raise HTTPException(403, detail={"valid": False})
    return {"valid": True, "user": {"username": username}}
