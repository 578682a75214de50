"""
binder/core/security.py
Password hashing, JWTs and the login rate limiter.

  • bcrypt hashes in the users table
  • HS256 JWTs carrying the username as "sub", valid JWT_EXPIRY_H hours
  • LoginLimiter: sliding window, LOGIN_MAX_ATTEMPTS per LOGIN_WINDOW_S per IP
"""

import datetime
import threading
import time
from collections import deque
from typing import Callable, Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from binder.core.config import (
    JWT_ALGORITHM,
    JWT_EXPIRY_H,
    JWT_SECRET,
    LOGIN_MAX_ATTEMPTS,
    LOGIN_WINDOW_S,
)

bearer = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed hash in the table
        return False


def make_token(username: str, secret: str = JWT_SECRET) -> str:
    payload = {
        "sub": username,
        "exp": datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(hours=JWT_EXPIRY_H),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, secret: str = JWT_SECRET) -> Optional[str]:
    """Username from a valid token, None if invalid or expired."""
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
        return payload.get("sub")
    except jwt.PyJWTError:
        return None


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer)) -> str:
    """FastAPI dependency: 401 without a Bearer token, 403 for a bad one."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    username = decode_token(credentials.credentials)
    if not username:
        raise HTTPException(status_code=403, detail="Invalid or expired token")
    return username


class LoginLimiter:
    """Sliding-window attempt counter keyed by client address."""

    def __init__(
        self,
        max_attempts: int = LOGIN_MAX_ATTEMPTS,
        window_s:     float = LOGIN_WINDOW_S,
        clock:        Callable[[], float] = time.monotonic,
    ):
        if max_attempts <= 0:
            raise ValueError("max_attempts must be greater than 0")
        self.max_attempts = max_attempts
        self.window_s     = window_s
        self._clock       = clock
        self._hits: dict[str, deque] = {}
        self._lock = threading.Lock()

    def hit(self, client: str) -> bool:
        """Record an attempt. False when the client is over the limit."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            q = self._hits.setdefault(client, deque())
            if len(q) >= self.max_attempts:
                return False
            q.append(now)
            return True

    def reset(self, client: str) -> None:
        with self._lock:
            self._hits.pop(client, None)

    @property
    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._hits)

    def _prune(self, now: float) -> None:
        # drops expired attempts, and clients with none left
        for client in list(self._hits):
            q = self._hits[client]
            while q and now - q[0] >= self.window_s:
                q.popleft()
            if not q:
                del self._hits[client]
