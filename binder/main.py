"""
binder/main.py  — Binder API
Startup: creates tables, builds the caches, launches the background refresh
loops. The card database warms itself on the first scheduler tick.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from binder.boot import Services, build_services
from binder.core.config import FRONTEND_URL
from binder.core.db import Database
from binder.core.errors import NoDataAvailable
from binder.core.http_client import close_all
from binder.routers import auth, cards, github, want_list

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("main")

VERSION = "1.0.0"


def create_app(services: Optional[Services] = None, start_scheduler: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("🚀 Binder API starting...")
        svc = services
        if svc is None:
            db = Database()
            db.create_tables()
            svc = build_services(db)
        app.state.services = svc
        if start_scheduler:
            svc.scheduler.start()
        yield
        log.info("🛑 Shutting down...")
        await svc.scheduler.stop()
        await close_all()
        if services is None:
            svc.db.dispose()

    app = FastAPI(
        title="Binder API",
        description=(
            "Card collection backend. Card data and prices: YGOProDeck "
            "(weekly bulk cache). Exchange rate: fixer.io (24 h cache). "
            "Profile: GitHub (1 h cache, 50 min background refresh)."
        ),
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NoDataAvailable)
    async def no_data_handler(request: Request, exc: NoDataAvailable):
        log.error(f"{request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={"error": str(exc), "source": exc.source})

    # ── Routers ──────────────────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(cards.router)
    app.include_router(github.router)
    app.include_router(want_list.router)

    @app.get("/", tags=["meta"])
    async def root():
        return {
            "status":  "online",
            "version": VERSION,
            "endpoints": {
                "login":         "/api/auth/login",
                "cards":         "/api/cards?search={name}",
                "card_search":   "/api/cards/search/ygopro?name={name}",
                "exchange_rate": "/api/cards/exchange-rate",
                "profile":       "/api/github/profile",
                "list_import":   "/api/list/import",
                "health":        "/api/health",
                "docs":          "/docs",
            },
        }

    @app.get("/api/health", tags=["meta"])
    async def health(request: Request):
        """Metadata only: no upstream calls."""
        svc: Services = request.app.state.services
        return {
            "status": "ok",
            "caches": {
                "card_db":        svc.prices.card_db.summary(),
                "exchange_rate":  svc.rates.cache.summary(),
                "github_profile": svc.profile.cache.summary(),
            },
            "jobs": svc.scheduler.summary(),
        }

    return app


app = create_app()
