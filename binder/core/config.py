"""
binder/core/config.py  ── Binder API
═══════════════════════════════════════════════════════════════════════════════
SOURCE ASSIGNMENT:

  YGOProDeck   →  full card database (sets, set prices, marketplace prices,
                  images). No key. Weekly bulk snapshot.

  fixer.io     →  USD → AUD exchange rate (derived from the EUR-based
                  USD and AUD quotes). Key required.

  GitHub       →  owner profile for the landing page.
                  REST: profile, repos, public events
                  GraphQL: pinned repositories (token required)

Every TTL and interval below is overridable through the environment.
═══════════════════════════════════════════════════════════════════════════════
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()

log = logging.getLogger("config")


def _seconds(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning(f"{name}={raw!r} is not an integer — using {default}")
        return default


# ── Database ──────────────────────────────────────────────────────────────────
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./binder.db")

# ── YGOProDeck ────────────────────────────────────────────────────────────────
YGOPRODECK_API   = "https://db.ygoprodeck.com/api/v7/cardinfo.php"
CARD_BATCH_SIZE  = 500

# Marketplace quotes in trust order. The first one is the preferred price.
PRICE_SOURCES = [
    "tcgplayer",
    "cardmarket",
    "ebay",
    "amazon",
    "coolstuffinc",
]

# ── fixer.io ──────────────────────────────────────────────────────────────────
# SECURITY: set FIXER_API_KEY in the environment, never hardcode it.
FIXER_API     = "https://data.fixer.io/api/latest"
FIXER_API_KEY = os.environ.get("FIXER_API_KEY", "")
if not FIXER_API_KEY:
    log.warning("FIXER_API_KEY env var not set — exchange rate falls back to cache/constant")

FROM_CURRENCY    = "USD"
TO_CURRENCY      = "AUD"
FALLBACK_USD_AUD = float(os.environ.get("FALLBACK_USD_AUD", "1.5"))

# ── GitHub ────────────────────────────────────────────────────────────────────
GITHUB_API      = "https://api.github.com"
GITHUB_GRAPHQL  = "https://api.github.com/graphql"
GITHUB_USERNAME = os.environ.get("GITHUB_USERNAME", "KatsuneNiko")
GITHUB_TOKEN    = os.environ.get("GITHUB_TOKEN", "")
GITHUB_HEADERS  = {"Accept": "application/vnd.github+json"}
if GITHUB_TOKEN:
    GITHUB_HEADERS["Authorization"] = f"token {GITHUB_TOKEN}"

GITHUB_REPO_COUNT   = 6
GITHUB_EVENT_COUNT  = 10
GITHUB_ACTIVITY_MAX = 5

# ── Auth ──────────────────────────────────────────────────────────────────────
JWT_SECRET    = os.environ.get("JWT_SECRET", "dev-secret-change-in-prod")
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_H  = 24

LOGIN_MAX_ATTEMPTS = 5
LOGIN_WINDOW_S     = 15 * 60

FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")

# ── Cache TTLs ────────────────────────────────────────────────────────────────
MEMORY_TTL_S          = _seconds("MEMORY_TTL_S",          60 * 60)           # 1 h
RATE_PERSISTENT_TTL_S = _seconds("RATE_PERSISTENT_TTL_S", 24 * 60 * 60)      # 24 h
CARD_DB_TTL_S         = _seconds("CARD_DB_TTL_S",         7 * 24 * 60 * 60)  # 7 days
PROFILE_MEMORY_TTL_S  = _seconds("PROFILE_MEMORY_TTL_S",  60 * 60)           # 1 h
PRICE_REFRESH_AGE_S   = _seconds("PRICE_REFRESH_AGE_S",   24 * 60 * 60)      # 24 h

# ── Background intervals ──────────────────────────────────────────────────────
PROFILE_REFRESH_S       = _seconds("PROFILE_REFRESH_S",       50 * 60)           # 50 min
CARD_DB_REFRESH_S       = _seconds("CARD_DB_REFRESH_S",       7 * 24 * 60 * 60)  # weekly
PRICE_UPDATE_INTERVAL_S = _seconds("PRICE_UPDATE_INTERVAL_S", 24 * 60 * 60)      # daily
