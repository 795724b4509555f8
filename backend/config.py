# config.py — Environment-driven configuration for the staff panel
import os
import json
import logging
import tempfile
from typing import Dict, List

from pydantic import BaseModel

logger = logging.getLogger("arcadia-panel.config")


class CdnScope(BaseModel):
    path: str
    exposed_url: str = ""


def _split_env(name: str, default: str = "") -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


def _load_cdn_scopes() -> Dict[str, CdnScope]:
    raw = os.getenv("PANEL_CDN_SCOPES", "")
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"PANEL_CDN_SCOPES is not valid JSON: {e}")
        return {}
    return {name: CdnScope(**scope) for name, scope in data.items()}


# ============================================================
# OAUTH2 (Discord)
# ============================================================

CLIENT_ID = os.getenv("PANEL_CLIENT_ID", "")
CLIENT_SECRET = os.getenv("PANEL_CLIENT_SECRET", "")
REDIRECT_URLS = _split_env("PANEL_REDIRECT_URLS", "http://localhost:3000/authorize")
DISCORD_API_BASE = os.getenv("DISCORD_API_BASE", "https://discord.com/api")
OAUTH_TIMEOUT_SECONDS = float(os.getenv("OAUTH_TIMEOUT_SECONDS", "10"))

# ============================================================
# PANEL PROTOCOL
# ============================================================

PANEL_VERSION = 2
INSTANCE_DESCRIPTION = os.getenv("PANEL_INSTANCE_DESCRIPTION", "Arcadia Production Panel Instance")
INSTANCE_WARNINGS = _split_env("PANEL_INSTANCE_WARNINGS")

# ============================================================
# CDN
# ============================================================

CDN_SCOPES = _load_cdn_scopes()
MAIN_SCOPE = os.getenv("PANEL_MAIN_SCOPE", "ibl@main")
CDN_TEMP_DIR = os.getenv("CDN_TEMP_DIR", tempfile.gettempdir())
CHUNK_TTL_SECONDS = int(os.getenv("CHUNK_TTL_SECONDS", "600"))
MAX_CHUNK_SIZE = 100_000_000
MAX_CHUNKS_PER_FILE = 100_000
# Uploads are rejected while either limit is reached
CHUNK_CACHE_MAX_ENTRIES = int(os.getenv("CHUNK_CACHE_MAX_ENTRIES", "10000"))
CHUNK_CACHE_MAX_BYTES = int(os.getenv("CHUNK_CACHE_MAX_BYTES", str(2_000_000_000)))

# ============================================================
# RPC RATELIMITS
# ============================================================

RPC_RATELIMIT_WINDOW_SECONDS = int(os.getenv("RPC_RATELIMIT_WINDOW_SECONDS", "420"))
RPC_RATELIMIT_MAX = int(os.getenv("RPC_RATELIMIT_MAX", "5"))

# ============================================================
# CORE CONSTANTS (returned to the panel frontend)
# ============================================================

FRONTEND_URL = os.getenv("FRONTEND_URL", "https://infinitybots.gg")
INFERNOPLEX_URL = os.getenv("INFERNOPLEX_URL", "https://infernoplex.infinitybots.gg")
CDN_URL = os.getenv("CDN_URL", "https://cdn.infinitybots.gg")
POPPLIO_URL = os.getenv("POPPLIO_URL", "https://spider.infinitybots.gg")
HTMLSANITIZE_URL = os.getenv("HTMLSANITIZE_URL", "https://hs.infinitybots.gg")
MAIN_SERVER_ID = os.getenv("MAIN_SERVER_ID", "")
STAFF_SERVER_ID = os.getenv("STAFF_SERVER_ID", "")
TESTING_SERVER_ID = os.getenv("TESTING_SERVER_ID", "")

# ============================================================
# NOTIFICATIONS
# ============================================================

DISCORD_WEBHOOK_URL = os.getenv("DISCORD_WEBHOOK_URL", "")


def startup_warnings() -> List[str]:
    """Collect configuration problems worth shouting about on boot."""
    warnings = []
    if not CLIENT_ID or not CLIENT_SECRET:
        warnings.append("PANEL_CLIENT_ID / PANEL_CLIENT_SECRET not set; staff login will fail")
    if not CDN_SCOPES:
        warnings.append("PANEL_CDN_SCOPES not set; CDN management is disabled")
    elif MAIN_SCOPE not in CDN_SCOPES:
        warnings.append(f"PANEL_MAIN_SCOPE '{MAIN_SCOPE}' is not a configured CDN scope")
    if not DISCORD_WEBHOOK_URL:
        warnings.append("DISCORD_WEBHOOK_URL not set; staff action notifications are log-only")
    return warnings
