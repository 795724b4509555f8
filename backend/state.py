# state.py — Process-wide services built once at startup and stored on app.state
from dataclasses import dataclass, field
from typing import Dict

from fastapi import Request

import config
from bot_actions import BotActions
from cdn import ChunkStore
from config import CdnScope
from notifier import ChatNotifier, build_notifier
from oauth import DiscordOAuthProvider, OAuthProvider
from ttl_cache import RateLimiter, TTLCache


@dataclass
class PanelState:
    oauth: OAuthProvider
    notifier: ChatNotifier
    bot_actions: BotActions
    chunks: ChunkStore
    rpc_limiter: RateLimiter
    cdn_scopes: Dict[str, CdnScope] = field(default_factory=dict)


def build_state() -> PanelState:
    return PanelState(
        oauth=DiscordOAuthProvider(),
        notifier=build_notifier(),
        bot_actions=BotActions(),
        chunks=ChunkStore(
            TTLCache(config.CHUNK_TTL_SECONDS, max_entries=config.CHUNK_CACHE_MAX_ENTRIES),
            max_bytes=config.CHUNK_CACHE_MAX_BYTES,
        ),
        rpc_limiter=RateLimiter(config.RPC_RATELIMIT_WINDOW_SECONDS, config.RPC_RATELIMIT_MAX),
        cdn_scopes=dict(config.CDN_SCOPES),
    )


def get_panel_state(request: Request) -> PanelState:
    """Dependency for the shared services (FastAPI Depends)"""
    return request.app.state.panel
