"""
Per-request construction of the share / deferred-link collaborators.

Tests (or an alternate deployment) may pre-register replacements in
app.extensions under the keys below.
"""
from flask import current_app

import config
from services.content import CategoryContentLookup
from services.deferred_link_store import DeferredLinkStore
from utils.timestamps import utc_now
from utils.tokens import TokenCodec

STORE_KEY = "deferred_link_store"
CONTENT_LOOKUP_KEY = "content_lookup"
CLOCK_KEY = "deferred_link_clock"


def get_store():
    return current_app.extensions.get(STORE_KEY) or DeferredLinkStore()


def get_content_lookup():
    return current_app.extensions.get(CONTENT_LOOKUP_KEY) or CategoryContentLookup()


def get_clock():
    return current_app.extensions.get(CLOCK_KEY) or utc_now


def get_token_codec():
    return TokenCodec(
        current_app.config.get("SHARE_TOKEN_SECRET") or config.SHARE_TOKEN_SECRET,
        clock=get_clock(),
    )


def get_share_service():
    from services.share_links import ShareLinkService
    cfg = current_app.config
    return ShareLinkService(
        store=get_store(),
        content_lookup=get_content_lookup(),
        codec=get_token_codec(),
        clock=get_clock(),
        share_ttl_days=cfg.get("SHARE_TOKEN_TTL_DAYS", config.SHARE_TOKEN_TTL_DAYS),
        link_ttl_minutes=cfg.get("DEFERRED_LINK_TTL_MINUTES", config.DEFERRED_LINK_TTL_MINUTES),
    )


def get_resolution_engine():
    from services.resolution import ResolutionEngine
    cfg = current_app.config
    return ResolutionEngine.from_settings(
        store=get_store(),
        codec=get_token_codec(),
        clock=get_clock(),
        recency_enabled=cfg.get("ENABLE_RECENCY_FALLBACK", config.ENABLE_RECENCY_FALLBACK),
        ip_enabled=cfg.get("ENABLE_IP_FALLBACK", config.ENABLE_IP_FALLBACK),
        recency_window_minutes=cfg.get("RECENCY_WINDOW_MINUTES", config.RECENCY_WINDOW_MINUTES),
        session_ttl_hours=cfg.get("SESSION_TOKEN_TTL_HOURS", config.SESSION_TOKEN_TTL_HOURS),
    )
