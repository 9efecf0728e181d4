"""
Share link issuance.

Two steps, at two different times:

1. issue_share_token(): the user taps "share" in the app. We sign a
   30-day token describing the content and the sharer. Nothing is stored.
2. create_attribution_record(): the recipient's browser opened the link,
   the app did not open, and the page is about to send them to the store.
   We store a 30-minute deferred link and hand back a store URL carrying
   its reference so the freshly installed app can claim it.
"""
import logging
import uuid
from datetime import timedelta
from typing import Optional
from urllib.parse import quote, urlencode

import config
from constants import (
    DEFAULT_INSTALL_SOURCE, MAX_INSERT_ATTEMPTS, MAX_INSTALL_SOURCE_LENGTH, MAX_USER_AGENT_LENGTH,
)
from services.deferred_link_store import DuplicateIdentifier
from services.errors import ContentMismatch, ContentNotFound, StoreUnavailable, TokenInvalid
from utils.net import normalize_ip
from utils.redaction import mask_ip
from utils.short_codes import generate_unique_short_code
from utils.timestamps import utc_now
from utils.tokens import hash_token

logger = logging.getLogger(__name__)

SHARE_TOKEN_TYPE = "share"


# -----------------------------------------------------------------------------
# URL builders
# -----------------------------------------------------------------------------
def store_url(package: str = None) -> str:
    package = package or config.ANDROID_PACKAGE
    return f"{config.PLAY_STORE_BASE_URL}?{urlencode({'id': package})}"


def store_redirect_url(install_ref: str, short_code: str, package: str = None) -> str:
    """
    Store listing URL with the deferred-link identifiers in the Play
    `referrer` parameter, which the store hands to the app after install.
    The short code rides along in case the store truncates the reference.
    """
    package = package or config.ANDROID_PACKAGE
    referrer = urlencode({"install_ref": install_ref, "code": short_code})
    query = urlencode({"id": package, "referrer": referrer})
    return f"{config.PLAY_STORE_BASE_URL}?{query}"


def build_share_links(token: str, content_id: str) -> dict:
    """Web link, Android intent link, custom scheme link, and plain store link."""
    path = f"share/{quote(content_id, safe='')}?token={quote(token, safe='')}"
    fallback = quote(store_url(), safe='')
    return {
        "web": f"{config.PUBLIC_BASE_URL}/{path}",
        "android_intent": (
            f"intent://{path}#Intent;scheme={config.APP_URL_SCHEME};"
            f"package={config.ANDROID_PACKAGE};S.browser_fallback_url={fallback};end"
        ),
        "custom_scheme": f"{config.APP_URL_SCHEME}://{path}",
        "store": store_url(),
    }


def _clip(value: Optional[str], limit: int) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value[:limit] or None


# -----------------------------------------------------------------------------
# Service
# -----------------------------------------------------------------------------
class ShareLinkService:
    def __init__(self, store, content_lookup, codec, clock=utc_now,
                 share_ttl_days=None, link_ttl_minutes=None):
        self.store = store
        self.content_lookup = content_lookup
        self.codec = codec
        self.clock = clock
        self.share_ttl = timedelta(days=share_ttl_days or config.SHARE_TOKEN_TTL_DAYS)
        self.link_ttl = timedelta(minutes=link_ttl_minutes or config.DEFERRED_LINK_TTL_MINUTES)

    def issue_share_token(self, subject_id, content_id, auxiliary_id=None) -> dict:
        """
        Sign a share token for content_id on behalf of subject_id.

        Returns:
            dict with token, title and the share links

        Raises:
            ContentNotFound: If the content does not exist
        """
        title = self.content_lookup.get_content_title(content_id)

        payload = {
            "token_type": SHARE_TOKEN_TYPE,
            "subject_id": str(subject_id),
            "content_id": str(content_id),
            "title": title,
            "auxiliary_id": auxiliary_id or None,
            "issued_at": int(self.clock().timestamp() * 1000),
        }
        token = self.codec.sign(payload, self.share_ttl)
        logger.info(f"[Share] Issued share token for content {content_id} by user {subject_id}")

        return {
            "token": token,
            "content_id": str(content_id),
            "title": title,
            "links": build_share_links(token, str(content_id)),
        }

    def verify_share_token(self, token: str, content_id: Optional[str] = None) -> dict:
        """
        Raises:
            TokenInvalid: Bad signature, expired, or not a share token
            ContentMismatch: Token was issued for different content
        """
        payload = self.codec.verify(token)
        if payload.get("token_type") != SHARE_TOKEN_TYPE or not payload.get("content_id"):
            raise TokenInvalid("Not a share token")
        if content_id is not None and payload["content_id"] != str(content_id):
            raise ContentMismatch("Content ID mismatch in share link")
        return payload

    def create_attribution_record(self, token: str, content_id: Optional[str] = None,
                                  device_info: Optional[dict] = None) -> dict:
        """
        Store a deferred link for a share whose in-app open failed.

        Identifiers are finalized before the single INSERT; a unique-index
        collision from a concurrent writer discards them and draws again.
        Nothing is stored if every attempt collides.

        Returns:
            dict with reference, short_code, expires_at, store_redirect_url

        Raises:
            TokenInvalid, ContentMismatch
            StoreUnavailable: every insert attempt collided
        """
        payload = self.verify_share_token(token, content_id)

        try:
            title = self.content_lookup.get_content_title(payload["content_id"])
        except ContentNotFound:
            raise ContentMismatch(f"Content {payload['content_id']} no longer exists")

        device_info = device_info or {}
        device_ip = normalize_ip(device_info.get("ip"))
        token_hash = hash_token(token)

        for attempt in range(MAX_INSERT_ATTEMPTS):
            install_ref = str(uuid.uuid4())
            short_code = generate_unique_short_code(self.store.is_short_code_taken)
            now = self.clock()

            try:
                link = self.store.insert(
                    install_ref=install_ref,
                    short_code=short_code,
                    content_id=payload["content_id"],
                    token_hash=token_hash,
                    title=title or payload.get("title"),
                    subject_id=payload["subject_id"],
                    auxiliary_id=payload.get("auxiliary_id"),
                    device_user_agent=_clip(device_info.get("user_agent"), MAX_USER_AGENT_LENGTH),
                    device_ip=device_ip,
                    install_source=(
                        _clip(device_info.get("install_source"), MAX_INSTALL_SOURCE_LENGTH)
                        or DEFAULT_INSTALL_SOURCE
                    ),
                    created_at=now,
                    expires_at=now + self.link_ttl,
                )
            except DuplicateIdentifier:
                logger.warning(f"[Share] Identifier collision on insert (attempt {attempt + 1}); regenerating")
                continue

            logger.info(
                f"[Share] Created deferred link {link.install_ref} code={link.short_code} "
                f"content={link.content_id} ip={mask_ip(device_ip)}"
            )
            return {
                "reference": link.install_ref,
                "short_code": link.short_code,
                "expires_at": link.expires_at,
                "store_redirect_url": store_redirect_url(link.install_ref, link.short_code),
            }

        logger.error(f"[Share] Gave up storing deferred link after {MAX_INSERT_ATTEMPTS} collisions")
        raise StoreUnavailable(f"Failed to store deferred link after {MAX_INSERT_ATTEMPTS} attempts")
