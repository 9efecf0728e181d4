"""
Share / session token codec.

Tokens are HS256 JWTs. The payload is whatever the caller passes in;
exp and iat are added on signing and removed again on verification so
that verify(sign(payload, ttl)) == payload.

Both timestamps come from the codec's clock, the same one the services
use, and expiry is checked against it too.

Usage:
    codec = TokenCodec(secret)
    token = codec.sign({"content_id": "C1", ...}, timedelta(days=30))
    payload = codec.verify(token)   # raises TokenInvalid
"""
import hashlib
import logging
from datetime import timedelta
from typing import Any, Dict

import jwt

from services.errors import TokenInvalid
from utils.timestamps import utc_now

logger = logging.getLogger(__name__)

REGISTERED_CLAIMS = ("exp", "iat")


class TokenCodec:
    algorithm = "HS256"

    def __init__(self, secret: str, clock=utc_now):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret
        self.clock = clock

    def sign(self, payload: Dict[str, Any], ttl: timedelta) -> str:
        clash = [k for k in REGISTERED_CLAIMS if k in payload]
        if clash:
            raise ValueError(f"Payload may not set reserved claims: {clash}")

        now = self.clock()
        claims = dict(payload)
        claims["iat"] = now
        claims["exp"] = now + ttl
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        if not token or not isinstance(token, str):
            raise TokenInvalid("Token is missing")

        # PyJWT would compare exp/iat with the wall clock; ours is checked below.
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError as e:
            logger.info(f"[Tokens] Rejected token: {type(e).__name__}")
            raise TokenInvalid("Token invalid")

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            raise TokenInvalid("Token invalid")
        if exp <= self.clock().timestamp():
            raise TokenInvalid("Token expired")

        for claim in REGISTERED_CLAIMS:
            claims.pop(claim, None)
        return claims


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a token, stored for audit instead of the token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
