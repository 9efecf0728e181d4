"""
Exceptions raised by the share / deferred-link services.

Blueprints translate these into JSON responses. Resolution failures are all
reported to the app as "attribution not found"; the distinct classes exist
for logging and tests.
"""


class AttributionError(Exception):
    """Base exception for share and deferred-link errors."""
    code = "attribution_error"

    def __init__(self, message=None):
        self.message = message or self.__class__.__doc__
        super().__init__(self.message)


class TokenInvalid(AttributionError):
    """Share token is expired, tampered with, or malformed."""
    code = "token_invalid"


class ContentNotFound(AttributionError):
    """Referenced content does not exist."""
    code = "content_not_found"


class ContentMismatch(AttributionError):
    """Token does not match the requested content, or the content is gone."""
    code = "content_mismatch"


class NotFound(AttributionError):
    """No deferred link matched."""
    code = "not_found"


class Expired(NotFound):
    """Matched a deferred link whose expiry has passed."""
    code = "expired"


class RecordAlreadyConsumed(NotFound):
    """Matched a deferred link that was already claimed."""
    code = "already_consumed"


class StoreUnavailable(AttributionError):
    """Deferred-link store did not answer in time. Safe to retry."""
    code = "store_unavailable"
