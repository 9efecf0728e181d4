from flask_login import UserMixin

from utils.timestamps import ensure_aware


class AppUser(UserMixin):
    """
    App user identified by a bearer token issued by the auth service.
    Only the id is known here; profile data lives with the auth service.
    """
    def __init__(self, id):
        self.id = str(id)


class DeferredLink:
    """
    A short-lived attribution record linking a share to a pending install.

    Persistent fields are immutable after insert except consumed /
    consumed_at, which only the atomic claim in DeferredLinkStore sets.
    """
    ALLOWED_COLUMNS = (
        'id', 'install_ref', 'short_code', 'content_id', 'token_hash', 'title',
        'subject_id', 'auxiliary_id', 'device_user_agent', 'device_ip',
        'install_source', 'created_at', 'expires_at', 'consumed', 'consumed_at',
    )

    def __init__(self, **kwargs):
        for k, v in kwargs.items():
            if k in self.ALLOWED_COLUMNS:
                setattr(self, k, v)
        self.created_at = ensure_aware(getattr(self, 'created_at', None))
        self.expires_at = ensure_aware(getattr(self, 'expires_at', None))
        self.consumed_at = ensure_aware(getattr(self, 'consumed_at', None))
        self.consumed = bool(getattr(self, 'consumed', False))
        self.auxiliary_id = getattr(self, 'auxiliary_id', None)

    @classmethod
    def from_row(cls, row):
        if row is None:
            return None
        return cls(**dict(row))

    def is_expired(self, now) -> bool:
        """Expiry is checked at read time; swept rows may linger until then."""
        return not (now < self.expires_at)

    def __repr__(self):
        return f"<DeferredLink {getattr(self, 'id', None)} ref={self.install_ref} consumed={self.consumed}>"
