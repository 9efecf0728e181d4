"""
Deferred link resolution.

A freshly installed app calls in with whatever survived the store hop:
the reference, the short code, a mangled referrer string, or nothing.
Strategies run in strict priority order and the first one that identifies
a record ends the search:

    1. ReferenceStrategy   exact install_ref
    2. ShortCodeStrategy   short_code
    3. RecencyStrategy     newest unclaimed record inside a short window
    4. IpStrategy          newest unclaimed record from the caller's IP

Once a strategy identifies a record we never fall through to a weaker one,
even if that record turns out to be expired or already claimed. Falling
through would let one install be attributed twice.

The claim itself is DeferredLinkStore.claim(), a conditional UPDATE.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import config
from constants import STRATEGY_REFERENCE, STRATEGY_SHORT_CODE, STRATEGY_RECENCY, STRATEGY_IP
from services.errors import Expired, NotFound, RecordAlreadyConsumed
from utils.identifiers import split_identifiers
from utils.net import ip_equivalents, normalize_ip
from utils.redaction import mask_ip
from utils.timestamps import minutes_before, utc_now

logger = logging.getLogger(__name__)

SESSION_TOKEN_TYPE = "deferred_session"


@dataclass
class ResolveRequest:
    reference: Optional[str] = None
    short_code: Optional[str] = None
    client_ip: Optional[str] = None


@dataclass
class Resolution:
    content_id: str
    title: str
    auxiliary_id: Optional[str]
    session_token: str
    strategy: str
    reference: str

    def to_response(self) -> dict:
        return {
            "content_id": self.content_id,
            "title": self.title,
            "auxiliary_id": self.auxiliary_id,
            "session_token": self.session_token,
        }


# -----------------------------------------------------------------------------
# Strategies
# -----------------------------------------------------------------------------
class ReferenceStrategy:
    name = STRATEGY_REFERENCE

    def find(self, store, lookup: ResolveRequest, now):
        if not lookup.reference:
            return None
        return store.find_by_reference(lookup.reference)


class ShortCodeStrategy:
    name = STRATEGY_SHORT_CODE

    def find(self, store, lookup: ResolveRequest, now):
        if not lookup.short_code:
            return None
        return store.find_by_short_code(lookup.short_code)


class RecencyStrategy:
    """
    Last-resort global guess: the newest unclaimed record created within
    `window_minutes`. It is not scoped to the caller in any way, so the
    window is kept well inside the record TTL to bound false positives.
    Disable with ENABLE_RECENCY_FALLBACK=false.
    """
    name = STRATEGY_RECENCY

    def __init__(self, window_minutes: int):
        self.window_minutes = window_minutes

    def find(self, store, lookup: ResolveRequest, now):
        since = minutes_before(now, self.window_minutes)
        return store.find_most_recent_unclaimed(since=since, now=now)


class IpStrategy:
    name = STRATEGY_IP

    def find(self, store, lookup: ResolveRequest, now):
        forms = ip_equivalents(lookup.client_ip)
        if not forms:
            return None
        return store.find_latest_by_ip(forms, now)


# -----------------------------------------------------------------------------
# Engine
# -----------------------------------------------------------------------------
class ResolutionEngine:
    def __init__(self, store, codec, strategies, clock=utc_now, session_ttl=None, ip_strategy=None):
        self.store = store
        self.codec = codec
        self.strategies = list(strategies)
        self.clock = clock
        self.session_ttl = session_ttl or timedelta(hours=config.SESSION_TOKEN_TTL_HOURS)
        self.ip_strategy = ip_strategy

    @classmethod
    def from_settings(cls, store, codec, clock=utc_now, recency_enabled=True, ip_enabled=True,
                      recency_window_minutes=None, session_ttl_hours=None):
        strategies = [ReferenceStrategy(), ShortCodeStrategy()]
        if recency_enabled:
            strategies.append(RecencyStrategy(recency_window_minutes or config.RECENCY_WINDOW_MINUTES))
        ip_strategy = IpStrategy() if ip_enabled else None
        if ip_strategy:
            strategies.append(ip_strategy)
        return cls(
            store=store,
            codec=codec,
            strategies=strategies,
            clock=clock,
            session_ttl=timedelta(hours=session_ttl_hours or config.SESSION_TOKEN_TTL_HOURS),
            ip_strategy=ip_strategy,
        )

    def resolve(self, install_ref=None, short_code=None, client_ip=None) -> Resolution:
        """
        Claim the deferred link the caller most plausibly belongs to.

        Raises:
            NotFound: nothing matched (Expired / RecordAlreadyConsumed are
                subclasses raised when a specific record was identified)
            StoreUnavailable: the store timed out; nothing was mutated
        """
        reference, code = split_identifiers(install_ref, short_code)
        lookup = ResolveRequest(reference=reference, short_code=code, client_ip=normalize_ip(client_ip))
        return self._run(self.strategies, lookup)

    def resolve_by_ip(self, ip_address) -> Resolution:
        if self.ip_strategy is None:
            raise NotFound("IP fallback disabled")
        lookup = ResolveRequest(client_ip=normalize_ip(ip_address))
        if not lookup.client_ip:
            raise NotFound("No usable IP address")
        return self._run([self.ip_strategy], lookup)

    def _run(self, strategies, lookup: ResolveRequest) -> Resolution:
        now = self.clock()
        for strategy in strategies:
            record = strategy.find(self.store, lookup, now)
            if record is None:
                continue
            return self._claim(record, strategy.name, now)

        logger.info(
            f"[Resolve] No match (ref={'yes' if lookup.reference else 'no'}, "
            f"code={'yes' if lookup.short_code else 'no'}, ip={mask_ip(lookup.client_ip)})"
        )
        raise NotFound("No deferred link matched")

    def _claim(self, record, strategy_name, now) -> Resolution:
        if record.is_expired(now):
            logger.info(f"[Resolve] {strategy_name} matched expired link {record.install_ref}")
            raise Expired(f"Deferred link {record.install_ref} expired")

        if record.consumed:
            logger.info(f"[Resolve] {strategy_name} matched consumed link {record.install_ref}")
            raise RecordAlreadyConsumed(f"Deferred link {record.install_ref} already consumed")

        claimed = self.store.claim(record.id, now)
        if claimed is None:
            logger.warning(f"[Resolve] Lost claim race on {record.install_ref} via {strategy_name}")
            raise RecordAlreadyConsumed(f"Deferred link {record.install_ref} already consumed")

        session_token = self.codec.sign(
            {
                "token_type": SESSION_TOKEN_TYPE,
                "subject_id": claimed.subject_id,
                "content_id": claimed.content_id,
                "title": claimed.title,
                "auxiliary_id": claimed.auxiliary_id,
                "install_ref": claimed.install_ref,
                "issued_at": int(now.timestamp() * 1000),
            },
            self.session_ttl,
        )
        logger.info(f"[Resolve] Claimed {claimed.install_ref} via {strategy_name}")

        return Resolution(
            content_id=claimed.content_id,
            title=claimed.title,
            auxiliary_id=claimed.auxiliary_id,
            session_token=session_token,
            strategy=strategy_name,
            reference=claimed.install_ref,
        )
