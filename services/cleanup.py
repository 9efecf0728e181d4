import logging

from services.deferred_link_store import DeferredLinkStore
from utils.timestamps import utc_now

logger = logging.getLogger(__name__)


def sweep_expired_links(store=None, now=None, dry_run=False):
    """
    Delete deferred links whose expires_at has passed, consumed or not.
    Returns count of deleted (or, with dry_run, deletable) links.

    Resolution rejects expired rows on read, so sweep cadence only
    affects table size.
    """
    store = store or DeferredLinkStore()
    now = now or utc_now()

    if dry_run:
        count = store.count_expired(now)
        logger.info(f"[Sweep] Dry run: {count} expired deferred links")
        return count

    deleted = store.delete_expired(now)
    logger.info(f"[Sweep] Deleted {deleted} expired deferred links")
    return deleted
