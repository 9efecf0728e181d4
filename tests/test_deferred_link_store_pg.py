"""
DeferredLinkStore against a real Postgres.

Skipped unless DATABASE_URL points at a reachable server. Migrations are
applied once per session; the table is truncated before each test.
"""
import os
import threading
import uuid
from datetime import timedelta
from pathlib import Path

import psycopg2
import psycopg2.errors
import pytest

from database import connect
from services.deferred_link_store import DeferredLinkStore, DuplicateIdentifier
from services.errors import StoreUnavailable
from utils.short_codes import generate_short_code
from utils.timestamps import utc_now

PROJECT_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(scope='module')
def migrated_db():
    db_url = os.environ.get('DATABASE_URL')
    try:
        conn = psycopg2.connect(db_url, connect_timeout=2)
    except psycopg2.OperationalError:
        pytest.skip("Postgres not reachable")
    conn.close()

    from alembic import command
    from alembic.config import Config
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    command.upgrade(cfg, "head")
    return db_url


@pytest.fixture
def pg_store(migrated_db):
    db = connect(migrated_db)
    db.execute("TRUNCATE TABLE deferred_links RESTART IDENTITY")
    db.commit()
    yield DeferredLinkStore(db)
    db.rollback()
    db.close()


def _insert(store, now, **overrides):
    fields = dict(
        install_ref=str(uuid.uuid4()),
        short_code=generate_short_code(),
        content_id='C1',
        token_hash='0' * 64,
        title='Anime Portraits',
        subject_id='U1',
        auxiliary_id=None,
        device_user_agent='Mozilla/5.0 (Linux; Android 14)',
        device_ip=None,
        install_source='play_store',
        created_at=now,
        expires_at=now + timedelta(minutes=30),
    )
    fields.update(overrides)
    return store.insert(**fields)


class TestDeferredLinkStorePostgres:

    def test_insert_and_find(self, pg_store):
        now = utc_now()
        link = _insert(pg_store, now, auxiliary_id='IMG9')

        found = pg_store.find_by_reference(link.install_ref)
        assert found.id == link.id
        assert found.auxiliary_id == 'IMG9'
        assert found.consumed is False
        assert pg_store.find_by_short_code(link.short_code).id == link.id
        assert pg_store.is_short_code_taken(link.short_code) is True

    def test_duplicate_short_code_rejected(self, pg_store):
        now = utc_now()
        link = _insert(pg_store, now)

        with pytest.raises(DuplicateIdentifier):
            _insert(pg_store, now, short_code=link.short_code)

        # Connection is usable after the rollback
        assert pg_store.find_by_reference(link.install_ref) is not None

    def test_duplicate_reference_rejected(self, pg_store):
        now = utc_now()
        link = _insert(pg_store, now)

        with pytest.raises(DuplicateIdentifier):
            _insert(pg_store, now, install_ref=link.install_ref)

    def test_claim_is_single_use(self, pg_store):
        now = utc_now()
        link = _insert(pg_store, now)

        claimed = pg_store.claim(link.id, now)
        assert claimed.consumed is True
        assert claimed.consumed_at is not None
        assert pg_store.claim(link.id, now) is None

    def test_claim_rejects_expired(self, pg_store):
        now = utc_now()
        link = _insert(pg_store, now - timedelta(minutes=31))

        assert pg_store.claim(link.id, now) is None

    def test_concurrent_claims_one_winner(self, pg_store, migrated_db):
        now = utc_now()
        link = _insert(pg_store, now)
        winners = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def worker():
            db = connect(migrated_db)
            try:
                barrier.wait()
                claimed = DeferredLinkStore(db).claim(link.id, now)
                if claimed is not None:
                    with lock:
                        winners.append(claimed.id)
            finally:
                db.close()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert winners == [link.id]

    def test_recency_and_ip_lookups(self, pg_store):
        now = utc_now()
        older = _insert(pg_store, now - timedelta(minutes=2), device_ip='198.51.100.7')
        newer = _insert(pg_store, now - timedelta(minutes=1), device_ip='203.0.113.9')

        recent = pg_store.find_most_recent_unclaimed(since=now - timedelta(minutes=5), now=now)
        assert recent.id == newer.id

        by_ip = pg_store.find_latest_by_ip(['198.51.100.7', '::ffff:198.51.100.7'], now)
        assert by_ip.id == older.id

        pg_store.claim(older.id, now)
        assert pg_store.find_latest_by_ip(['198.51.100.7'], now) is None

    def test_sweep(self, pg_store):
        now = utc_now()
        _insert(pg_store, now - timedelta(minutes=45))
        live = _insert(pg_store, now)

        assert pg_store.count_expired(now) == 1
        assert pg_store.delete_expired(now) == 1
        assert pg_store.find_by_reference(live.install_ref) is not None

    def test_consumed_flag_and_timestamp_agree(self, pg_store):
        now = utc_now()
        link = _insert(pg_store, now)

        with pytest.raises(psycopg2.errors.CheckViolation):
            pg_store.db.execute(
                "UPDATE deferred_links SET consumed = true WHERE id = %s", (link.id,)
            )


def test_unreachable_server_is_store_unavailable():
    with pytest.raises(StoreUnavailable):
        connect("postgresql://nobody@127.0.0.1:1/none")
