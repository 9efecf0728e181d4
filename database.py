import logging

import psycopg2
from psycopg2.extras import DictCursor
from flask import g

from config import DATABASE_URL, DB_CONNECT_TIMEOUT_SECONDS, DB_STATEMENT_TIMEOUT_MS, IS_PRODUCTION
from services.errors import StoreUnavailable
from utils.redaction import redact_database_url

logger = logging.getLogger(__name__)


def connect(db_url=None):
    """
    Open a psycopg2 connection with the store timeouts applied.

    Raises:
        StoreUnavailable: If the server cannot be reached in time
    """
    db_url = db_url or DATABASE_URL
    try:
        conn = psycopg2.connect(
            db_url,
            cursor_factory=DictCursor,
            connect_timeout=DB_CONNECT_TIMEOUT_SECONDS,
            options=f"-c statement_timeout={DB_STATEMENT_TIMEOUT_MS}",
        )
    except psycopg2.OperationalError as e:
        logger.error(
            "[DB] Connection Failed (%s) while connecting to %s",
            type(e).__name__,
            redact_database_url(db_url),
        )
        raise StoreUnavailable("Database connection failed") from e
    return PostgresDB(conn)


def get_db():
    if 'db' not in g:
        g.db = connect()
    return g.db


def close_connection(exception=None):
    db = g.pop('db', None)
    if db is not None:
        db.close()


class PostgresDB:
    """
    Strict Postgres wrapper.
    Passes SQL through to psycopg2 without modification.
    Expects %s placeholders.
    """
    def __init__(self, conn):
        self._conn = conn

    def execute(self, sql, params=None):
        cur = self._conn.cursor()
        try:
            cur.execute(sql, params)
            return cur
        except psycopg2.OperationalError as e:
            # Covers statement_timeout (QueryCanceled) and dropped connections
            logger.error(f"[DB] Store unavailable: {type(e).__name__}")
            self._safe_rollback()
            raise StoreUnavailable("Database operation timed out or failed") from e
        except Exception as e:
            # In PROD, do NOT log raw SQL (PII Risk)
            logger.error(f"[DB] Query Failed: {e}")
            if not IS_PRODUCTION:
                logger.error(f"[DB] SQL: {sql}")
            raise

    def _safe_rollback(self):
        try:
            self._conn.rollback()
        except psycopg2.Error:
            logger.warning("[DB] Rollback after failure did not complete")

    def commit(self):
        try:
            self._conn.commit()
        except psycopg2.OperationalError as e:
            raise StoreUnavailable("Database commit failed") from e

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()

    def cursor(self):
        return self._conn.cursor()
