"""
Postgres-backed store for deferred links (table: deferred_links).

Candidate lookups may race with other resolvers. Correctness rests on
claim(), which is the only statement that writes `consumed`.
"""
import logging

import psycopg2.errors

from database import get_db
from models import DeferredLink

logger = logging.getLogger(__name__)

_RETURNING = """
    RETURNING id, install_ref, short_code, content_id, token_hash, title,
              subject_id, auxiliary_id, device_user_agent, device_ip,
              install_source, created_at, expires_at, consumed, consumed_at
"""


class DuplicateIdentifier(Exception):
    """Insert lost a race on install_ref or short_code."""
    pass


class DeferredLinkStore:
    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    # -------------------------------------------------------------------------
    # Uniqueness checks (advisory; the unique indexes are authoritative)
    # -------------------------------------------------------------------------
    def is_short_code_taken(self, short_code: str) -> bool:
        row = self.db.execute(
            "SELECT 1 FROM deferred_links WHERE short_code = %s", (short_code,)
        ).fetchone()
        return row is not None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------
    def insert(self, *, install_ref, short_code, content_id, token_hash, title,
               subject_id, auxiliary_id, device_user_agent, device_ip,
               install_source, created_at, expires_at) -> DeferredLink:
        """
        Insert a complete record in one statement.

        Raises:
            DuplicateIdentifier: install_ref or short_code already exists
        """
        try:
            row = self.db.execute(
                f"""
                INSERT INTO deferred_links (
                    install_ref, short_code, content_id, token_hash, title,
                    subject_id, auxiliary_id, device_user_agent, device_ip,
                    install_source, created_at, expires_at, consumed, consumed_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, false, NULL)
                {_RETURNING}
                """,
                (install_ref, short_code, content_id, token_hash, title,
                 subject_id, auxiliary_id, device_user_agent, device_ip,
                 install_source, created_at, expires_at)
            ).fetchone()
        except psycopg2.errors.UniqueViolation as e:
            self.db.rollback()
            raise DuplicateIdentifier(str(e)) from e

        self.db.commit()
        return DeferredLink.from_row(row)

    def claim(self, link_id, now) -> DeferredLink | None:
        """
        Atomically flip consumed false -> true.

        Single conditional UPDATE filtered on id AND consumed = false, so
        concurrent callers cannot both succeed. Returns None when zero rows
        were affected (someone else claimed it, or it expired meanwhile).
        """
        row = self.db.execute(
            f"""
            UPDATE deferred_links
            SET consumed = true, consumed_at = %s, updated_at = %s
            WHERE id = %s
              AND consumed = false
              AND expires_at > %s
            {_RETURNING}
            """,
            (now, now, link_id, now)
        ).fetchone()
        self.db.commit()
        return DeferredLink.from_row(row)

    def delete_expired(self, now) -> int:
        cursor = self.db.execute(
            "DELETE FROM deferred_links WHERE expires_at < %s", (now,)
        )
        deleted = cursor.rowcount
        self.db.commit()
        return deleted

    def count_expired(self, now) -> int:
        row = self.db.execute(
            "SELECT COUNT(*) AS cnt FROM deferred_links WHERE expires_at < %s", (now,)
        ).fetchone()
        return row['cnt']

    # -------------------------------------------------------------------------
    # Candidate lookups
    # -------------------------------------------------------------------------
    def find_by_reference(self, install_ref: str) -> DeferredLink | None:
        """Any state; the engine decides between expired / consumed / claimable."""
        row = self.db.execute(
            "SELECT * FROM deferred_links WHERE install_ref = %s", (install_ref,)
        ).fetchone()
        return DeferredLink.from_row(row)

    def find_by_short_code(self, short_code: str) -> DeferredLink | None:
        row = self.db.execute(
            "SELECT * FROM deferred_links WHERE short_code = %s", (short_code,)
        ).fetchone()
        return DeferredLink.from_row(row)

    def find_most_recent_unclaimed(self, since, now) -> DeferredLink | None:
        row = self.db.execute(
            """
            SELECT * FROM deferred_links
            WHERE consumed = false
              AND expires_at > %s
              AND created_at >= %s
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            (now, since)
        ).fetchone()
        return DeferredLink.from_row(row)

    def find_latest_by_ip(self, ip_forms, now) -> DeferredLink | None:
        """
        ip_forms: equivalent textual forms of one address (see utils.net.ip_equivalents).
        """
        if not ip_forms:
            return None
        row = self.db.execute(
            """
            SELECT * FROM deferred_links
            WHERE device_ip = ANY(%s)
              AND consumed = false
              AND expires_at > %s
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            (list(ip_forms), now)
        ).fetchone()
        return DeferredLink.from_row(row)
