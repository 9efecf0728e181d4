"""
In-memory stand-ins for the Postgres-backed collaborators.

MemoryDeferredLinkStore mirrors DeferredLinkStore's method contract,
including the all-or-nothing claim, so the resolution engine can be
exercised under threads without a database.
"""
import copy
import threading
import uuid
from datetime import timedelta

from constants import DEFAULT_CONTENT_TITLE
from models import DeferredLink
from services.deferred_link_store import DuplicateIdentifier
from services.errors import ContentNotFound
from utils.short_codes import generate_short_code


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeContentLookup:
    def __init__(self, titles):
        self.titles = dict(titles)

    def get_content_title(self, content_id):
        if content_id not in self.titles:
            raise ContentNotFound(f"Content {content_id} not found")
        return (self.titles[content_id] or '').strip() or DEFAULT_CONTENT_TITLE


class MemoryDeferredLinkStore:
    def __init__(self):
        self.rows = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def _snapshot(self, row):
        return copy.copy(row) if row is not None else None

    # Uniqueness checks
    def _reference_taken(self, install_ref):
        return any(r.install_ref == install_ref for r in self.rows.values())

    def is_short_code_taken(self, short_code):
        return any(r.short_code == short_code for r in self.rows.values())

    # Writes
    def insert(self, *, install_ref, short_code, content_id, token_hash, title,
               subject_id, auxiliary_id, device_user_agent, device_ip,
               install_source, created_at, expires_at):
        with self._lock:
            if self._reference_taken(install_ref) or self.is_short_code_taken(short_code):
                raise DuplicateIdentifier(f"{install_ref}/{short_code}")
            link = DeferredLink(
                id=self._next_id, install_ref=install_ref, short_code=short_code,
                content_id=content_id, token_hash=token_hash, title=title,
                subject_id=subject_id, auxiliary_id=auxiliary_id,
                device_user_agent=device_user_agent, device_ip=device_ip,
                install_source=install_source, created_at=created_at,
                expires_at=expires_at, consumed=False, consumed_at=None,
            )
            self.rows[link.id] = link
            self._next_id += 1
            return self._snapshot(link)

    def claim(self, link_id, now):
        with self._lock:
            row = self.rows.get(link_id)
            if row is None or row.consumed or not (row.expires_at > now):
                return None
            row.consumed = True
            row.consumed_at = now
            return self._snapshot(row)

    def delete_expired(self, now):
        with self._lock:
            expired = [k for k, r in self.rows.items() if r.expires_at < now]
            for k in expired:
                del self.rows[k]
            return len(expired)

    def count_expired(self, now):
        return sum(1 for r in self.rows.values() if r.expires_at < now)

    # Candidate lookups
    def find_by_reference(self, install_ref):
        return self._snapshot(next((r for r in self.rows.values() if r.install_ref == install_ref), None))

    def find_by_short_code(self, short_code):
        return self._snapshot(next((r for r in self.rows.values() if r.short_code == short_code), None))

    def _newest(self, rows):
        rows = list(rows)
        if not rows:
            return None
        return self._snapshot(max(rows, key=lambda r: (r.created_at, r.id)))

    def find_most_recent_unclaimed(self, since, now):
        return self._newest(
            r for r in self.rows.values()
            if not r.consumed and r.expires_at > now and r.created_at >= since
        )

    def find_latest_by_ip(self, ip_forms, now):
        forms = set(ip_forms or ())
        return self._newest(
            r for r in self.rows.values()
            if r.device_ip in forms and not r.consumed and r.expires_at > now
        )

    # Test helpers
    def seed(self, created_at, ttl_minutes=30, device_ip=None, content_id='C1',
             title='Anime Portraits', subject_id='U1', auxiliary_id=None):
        return self.insert(
            install_ref=str(uuid.uuid4()),
            short_code=generate_short_code(),
            content_id=content_id,
            token_hash='0' * 64,
            title=title,
            subject_id=subject_id,
            auxiliary_id=auxiliary_id,
            device_user_agent='Mozilla/5.0 (Linux; Android 14)',
            device_ip=device_ip,
            install_source='play_store',
            created_at=created_at,
            expires_at=created_at + timedelta(minutes=ttl_minutes),
        )

    def get(self, link_id):
        return self.rows[link_id]
