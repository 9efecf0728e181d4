"""
Read-only content lookup used to denormalize a title onto shares.

The categories table is owned by the catalog admin; this service only reads it.
"""
import logging

from constants import DEFAULT_CONTENT_TITLE
from database import get_db
from services.errors import ContentNotFound

logger = logging.getLogger(__name__)


class CategoryContentLookup:
    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    def get_content_title(self, content_id: str) -> str:
        """
        Raises:
            ContentNotFound: If the category is missing or soft-deleted
        """
        row = self.db.execute(
            "SELECT name FROM categories WHERE id = %s AND is_deleted = false",
            (content_id,)
        ).fetchone()
        if not row:
            raise ContentNotFound(f"Content {content_id} not found")
        return (row['name'] or '').strip() or DEFAULT_CONTENT_TITLE
