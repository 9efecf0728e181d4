#!/usr/bin/env python3
"""Apply Alembic migrations for the deferred links tables without booting the app."""
import os
import sys

from dotenv import load_dotenv

dotenv_path = os.path.join(os.path.dirname(__file__), '.env')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path)
    print("[Manage] Loaded .env file")

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from utils.redaction import redact_database_url


def migrate(revision="head"):
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if not database_url:
        print("[Manage] ERROR: DATABASE_URL environment variable is not set.")
        sys.exit(1)

    if database_url.startswith("postgres://"):
        # env.py reads os.environ, so the fix has to land there
        database_url = database_url.replace("postgres://", "postgresql://", 1)
        os.environ["DATABASE_URL"] = database_url

    print(f"[Manage] Migrating {redact_database_url(database_url)} to '{revision}'")

    from alembic.config import Config
    from alembic import command

    alembic_cfg = Config(os.path.join(os.path.dirname(os.path.abspath(__file__)), "alembic.ini"))
    try:
        command.upgrade(alembic_cfg, revision)
    except Exception as e:
        print(f"[Manage] Alembic migration FAILED: {e}")
        sys.exit(1)
    print(f"[Manage] Alembic migration to '{revision}' successful.")


if __name__ == "__main__":
    migrate(sys.argv[1] if len(sys.argv) > 1 else "head")
