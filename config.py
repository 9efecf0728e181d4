import os
import logging
from urllib.parse import urlparse

from utils.env import get_env_str, get_env_bool, get_env_int

logger = logging.getLogger(__name__)

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

# -----------------------------------------------------------------------------
# Dotenv loading (LOCAL ONLY)
# -----------------------------------------------------------------------------
# Rules:
# - Railway must be configured via real environment variables (Railway dashboard).
# - Tests must be deterministic and must NOT implicitly ingest a developer's repo-root .env.
# - Local dev may use .env for convenience.
_RUNNING_ON_RAILWAY = bool(os.getenv("RAILWAY_ENVIRONMENT") or os.getenv("RAILWAY_PROJECT_ID"))
_FLASK_ENV_EARLY = (os.getenv("FLASK_ENV") or "").strip().lower()

if (not _RUNNING_ON_RAILWAY) and (_FLASK_ENV_EARLY not in {"test", "testing"}):
    from dotenv import load_dotenv
    load_dotenv(dotenv_path=os.path.join(BASE_DIR, ".env"), override=False)

# -----------------------------------------------------------------------------
# Environment / Stage
# -----------------------------------------------------------------------------
def _normalize_stage(raw: str) -> str:
    raw = (raw or "").strip().lower()
    if raw in {"prod", "production"}:
        return "production"
    if raw in {"stage", "staging"}:
        return "staging"
    if raw in {"test", "testing"}:
        return "test"
    return "dev"


FLASK_ENV = (os.getenv("FLASK_ENV", "development") or "development").strip().lower()
APP_STAGE = _normalize_stage(os.getenv("APP_STAGE") or FLASK_ENV)

IS_STAGING = APP_STAGE == "staging"
IS_PRODUCTION = APP_STAGE == "production"
IS_SECURE_ENV = IS_STAGING or IS_PRODUCTION

# -----------------------------------------------------------------------------
# URLs
# -----------------------------------------------------------------------------
def _strip_trailing_slash(url: str) -> str:
    return url[:-1] if url.endswith("/") else url


PUBLIC_BASE_URL = _strip_trailing_slash(get_env_str("PUBLIC_BASE_URL", default="http://localhost:5000"))

# Share links printed into chats must never point at a dev host.
if IS_SECURE_ENV:
    if not os.getenv("PUBLIC_BASE_URL"):
        raise RuntimeError(f"CRITICAL: PUBLIC_BASE_URL environment variable is required in {APP_STAGE} stage.")
    if not PUBLIC_BASE_URL.lower().startswith("https://"):
        raise RuntimeError(f"CRITICAL: PUBLIC_BASE_URL must be HTTPS in {APP_STAGE} stage. Got: {PUBLIC_BASE_URL}")
    for _forbidden in ("localhost", "127.0.0.1"):
        if _forbidden in PUBLIC_BASE_URL.lower():
            raise RuntimeError(
                f"CRITICAL: PUBLIC_BASE_URL contains forbidden string '{_forbidden}' in {APP_STAGE} stage."
            )

# -----------------------------------------------------------------------------
# Database (Postgres-only)
# -----------------------------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    if os.environ.get("ALLOW_MISSING_DB"):
        logger.warning("DATABASE_URL missing but ALLOW_MISSING_DB set. Using dummy.")
        DATABASE_URL = "postgresql://localhost/missing"
    else:
        raise RuntimeError("DATABASE_URL environment variable is required.")

# Normalize postgres:// -> postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)
    os.environ["DATABASE_URL"] = DATABASE_URL

if not DATABASE_URL.startswith("postgresql://"):
    # Never include credentials in errors/logs.
    p = urlparse(DATABASE_URL)
    got = f"{p.scheme}://{p.hostname}" if p.scheme else "INVALID_URL"
    raise ValueError(
        f"CRITICAL: DATABASE_URL must be a PostgreSQL URL (postgresql://...). Got: {got}."
    )

# Store calls must fail fast (StoreUnavailable) rather than hang a resolve.
DB_CONNECT_TIMEOUT_SECONDS = get_env_int("DB_CONNECT_TIMEOUT_SECONDS", 3, minimum=1)
DB_STATEMENT_TIMEOUT_MS = get_env_int("DB_STATEMENT_TIMEOUT_MS", 2000, minimum=100)

# -----------------------------------------------------------------------------
# Secrets
# -----------------------------------------------------------------------------
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    if IS_SECURE_ENV:
        raise ValueError(f"SECRET_KEY must be set in {APP_STAGE} environment.")
    SECRET_KEY = "dev-secret-key-change-this"
    logger.warning("[Config] WARNING: Using default SECRET_KEY for development. DO NOT use in real environments!")

# Signing key for share and session tokens. Shared with the auth service
# that issues the app's bearer tokens.
SHARE_TOKEN_SECRET = get_env_str("SHARE_TOKEN_SECRET", default=SECRET_KEY)

CRON_TOKEN = get_env_str("CRON_TOKEN")

# -----------------------------------------------------------------------------
# Proxy / Cookie Security
# -----------------------------------------------------------------------------
TRUST_PROXY_HEADERS = get_env_bool("TRUST_PROXY_HEADERS", default=False)
PROXY_FIX_NUM_PROXIES = get_env_int("PROXY_FIX_NUM_PROXIES", 1, minimum=1)

SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SAMESITE = "Lax"
SESSION_COOKIE_SECURE = IS_SECURE_ENV
PREFERRED_URL_SCHEME = "https" if IS_SECURE_ENV else "http"

# -----------------------------------------------------------------------------
# App / Store
# -----------------------------------------------------------------------------
ANDROID_PACKAGE = get_env_str("ANDROID_PACKAGE", default="photo.editor.photoeditor.filtermaster")
APP_URL_SCHEME = get_env_str("APP_URL_SCHEME", default="photoeditor")
PLAY_STORE_BASE_URL = _strip_trailing_slash(
    get_env_str("PLAY_STORE_BASE_URL", default="https://play.google.com/store/apps/details")
)

# -----------------------------------------------------------------------------
# Lifetimes / Windows
# -----------------------------------------------------------------------------
SHARE_TOKEN_TTL_DAYS = get_env_int("SHARE_TOKEN_TTL_DAYS", 30, minimum=1)
DEFERRED_LINK_TTL_MINUTES = get_env_int("DEFERRED_LINK_TTL_MINUTES", 30, minimum=1)
SESSION_TOKEN_TTL_HOURS = get_env_int("SESSION_TOKEN_TTL_HOURS", 24, minimum=1)
RECENCY_WINDOW_MINUTES = get_env_int("RECENCY_WINDOW_MINUTES", 5, minimum=1)

if RECENCY_WINDOW_MINUTES >= DEFERRED_LINK_TTL_MINUTES:
    logger.warning(
        f"[Config] RECENCY_WINDOW_MINUTES ({RECENCY_WINDOW_MINUTES}) is not tighter than "
        f"DEFERRED_LINK_TTL_MINUTES ({DEFERRED_LINK_TTL_MINUTES}). Clamping."
    )
    RECENCY_WINDOW_MINUTES = max(1, DEFERRED_LINK_TTL_MINUTES - 1)

# -----------------------------------------------------------------------------
# Rate Limits
# -----------------------------------------------------------------------------
RESOLVE_RATE_LIMIT = get_env_str("RESOLVE_RATE_LIMIT", default="30 per minute")
ATTRIBUTION_RATE_LIMIT = get_env_str("ATTRIBUTION_RATE_LIMIT", default="20 per minute")

# -----------------------------------------------------------------------------
# Feature Flags
# -----------------------------------------------------------------------------
ENABLE_RECENCY_FALLBACK = get_env_bool("ENABLE_RECENCY_FALLBACK", default=True)
ENABLE_IP_FALLBACK = get_env_bool("ENABLE_IP_FALLBACK", default=True)
