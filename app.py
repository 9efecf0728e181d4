import logging

import click
from flask import Flask, jsonify
from flask_limiter.errors import RateLimitExceeded
from flask_login import LoginManager
from werkzeug.exceptions import HTTPException

import config
from database import close_connection
from extensions import limiter, csrf
from models import AppUser
from services.errors import StoreUnavailable, TokenInvalid

# Blueprints
from routes.share import share_bp, generate_link
from routes.deferred_links import deferred_links_bp
from routes.cron import cron_bp

logger = logging.getLogger(__name__)


def _load_user_from_bearer(request):
    """
    Resolve the app user from an auth-service access token.
    Share and session tokens carry subject_id, never user_id, so they are
    not accepted here.
    """
    auth = request.headers.get("Authorization", "")
    if not auth.lower().startswith("bearer "):
        return None

    from services.providers import get_token_codec
    try:
        claims = get_token_codec().verify(auth[7:].strip())
    except TokenInvalid:
        return None

    user_id = claims.get("user_id")
    return AppUser(user_id) if user_id else None


def create_app(test_config=None):
    app = Flask(__name__)

    app.config['SECRET_KEY'] = config.SECRET_KEY
    app.config['SHARE_TOKEN_SECRET'] = config.SHARE_TOKEN_SECRET
    app.config['CRON_TOKEN'] = config.CRON_TOKEN
    app.config['SHARE_TOKEN_TTL_DAYS'] = config.SHARE_TOKEN_TTL_DAYS
    app.config['DEFERRED_LINK_TTL_MINUTES'] = config.DEFERRED_LINK_TTL_MINUTES
    app.config['SESSION_TOKEN_TTL_HOURS'] = config.SESSION_TOKEN_TTL_HOURS
    app.config['RECENCY_WINDOW_MINUTES'] = config.RECENCY_WINDOW_MINUTES
    app.config['ENABLE_RECENCY_FALLBACK'] = config.ENABLE_RECENCY_FALLBACK
    app.config['ENABLE_IP_FALLBACK'] = config.ENABLE_IP_FALLBACK

    # Security Config
    app.config['SESSION_COOKIE_HTTPONLY'] = config.SESSION_COOKIE_HTTPONLY
    app.config['SESSION_COOKIE_SAMESITE'] = config.SESSION_COOKIE_SAMESITE
    app.config['SESSION_COOKIE_SECURE'] = config.SESSION_COOKIE_SECURE
    app.config['PREFERRED_URL_SCHEME'] = config.PREFERRED_URL_SCHEME
    app.config["WTF_CSRF_HEADERS"] = ["X-CSRFToken", "X-CSRF-Token"]
    app.config["WTF_CSRF_TIME_LIMIT"] = 3600

    # Test Config Overrides
    if test_config:
        app.config.update(test_config)

    # Setup Structured Logging
    from utils.logger import setup_logger
    setup_logger(app)

    # Health Check (Validates DB connectivity)
    @app.route("/healthz")
    def healthz():
        try:
            from database import get_db
            db = get_db()
            db.execute("SELECT 1").fetchone()
            return {"status": "ok", "db": "connected"}, 200
        except StoreUnavailable as e:
            return {"status": "error", "db": e.message}, 503

    # Simple ping endpoint for Docker health checks
    @app.route("/ping")
    def ping():
        return {"status": "ok"}, 200

    # ProxyFix
    if config.IS_PRODUCTION and config.TRUST_PROXY_HEADERS:
        from werkzeug.middleware.proxy_fix import ProxyFix
        n = config.PROXY_FIX_NUM_PROXIES
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=n, x_proto=n, x_host=n, x_port=n)
        logger.info(f"[Security] ProxyFix enabled for {n} proxies")

    # Extensions
    csrf.init_app(app)
    limiter.init_app(app)

    # Database Teardown
    app.teardown_appcontext(close_connection)

    # Login Manager (bearer tokens only, no session login)
    login_manager = LoginManager()
    login_manager.init_app(app)
    login_manager.request_loader(_load_user_from_bearer)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "error": "unauthorized"}), 401

    # Blueprints
    app.register_blueprint(share_bp)
    app.register_blueprint(deferred_links_bp)
    app.register_blueprint(cron_bp)

    # Exemptions
    csrf.exempt(generate_link)
    csrf.exempt(deferred_links_bp)
    csrf.exempt(cron_bp)

    # Error Handlers
    @app.errorhandler(StoreUnavailable)
    def store_unavailable(e):
        app.logger.error(f"[DB] Store unavailable: {e.message}")
        return jsonify({"success": False, "error": "store_unavailable", "retryable": True}), 503

    @app.errorhandler(RateLimitExceeded)
    def rate_limited(e):
        return jsonify({
            "success": False,
            "error": "rate_limited",
            "message": "Too many requests. Please try again later.",
        }), 429

    @app.errorhandler(Exception)
    def unhandled_error(e):
        # HTTP errors (404, CSRF 400, ...) keep their own responses
        if isinstance(e, HTTPException):
            return e
        app.logger.error(f"[App] Unhandled exception: {type(e).__name__}", exc_info=e)
        return jsonify({
            "success": False,
            "error": "internal_error",
            "message": "An unexpected error occurred.",
        }), 500

    # CLI Commands
    @app.cli.command("sweep-expired")
    @click.option("--dry-run", is_flag=True, help="Count expired links without deleting.")
    def sweep_expired_cmd(dry_run):
        """Delete expired deferred links."""
        from services.cleanup import sweep_expired_links
        count = sweep_expired_links(dry_run=dry_run)
        verb = "Found" if dry_run else "Deleted"
        click.echo(f"{verb} {count} expired deferred links.")

    return app


# WSGI Entry Point
app = create_app()

if __name__ == "__main__":
    app.run(host='0.0.0.0', debug=True)
