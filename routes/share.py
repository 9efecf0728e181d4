"""
Share Blueprint - share links and the browser landing page.

Provides:
- POST /share/generate-link - Sign a share token (app, bearer auth)
- GET /share/<content_id>?token=... - Landing page that tries to open the app
- POST /share/<content_id>/attribution - Store a deferred link before the
  page redirects to the store (called by the landing page script)

CSRF Configuration:
    generate-link is exempt (bearer-authenticated JSON from the app, no cookies).
    The attribution endpoint is protected: the landing page embeds a CSRF
    token and sends it as X-CSRFToken.
"""
import re

from flask import Blueprint, request, jsonify, current_app, render_template, make_response
from flask_login import login_required, current_user

import config
from constants import MAX_CONTENT_ID_LENGTH
from extensions import limiter
from services.errors import ContentMismatch, ContentNotFound, TokenInvalid
from services.providers import get_share_service
from services.share_links import build_share_links
from utils.net import get_client_ip
from utils.timestamps import isoformat_z

share_bp = Blueprint('share', __name__, url_prefix='/share')

CONTENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def is_valid_content_id(value) -> bool:
    return (
        isinstance(value, str)
        and 0 < len(value) <= MAX_CONTENT_ID_LENGTH
        and bool(CONTENT_ID_RE.match(value))
    )


def _request_data() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _no_cache(response):
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"
    return response


@share_bp.route("/generate-link", methods=["POST"])
@login_required
def generate_link():
    """
    Required fields: content_id
    Optional fields: image_id (stored as auxiliary_id)
    """
    data = _request_data()
    content_id = str(data.get("content_id") or "").strip()
    image_id = str(data.get("image_id") or "").strip() or None

    if not is_valid_content_id(content_id):
        return jsonify({
            "success": False,
            "error": "invalid_content_id",
            "message": "content_id is required and must be alphanumeric",
        }), 400

    try:
        issued = get_share_service().issue_share_token(current_user.id, content_id, image_id)
    except ContentNotFound:
        return jsonify({"success": False, "error": "content_not_found", "message": "Content not found"}), 404

    return jsonify({
        "success": True,
        "message": "Deep link generated successfully",
        "data": {
            "token": issued["token"],
            "content_id": issued["content_id"],
            "title": issued["title"],
            "link": issued["links"]["web"],
            "links": issued["links"],
        },
    })


@share_bp.route("/<content_id>", methods=["GET"])
def landing(content_id):
    """Landing page: try the app, fall back to the store via a deferred link."""
    token = request.args.get("token", "").strip()
    if not token:
        return "Invalid share link. Token is missing.", 400

    if not is_valid_content_id(content_id):
        return "Invalid content ID in share link.", 400

    service = get_share_service()
    try:
        payload = service.verify_share_token(token, content_id)
    except TokenInvalid:
        return "Share link has expired or is invalid.", 401
    except ContentMismatch:
        return "Content ID mismatch in share link.", 400

    links = build_share_links(token, content_id)
    html = render_template(
        "share.html",
        title=payload.get("title") or "",
        links=links,
        token=token,
        content_id=content_id,
    )
    response = make_response(html)
    response.headers["Content-Type"] = "text/html; charset=utf-8"
    return _no_cache(response)


@share_bp.route("/<content_id>/attribution", methods=["POST"])
@limiter.limit(config.ATTRIBUTION_RATE_LIMIT)
def create_attribution(content_id):
    """
    Required fields: token
    Optional fields: install_source
    """
    data = _request_data()
    token = str(data.get("token") or "").strip()
    install_source = data.get("install_source")

    if not token or not is_valid_content_id(content_id):
        return jsonify({"success": False, "error": "invalid_request"}), 400
    if install_source is not None and not isinstance(install_source, str):
        return jsonify({"success": False, "error": "invalid_request"}), 400

    device_info = {
        "user_agent": request.headers.get("User-Agent"),
        "ip": get_client_ip(),
        "install_source": install_source,
    }

    try:
        created = get_share_service().create_attribution_record(token, content_id, device_info)
    except TokenInvalid:
        return jsonify({"success": False, "error": "token_invalid"}), 401
    except ContentMismatch as e:
        current_app.logger.info(f"[Share] Attribution rejected for {content_id}: {e.message}")
        return jsonify({"success": False, "error": "content_mismatch"}), 400

    return _no_cache(jsonify({
        "success": True,
        "data": {
            "reference": created["reference"],
            "short_code": created["short_code"],
            "expires_at": isoformat_z(created["expires_at"]),
            "store_redirect_url": created["store_redirect_url"],
        },
    })), 201
