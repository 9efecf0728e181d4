"""
Deferred Links Blueprint - called by the freshly installed app.

Provides:
- POST /api/deferred-links/resolve - Claim by install referrer / short code
- POST /api/deferred-links/resolve-by-ip - Claim by the device's IP address

Every miss is reported as "attribution_not_found", whether the record never
existed, expired, or was claimed by someone else. The distinction is only
logged, so the endpoint does not reveal anything about other users' shares.

CSRF: exempt (configured in app.py). No cookies are involved.
"""
import ipaddress

from flask import Blueprint, request, jsonify, current_app

import config
from constants import MAX_INSTALL_REF_LENGTH
from extensions import limiter
from services.errors import NotFound
from services.providers import get_resolution_engine
from utils.net import get_client_ip

deferred_links_bp = Blueprint('deferred_links', __name__, url_prefix='/api/deferred-links')


def _not_found():
    return jsonify({
        "success": False,
        "error": "attribution_not_found",
        "message": "No pending share found for this install.",
    }), 404


def _optional_str(data, key):
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    value = value.strip()
    if len(value) > MAX_INSTALL_REF_LENGTH:
        raise ValueError(f"{key} must be at most {MAX_INSTALL_REF_LENGTH} characters")
    return value or None


@deferred_links_bp.route("/resolve", methods=["POST"])
@limiter.limit(config.RESOLVE_RATE_LIMIT)
def resolve():
    """
    Optional fields: install_ref (raw referrer, reference or short code), short_code
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"success": False, "error": "invalid_request"}), 400

    try:
        install_ref = _optional_str(data, "install_ref")
        short_code = _optional_str(data, "short_code")
    except ValueError as e:
        return jsonify({"success": False, "error": "invalid_request", "message": str(e)}), 400

    engine = get_resolution_engine()
    try:
        resolution = engine.resolve(install_ref=install_ref, short_code=short_code, client_ip=get_client_ip())
    except NotFound as e:
        current_app.logger.info(f"[Resolve] Miss ({e.code})")
        return _not_found()

    return jsonify({"success": True, "data": resolution.to_response()})


@deferred_links_bp.route("/resolve-by-ip", methods=["POST"])
@limiter.limit(config.RESOLVE_RATE_LIMIT)
def resolve_by_ip():
    """
    Optional fields: ip_address (defaults to the request's client address)
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"success": False, "error": "invalid_request"}), 400

    ip_address = data.get("ip_address")
    if ip_address is not None:
        if not isinstance(ip_address, str) or not ip_address.strip():
            return jsonify({"success": False, "error": "invalid_ip_address"}), 400
        ip_address = ip_address.strip()
        try:
            ipaddress.ip_address(ip_address)
        except ValueError:
            return jsonify({
                "success": False,
                "error": "invalid_ip_address",
                "message": "IP address must be a valid IPv4 or IPv6 address",
            }), 400
    else:
        ip_address = get_client_ip()

    engine = get_resolution_engine()
    try:
        resolution = engine.resolve_by_ip(ip_address)
    except NotFound as e:
        current_app.logger.info(f"[Resolve] IP miss ({e.code})")
        return _not_found()

    return jsonify({"success": True, "data": resolution.to_response()})
