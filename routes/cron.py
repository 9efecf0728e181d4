import hmac

from flask import Blueprint, request, jsonify, current_app

from services.cleanup import sweep_expired_links
from services.providers import get_clock, get_store

cron_bp = Blueprint("cron", __name__, url_prefix="/cron")


@cron_bp.route("/sweep-expired", methods=["POST"])
def sweep_expired():
    expected_token = current_app.config.get("CRON_TOKEN")
    if not expected_token:
        # If token not configured, we can't verify, so deny.
        return jsonify({"success": False, "error": "unauthorized"}), 401

    incoming_token = request.headers.get("X-CRON-TOKEN", "")
    if not hmac.compare_digest(incoming_token, expected_token):
        return jsonify({"success": False, "error": "unauthorized"}), 401

    dry_run = request.args.get("dry_run", "").lower() in ("1", "true", "yes")
    count = sweep_expired_links(store=get_store(), now=get_clock()(), dry_run=dry_run)
    return jsonify({"success": True, "deleted": 0 if dry_run else count, "expired": count})
