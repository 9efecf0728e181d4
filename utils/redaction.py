"""Helpers for keeping database credentials and client addresses out of logs."""

from __future__ import annotations

import ipaddress
from urllib.parse import urlparse


def redact_database_url(url: str) -> str:
    """Return DATABASE_URL with password masked for logs/errors."""
    raw = (url or "").strip()
    if not raw:
        return "EMPTY_DATABASE_URL"
    try:
        parsed = urlparse(raw)
        scheme = parsed.scheme or "postgresql"
        host = parsed.hostname or "unknown-host"
        port = f":{parsed.port}" if parsed.port else ""
        db_name = parsed.path.lstrip("/") or "unknown-db"
        if parsed.username:
            return f"{scheme}://{parsed.username}:****@{host}{port}/{db_name}"
        return f"{scheme}://{host}{port}/{db_name}"
    except ValueError:
        return "INVALID_DATABASE_URL"


def mask_ip(ip: str | None) -> str:
    """
    203.0.113.5 -> 203.0.113.x, 2001:db8:1:2::5 -> 2001:db8:1::/48
    """
    if not ip:
        return "-"
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return "invalid"
    if addr.version == 4:
        return ".".join(str(addr).split(".")[:3] + ["x"])
    network = ipaddress.ip_network(f"{addr}/48", strict=False)
    return str(network)
