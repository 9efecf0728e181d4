"""
Network utilities for client IP handling.

Issuance stores the device IP through normalize_ip() and the IP fallback
in resolution compares against normalize_ip() of the caller's address, so
both sides MUST go through this module or the comparison silently misses.
"""
import ipaddress
from typing import Mapping, Optional

from flask import request

# Checked in order after X-Forwarded-For. Each carries a single address.
SINGLE_VALUE_IP_HEADERS = (
    "X-Real-IP",
    "CF-Connecting-IP",
    "True-Client-IP",
    "X-Client-IP",
)


def normalize_ip(value: Optional[str]) -> Optional[str]:
    """
    Canonicalize a textual IP address.

    - "::ffff:203.0.113.5" -> "203.0.113.5"
    - "[2001:db8::1]:443" -> "2001:db8::1"
    - "203.0.113.5:8080" -> "203.0.113.5"
    - loopback, unspecified and unparseable values -> None

    Returns:
        Canonical address string, or None if there is no usable address
    """
    if not value:
        return None

    raw = value.strip().strip('"')
    if not raw:
        return None

    # Bracketed IPv6, optionally with a port
    if raw.startswith("["):
        end = raw.find("]")
        if end == -1:
            return None
        raw = raw[1:end]
    elif raw.count(":") == 1:
        # IPv4 with a port suffix
        raw = raw.split(":", 1)[0]

    # Zone index (fe80::1%eth0)
    raw = raw.split("%", 1)[0]

    try:
        addr = ipaddress.ip_address(raw)
    except ValueError:
        return None

    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped

    if addr.is_loopback or addr.is_unspecified:
        return None

    return str(addr)


def ip_equivalents(value: Optional[str]) -> list:
    """
    All textual forms a stored address may take for the same client.

    Rows written before normalization was enforced may still hold the
    IPv4-mapped IPv6 form, so lookups match on both.
    """
    normalized = normalize_ip(value)
    if not normalized:
        return []

    forms = [normalized]
    if ipaddress.ip_address(normalized).version == 4:
        forms.append(f"::ffff:{normalized}")
    return forms


def client_ip_from_headers(headers: Mapping[str, str], remote_addr: Optional[str]) -> Optional[str]:
    """
    Pick the most plausible client address from proxy headers.

    Precedence: first X-Forwarded-For entry, then the vendor single-value
    headers, then the peer address. The first candidate that normalizes to
    a usable (non-loopback) address wins.
    """
    candidates = []

    forwarded = headers.get("X-Forwarded-For")
    if forwarded:
        candidates.append(forwarded.split(",")[0])

    for header in SINGLE_VALUE_IP_HEADERS:
        value = headers.get(header)
        if value:
            candidates.append(value)

    candidates.append(remote_addr)

    for candidate in candidates:
        normalized = normalize_ip(candidate)
        if normalized:
            return normalized
    return None


def get_client_ip() -> str:
    """
    Get the client's IP address for the current request.

    When ProxyFix is enabled (TRUST_PROXY_HEADERS=true behind a proxy),
    request.remote_addr already holds the forwarded client address and
    the header scan below only confirms it.

    Returns:
        Normalized client IP, or empty string if not available
    """
    return client_ip_from_headers(request.headers, request.remote_addr) or ""
