"""
Environment variable helpers used by config.py.
"""
import os
from typing import Optional


def get_env_str(
    name: str,
    default: Optional[str] = None,
    required: bool = False,
    strip: bool = True
) -> Optional[str]:
    """
    Read a string environment variable.

    Whitespace is stripped by default so that secrets pasted into a
    dashboard with a trailing newline still verify signatures.

    Raises:
        ValueError: If required=True and the value is missing or blank
    """
    value = os.getenv(name)

    if value is None:
        if required:
            raise ValueError(f"Required environment variable '{name}' is not set.")
        return default

    if strip:
        value = value.strip()

    if not value:
        if required:
            raise ValueError(f"Required environment variable '{name}' is empty.")
        return default

    return value


def get_env_bool(name: str, default: bool = False) -> bool:
    """
    Truthy: "1", "true", "yes", "on" (case-insensitive). Unset or blank -> default.
    """
    value = os.getenv(name, "").strip().lower()

    if not value:
        return default

    return value in ("1", "true", "yes", "on")


def get_env_int(name: str, default: int, minimum: Optional[int] = None) -> int:
    """
    Read an integer environment variable, falling back to default on
    blank or unparseable values. Values below minimum are clamped.
    """
    raw = get_env_str(name)
    if raw is None:
        value = default
    else:
        try:
            value = int(raw)
        except ValueError:
            value = default

    if minimum is not None and value < minimum:
        value = minimum
    return value
