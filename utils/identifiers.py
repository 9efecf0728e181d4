"""
Classification of the identifiers an installed app hands back to us.

The store may deliver the reference intact, only the short code, the whole
referrer query string, or nothing at all.
"""
import re
from typing import Optional, Tuple
from urllib.parse import parse_qs, unquote

from constants import SHORT_CODE_ALPHABET, SHORT_CODE_LENGTH

KIND_REFERENCE = "reference"
KIND_SHORT_CODE = "short_code"

_REFERENCE_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_SHORT_CODE_RE = re.compile(
    rf"^[{SHORT_CODE_ALPHABET}]{{{SHORT_CODE_LENGTH}}}$"
)

# Referrer keys, in the order we trust them
REFERENCE_KEYS = ("install_ref", "installRef", "ref")
SHORT_CODE_KEYS = ("code", "short_code", "shortCode")


def is_reference(value: Optional[str]) -> bool:
    return bool(value) and bool(_REFERENCE_RE.match(value.strip()))


def is_short_code(value: Optional[str]) -> bool:
    return bool(value) and bool(_SHORT_CODE_RE.match(value.strip().upper()))


def classify_identifier(value: Optional[str]) -> Optional[str]:
    """
    Returns KIND_REFERENCE, KIND_SHORT_CODE, or None if the value looks
    like neither.
    """
    if is_reference(value):
        return KIND_REFERENCE
    if is_short_code(value):
        return KIND_SHORT_CODE
    return None


def _first(params: dict, keys) -> Optional[str]:
    for key in keys:
        values = params.get(key)
        if values and values[0].strip():
            return values[0].strip()
    return None


def split_identifiers(raw: Optional[str], short_code: Optional[str] = None) -> Tuple[Optional[str], Optional[str]]:
    """
    Turn whatever the app received into (reference, short_code).

    Accepts a bare reference, a bare short code, or an install referrer
    query string such as "install_ref=<uuid>&code=AB3DE9FG&utm_source=x"
    (possibly URL-encoded once more by the store). An explicit short_code
    argument wins over one found in the referrer.
    """
    reference = None
    code = short_code.strip().upper() if short_code and short_code.strip() else None

    value = (raw or "").strip()
    if value and "=" not in value and "%3D" in value.upper():
        value = unquote(value)

    if "=" in value:
        params = parse_qs(value, keep_blank_values=False)
        reference = _first(params, REFERENCE_KEYS)
        if code is None:
            found = _first(params, SHORT_CODE_KEYS)
            code = found.upper() if found else None
    elif value:
        kind = classify_identifier(value)
        if kind == KIND_REFERENCE:
            reference = value
        elif kind == KIND_SHORT_CODE and code is None:
            code = value.upper()

    if reference is not None and not is_reference(reference):
        # A mangled reference might still be a short code
        if code is None and is_short_code(reference):
            code = reference.upper()
        reference = None
    if code is not None and not is_short_code(code):
        code = None

    return (reference.lower() if reference else None), code
