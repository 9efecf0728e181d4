"""
Canonical short-code generator for deferred links.

CRITICAL: No other file should implement its own short-code uniqueness
logic. Callers pass the store-specific "is taken" check.
"""
import secrets
from typing import Callable, Optional

from constants import SHORT_CODE_ALPHABET, SHORT_CODE_LENGTH


def generate_short_code(length: int = SHORT_CODE_LENGTH, alphabet: str = SHORT_CODE_ALPHABET) -> str:
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def generate_unique_short_code(
    is_taken: Callable[[str], bool],
    *,
    length: int = SHORT_CODE_LENGTH,
    alphabet: Optional[str] = None,
    max_tries: int = 50,
    _candidate_fn=None  # For testing: allows injecting deterministic candidates
) -> str:
    """
    Generate a short code that is_taken() reports as free.

    Args:
        is_taken: Callable checking the code against stored records
        length: Length of the code (default 8)
        alphabet: Character set (default: uppercase alnum without 0/O, 1/I)
        max_tries: Attempts before giving up
        _candidate_fn: Optional test hook returning candidate codes per attempt

    Returns:
        A code not currently stored

    Raises:
        RuntimeError: If max_tries exceeded
    """
    if alphabet is None:
        alphabet = SHORT_CODE_ALPHABET

    for attempt in range(max_tries):
        if _candidate_fn:
            code = _candidate_fn(attempt)
        else:
            code = generate_short_code(length, alphabet)

        if not is_taken(code):
            return code

    raise RuntimeError(f"Failed to generate unique short code after {max_tries} attempts")
