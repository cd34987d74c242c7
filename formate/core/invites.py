"""
Invite link helpers: short codes, vanity slugs and token extraction.

Short codes use the Base58 alphabet (no 0, O, I or l) so they survive
being read aloud or retyped. A vanity key looks like ``my-survey-3xYz9Q``;
its trailing segment is the code.
"""

import secrets
from urllib.parse import parse_qs, urlparse

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

MIN_CODE_LENGTH = 6
MAX_CODE_LENGTH = 24
MIN_TOKEN_LENGTH = 11
MIN_JWT_LENGTH = 21


def is_base58(value: str, min_len: int = 1, max_len: int | None = None) -> bool:
    """Check that ``value`` is Base58 with a length in ``[min_len, max_len]``."""
    if not isinstance(value, str):
        return False
    if len(value) < min_len or (max_len is not None and len(value) > max_len):
        return False
    return all(ch in BASE58_ALPHABET for ch in value)


def generate_short_code(length: int = 8) -> str:
    """Generate a random Base58 code from a cryptographic source."""
    if length < 1:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(BASE58_ALPHABET) for _ in range(length))


def parse_vanity_or_code(key: str, known_slug: str | None = None) -> str | None:
    """Extract the short code from a vanity key or a bare code.

    Args:
        key: Either ``<slug>-<code>`` or a bare code.
        known_slug: The form's slug; a bare key equal to it is a slug,
            not a code.

    Returns:
        The code, or None if ``key`` carries none.
    """
    if not key:
        return None

    tail = key.split("-")[-1]
    if is_base58(tail, MIN_CODE_LENGTH, MAX_CODE_LENGTH):
        return tail

    if is_base58(key, MIN_CODE_LENGTH, MAX_CODE_LENGTH) and (not known_slug or key != known_slug):
        return key

    return None


def extract_token_from_text(text: str | None) -> str | None:
    """Pull an invite token out of pasted text.

    Accepts a full invite URL or a query string carrying ``t=<token>``,
    or a bare JWT-like token (three dot-separated segments).
    """
    s = (text or "").strip()
    if not s:
        return None

    parsed = urlparse(s)
    if parsed.scheme and parsed.netloc:
        token = _first_param(parsed.query, "t")
        if token and len(token) >= MIN_TOKEN_LENGTH:
            return token

    if "t=" in s:
        query = s.split("?", 1)[1] if "?" in s else s
        token = _first_param(query, "t")
        if token and len(token) >= MIN_TOKEN_LENGTH:
            return token

    if len(s.split(".")) == 3 and len(s) >= MIN_JWT_LENGTH:
        return s

    return None


def _first_param(query: str, name: str) -> str | None:
    values = parse_qs(query).get(name)
    return values[0] if values else None
