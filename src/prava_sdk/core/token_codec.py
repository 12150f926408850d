"""Access token expiry decoding.

Reads the ``exp`` claim from a JWT payload without verifying the
signature or contacting the server. Nothing here raises: a token whose
expiry cannot be read is treated as non-expiring, so callers never force
a renewal they cannot justify.
"""

from __future__ import annotations

import binascii
import json
import time
from typing import Any

from jwt.utils import base64url_decode


def _now_ms() -> int:
    return int(time.time() * 1000)


def decode_payload(token: Any) -> dict[str, Any] | None:
    """Decode the claims segment of a three-part token.

    Args:
        token: Candidate access token.

    Returns:
        The claims object, or None if the token is malformed.
    """
    if not isinstance(token, str):
        return None

    parts = token.split(".")
    if len(parts) != 3:
        return None

    try:
        claims = json.loads(base64url_decode(parts[1]))
    except (binascii.Error, ValueError, UnicodeError, RecursionError):
        return None

    return claims if isinstance(claims, dict) else None


def decode_expiry(token: Any) -> int | None:
    """Get the token expiry in milliseconds since the epoch.

    Args:
        token: Candidate access token.

    Returns:
        ``exp * 1000`` when the claim is present and numeric, else None.
    """
    claims = decode_payload(token)
    if claims is None:
        return None

    exp = claims.get("exp")
    # bool is an int subclass but never a timestamp
    if isinstance(exp, bool) or not isinstance(exp, int | float):
        return None
    try:
        return int(exp * 1000)
    except (OverflowError, ValueError):
        # inf / nan
        return None


def is_expiring_soon(
    token: Any,
    horizon_ms: int,
    *,
    now_ms: int | None = None,
) -> bool:
    """Check whether the token expires within ``horizon_ms``.

    Unknown expiry is never "expiring soon".
    """
    expiry = decode_expiry(token)
    if expiry is None:
        return False
    now = _now_ms() if now_ms is None else now_ms
    return expiry - now < horizon_ms


def is_expired(token: Any, *, now_ms: int | None = None) -> bool:
    """Check whether the token's expiry has passed."""
    expiry = decode_expiry(token)
    if expiry is None:
        return False
    now = _now_ms() if now_ms is None else now_ms
    return expiry <= now
