"""URL-safe encoding of assessment state for share links.

A state is serialized to compact JSON, UTF-8 encoded, then base64url
encoded without padding. The token alphabet is ``[A-Za-z0-9_-]``.

Round-trip caveats: ``-0`` may come back as ``0`` in other clients,
and non-JSON values (``NaN``, infinities, arbitrary objects) are
rejected at encode time rather than silently changed.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from typing import Any
from urllib.parse import parse_qs, urlsplit

TOKEN_PATTERN = re.compile(r"[A-Za-z0-9_-]*")
SHARE_QUERY_PARAM = "state"


class DecodeError(ValueError):
    """A share token could not be turned back into state."""


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite number {name} is not allowed")


def encode_state(value: Any) -> str:
    """Encode a JSON-serializable value as a base64url token.

    Args:
        value: Strings, finite numbers, booleans, ``None``, lists and
            dicts with string keys, nested freely.

    Returns:
        Token matching ``^[A-Za-z0-9_-]*$``.

    Raises:
        TypeError: If *value* contains a non-JSON type.
        ValueError: If *value* contains NaN or an infinity.
    """
    text = json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    token = base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")
    return token.rstrip("=")


def decode_state(token: str) -> Any:
    """Decode a token produced by :func:`encode_state`.

    Raises:
        DecodeError: If the token has characters outside the base64url
            alphabet, an impossible length, or does not decode to JSON.
    """
    if not isinstance(token, str) or not TOKEN_PATTERN.fullmatch(token):
        raise DecodeError("Failed to decode state: token is not base64url")

    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Failed to decode state: {exc}") from exc

    try:
        return json.loads(raw.decode("utf-8"), parse_constant=_reject_constant)
    except (UnicodeDecodeError, ValueError) as exc:
        raise DecodeError(f"Failed to decode state: {exc}") from exc


def generate_share_url(value: Any, base_url: str) -> str:
    """Build a share link carrying *value* in the ``state`` query parameter."""
    return f"{base_url}?{SHARE_QUERY_PARAM}={encode_state(value)}"


def state_from_share_url(url: str) -> Any:
    """Decode the state carried by a share link.

    Raises:
        DecodeError: If the link has no ``state`` parameter or it is malformed.
    """
    tokens = parse_qs(urlsplit(url).query).get(SHARE_QUERY_PARAM)
    if not tokens:
        raise DecodeError("Failed to decode state: link has no state parameter")
    return decode_state(tokens[0])
