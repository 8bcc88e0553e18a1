"""Bounded JSON decoding and tolerant lookups into the decoded tree.

Projectors never see an exception from this layer.  A body that is empty,
malformed, larger than the configured capacity, or not a JSON object all
decode to ``{}``, and a key that is absent looks exactly the same as a key
that could not be decoded.
"""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

_MISSING = object()


def decode_payload(text: str, capacity: int) -> dict[str, Any]:
    """Decode *text* into a JSON object tree, or ``{}``.

    Args:
        text: Response body text (possibly truncated).
        capacity: Largest body, in characters, that will be decoded.
    """
    if not text or not text.strip():
        return {}
    if len(text) > capacity:
        logger.debug("Payload of %d chars exceeds capacity %d; not decoded", len(text), capacity)
        return {}
    try:
        document = json.loads(text)
    except ValueError as exc:
        logger.debug("Payload is not valid JSON: %s", exc)
        return {}
    if not isinstance(document, dict):
        return {}
    return document


def _step(current: Any, key: str | int) -> Any:
    if isinstance(current, dict) and isinstance(key, str):
        return current.get(key, _MISSING)
    if isinstance(current, list) and isinstance(key, int) and not isinstance(key, bool):
        if -len(current) <= key < len(current):
            return current[key]
    return _MISSING


def safe_get(data: Any, *keys: str | int, default: Any = None) -> Any:
    """Walk nested dicts (string keys) and lists (int indexes) safely.

    Returns *default* on any miss or type mismatch along the way.
    """
    current = data
    for key in keys:
        current = _step(current, key)
        if current is _MISSING:
            return default
    return current


def has_path(data: Any, *keys: str | int) -> bool:
    """Whether every key in *keys* is present along the path."""
    return safe_get(data, *keys, default=_MISSING) is not _MISSING
