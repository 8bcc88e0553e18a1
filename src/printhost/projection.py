"""Building blocks shared by the per-host snapshot projectors.

Projection maps keys that are present in a decoded payload onto snapshot
fields and leaves every other field alone.  The ``assign_*`` helpers
implement that rule: each one looks a value up, converts it, and only
writes the attribute when the key was there and the value converted.
"""

from __future__ import annotations

import math
from typing import Any

from printhost.models import JobState, KlippyState
from printhost.payload import safe_get


def bounded_text(value: str, limit: int) -> str:
    """Cut *value* to at most *limit* characters."""
    return value[:limit] if len(value) > limit else value


def as_float(value: Any) -> float | None:
    """Numeric JSON value as ``float``; ``None`` for anything else."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    result = float(value)
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def as_text(value: Any) -> str | None:
    """String or numeric JSON value as ``str``; ``None`` for anything else."""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def assign_float(target: Any, attr: str, source: Any, *keys: str | int, scale: float = 1.0) -> bool:
    value = as_float(safe_get(source, *keys))
    if value is None:
        return False
    setattr(target, attr, value * scale)
    return True


def assign_int(
    target: Any,
    attr: str,
    source: Any,
    *keys: str | int,
    scale: float = 1.0,
    minimum: int | None = 0,
) -> bool:
    """Assign a fixed-point integer (``int(value * scale)``, truncated).

    Results below *minimum* are clamped up to it; pass ``None`` to allow
    any sign.
    """
    value = as_float(safe_get(source, *keys))
    if value is None:
        return False
    result = int(value * scale)
    if minimum is not None and result < minimum:
        result = minimum
    setattr(target, attr, result)
    return True


def assign_text(target: Any, attr: str, source: Any, *keys: str | int, limit: int) -> bool:
    value = as_text(safe_get(source, *keys))
    if value is None:
        return False
    setattr(target, attr, bounded_text(value, limit))
    return True


def assign_flag(target: Any, attr: str, source: Any, *keys: str | int) -> bool:
    value = safe_get(source, *keys)
    if not isinstance(value, bool):
        return False
    setattr(target, attr, value)
    return True


def klippy_state_for(label: str) -> KlippyState | None:
    """Case-insensitive label lookup; unrecognised labels map to ``None``."""
    try:
        return KlippyState(label.lower())
    except ValueError:
        return None


def job_state_for(label: str) -> JobState | None:
    """Case-insensitive label lookup; unrecognised labels map to ``None``."""
    try:
        return JobState(label.lower())
    except ValueError:
        return None
