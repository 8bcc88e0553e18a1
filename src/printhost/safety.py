"""Input validation for control commands and snapshot safety checks.

The ``is_valid_*`` helpers gate every numeric setter: a command whose
arguments fail validation is rejected locally and never reaches the
network.
"""

from __future__ import annotations

import math
from typing import Any

from printhost.models import PrinterSnapshot, PrintJobSnapshot

MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 500.0

# Any coordinate (absolute) or displacement (relative) must stay within
# +/- this many millimetres.
POSITION_LIMIT = 1000.0

HOMEABLE_AXES = frozenset("XYZ")


# ------------------------------------------------------------------
# Argument validation
# ------------------------------------------------------------------


def _finite(value: float) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def is_valid_temperature(temperature: float) -> bool:
    """Whether *temperature* (Celsius) lies in [0, 500]."""
    return _finite(temperature) and MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE


def is_valid_position(position: float) -> bool:
    """Whether *position* (mm) lies in [-1000, 1000]."""
    return _finite(position) and -POSITION_LIMIT <= position <= POSITION_LIMIT


def is_valid_fan_speed(percent: float) -> bool:
    """Whether *percent* lies in [0, 100]."""
    return _finite(percent) and 0 <= percent <= 100


def is_valid_feedrate(feedrate: int) -> bool:
    return isinstance(feedrate, int) and not isinstance(feedrate, bool) and 0 < feedrate <= 65535


def is_valid_index(index: int) -> bool:
    """Whether *index* names a tool or fan (0-255)."""
    return isinstance(index, int) and not isinstance(index, bool) and 0 <= index <= 255


def normalize_axis(axis: str) -> str | None:
    """Return *axis* upper-cased if it can be homed on its own, else ``None``."""
    if not isinstance(axis, str) or len(axis) != 1:
        return None
    upper = axis.upper()
    return upper if upper in HOMEABLE_AXES else None


# ------------------------------------------------------------------
# Snapshot checks
# ------------------------------------------------------------------


def check_temperatures(
    printer: PrinterSnapshot,
    max_extruder_temp: float = 260,
    max_bed_temp: float = 110,
) -> dict[str, Any]:
    """Check that current and target temperatures are within safe limits.

    Args:
        printer: A refreshed :class:`~printhost.models.PrinterSnapshot`.
        max_extruder_temp: Maximum acceptable extruder temperature in Celsius.
        max_bed_temp: Maximum acceptable bed temperature in Celsius.

    Returns:
        A dict with keys ``safe`` (bool) and ``warnings`` (list of strings).
    """
    warnings: list[str] = []
    safe = True

    heaters = []
    if printer.has_extruder:
        heaters.append(("Extruder", printer.extruder, max_extruder_temp))
    if printer.has_extruder1:
        heaters.append(("Extruder 1", printer.extruder1, max_extruder_temp))
    if printer.has_heated_bed:
        heaters.append(("Bed", printer.heated_bed, max_bed_temp))

    for name, reading, limit in heaters:
        if reading.current > limit:
            warnings.append(f"{name} temperature ({reading.current:.1f}C) exceeds safe maximum ({limit:.0f}C)")
            safe = False
        if reading.target > limit:
            warnings.append(f"{name} target temperature ({reading.target:.1f}C) exceeds safe maximum ({limit:.0f}C)")
            safe = False

    if printer.has_extruder and printer.has_heated_bed:
        if printer.extruder.target > 0 and printer.heated_bed.target == 0:
            warnings.append("Extruder temperature is set but bed temperature is not. Most prints require both.")

    return {"safe": safe, "warnings": warnings}


def check_can_cancel(job: PrintJobSnapshot) -> dict[str, Any]:
    """Determine whether the last observed job can be cancelled.

    Returns:
        A dict with ``can_cancel`` (bool), ``current_state`` (str), and
        ``message`` (str).
    """
    state_text = job.state or "unknown"
    can_cancel = job.is_printing or job.is_paused

    if can_cancel:
        message = f"Active job detected (state: {state_text}). Cancellation is possible."
    else:
        message = f"No active job to cancel (state: {state_text})."

    return {
        "can_cancel": can_cancel,
        "current_state": state_text,
        "message": message,
    }
