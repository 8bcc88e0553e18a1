"""printhost - blocking clients for 3D-printer host HTTP APIs (Moonraker, OctoPrint)."""

from __future__ import annotations

import logging
import os
from importlib.metadata import PackageNotFoundError, version

from printhost.errors import (
    PrintHostError,
    ProtocolError,
    ResponseTimeout,
    SemanticMismatch,
    TransportError,
)
from printhost.models import (
    JobState,
    KlippyState,
    MotionLimits,
    OctoPrintJobSnapshot,
    OctoPrintPrinterSnapshot,
    OctoPrintVersion,
    PrinterSnapshot,
    PrintJobSnapshot,
    ServerSnapshot,
    TemperatureReading,
)
from printhost.printers import KlipperClient, OctoPrintClient, ProtocolClient
from printhost.transport import ConnectionTarget, SocketTransport, Transport

_logger = logging.getLogger(__name__)

try:
    __version__ = version("printhost")
except PackageNotFoundError:
    __version__ = "unknown"


def parse_float_env(name: str, default: float) -> float:
    """Parse a float from an environment variable with safe fallback.

    Logs a warning and returns *default* if the value is not a valid number.
    """
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        _logger.warning("Invalid number for %s=%r, using default %s", name, raw, default)
        return default


__all__ = [
    "ConnectionTarget",
    "JobState",
    "KlipperClient",
    "KlippyState",
    "MotionLimits",
    "OctoPrintClient",
    "OctoPrintJobSnapshot",
    "OctoPrintPrinterSnapshot",
    "OctoPrintVersion",
    "PrintHostError",
    "PrintJobSnapshot",
    "PrinterSnapshot",
    "ProtocolClient",
    "ProtocolError",
    "ResponseTimeout",
    "SemanticMismatch",
    "ServerSnapshot",
    "SocketTransport",
    "TemperatureReading",
    "Transport",
    "TransportError",
    "__version__",
    "parse_float_env",
]
