"""Snapshot structures populated by the printer-host clients.

A snapshot is allocated once per client and mutated in place by every
successful refresh.  All fields have defaults, so a snapshot is always in
a fully defined state, and projection only ever overwrites fields that a
response actually carried (last-known-value semantics): a field missing
from the latest response keeps whatever an earlier response put there.

Text fields are bounded.  Longer values are cut to the limits below
rather than rejected.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any

# Longest text kept per bounded field, in characters.
STATE_LABEL_MAX = 15
FILENAME_MAX = 63
VERSION_MAX = 31
HOSTNAME_MAX = 31


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class KlippyState(enum.Enum):
    """Mutually exclusive Klipper lifecycle state."""

    READY = "ready"
    ERROR = "error"
    PAUSED = "paused"
    PRINTING = "printing"
    STANDBY = "standby"
    SHUTDOWN = "shutdown"
    STARTUP = "startup"


class JobState(enum.Enum):
    """Mutually exclusive state of the current print job."""

    PRINTING = "printing"
    PAUSED = "paused"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Klipper / Moonraker snapshots
# ---------------------------------------------------------------------------


@dataclass
class TemperatureReading:
    """One heater's readings.

    ``power`` is the heater duty cycle as fixed point, 0-255.
    """

    current: float = 0.0
    target: float = 0.0
    power: int = 0

    @property
    def power_fraction(self) -> float:
        return self.power / 255

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PrinterSnapshot:
    """Most recently observed printer state, temperatures and motion.

    ``speed_factor`` and ``flow_factor`` are percentages stored as
    integers (1.0 -> 100).  ``status`` is ``None`` when the last state
    label was not recognised; ``state`` still holds the label text.
    """

    state: str = ""
    status: KlippyState | None = None

    extruder: TemperatureReading = field(default_factory=TemperatureReading)
    extruder1: TemperatureReading = field(default_factory=TemperatureReading)
    heated_bed: TemperatureReading = field(default_factory=TemperatureReading)

    position_x: float = 0.0
    position_y: float = 0.0
    position_z: float = 0.0
    position_e: float = 0.0

    speed_factor: int = 0
    flow_factor: int = 0

    has_extruder: bool = False
    has_extruder1: bool = False
    has_heated_bed: bool = False
    is_homed: bool = False

    @property
    def ready(self) -> bool:
        return self.status is KlippyState.READY

    @property
    def error(self) -> bool:
        return self.status is KlippyState.ERROR

    @property
    def paused(self) -> bool:
        return self.status is KlippyState.PAUSED

    @property
    def printing(self) -> bool:
        return self.status is KlippyState.PRINTING

    @property
    def standby(self) -> bool:
        return self.status is KlippyState.STANDBY

    @property
    def shutdown(self) -> bool:
        return self.status is KlippyState.SHUTDOWN

    @property
    def startup(self) -> bool:
        return self.status is KlippyState.STARTUP

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary.

        The :attr:`status` enum is converted to its string value (or
        ``None``) so the result can be passed directly to ``json.dumps``.
        """
        data = asdict(self)
        data["status"] = self.status.value if self.status else None
        return data


@dataclass
class PrintJobSnapshot:
    """Most recently observed print job.

    ``progress`` is a fraction in [0, 1].  Durations are whole seconds and
    sizes whole bytes.  ``time_left`` and ``printed_bytes`` are derived
    from the other fields when a response allows it.
    """

    filename: str = ""
    state: str = ""
    job_state: JobState | None = None
    progress: float = 0.0
    print_time: int = 0
    estimated_time: int = 0
    time_left: int = 0
    file_size: int = 0
    printed_bytes: int = 0

    @property
    def is_printing(self) -> bool:
        return self.job_state is JobState.PRINTING

    @property
    def is_paused(self) -> bool:
        return self.job_state is JobState.PAUSED

    @property
    def is_complete(self) -> bool:
        return self.job_state is JobState.COMPLETE

    @property
    def is_cancelled(self) -> bool:
        return self.job_state is JobState.CANCELLED

    @property
    def has_error(self) -> bool:
        return self.job_state is JobState.ERROR

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary."""
        data = asdict(self)
        data["job_state"] = self.job_state.value if self.job_state else None
        return data


@dataclass
class ServerSnapshot:
    """Firmware and API server identification."""

    klipper_version: str = ""
    moonraker_version: str = ""
    hostname: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MotionLimits:
    """Kinematic limits of the machine.

    Reserved: no operation populates this yet, so every field stays at its
    default.
    """

    max_velocity: float = 0.0
    max_acceleration: float = 0.0
    square_corner_velocity: float = 0.0
    x_min: float = 0.0
    x_max: float = 0.0
    y_min: float = 0.0
    y_max: float = 0.0
    z_min: float = 0.0
    z_max: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# OctoPrint snapshots
# ---------------------------------------------------------------------------


@dataclass
class OctoPrintPrinterSnapshot:
    """OctoPrint's printer state text and its own flag set.

    Unlike Klipper's single lifecycle state these flags are reported
    independently by OctoPrint and several can be true at once.
    """

    state: str = ""
    closed_or_error: bool = False
    error: bool = False
    operational: bool = False
    paused: bool = False
    printing: bool = False
    ready: bool = False
    sd_ready: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class OctoPrintVersion:
    api: str = ""
    server: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class OctoPrintJobSnapshot:
    """OctoPrint's view of the current job.

    ``completion`` is a percentage (0-100) as OctoPrint reports it.
    """

    state: str = ""
    estimated_print_time: int = 0
    file_date: int = 0
    file_name: str = ""
    file_origin: str = ""
    file_size: int = 0
    completion: float = 0.0
    filepos: int = 0
    print_time: int = 0
    print_time_left: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
