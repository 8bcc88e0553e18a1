"""Klipper client speaking the `Moonraker HTTP API
<https://moonraker.readthedocs.io/en/latest/web_api/>`_.

:class:`KlipperClient` keeps four snapshots (:attr:`~KlipperClient.printer_stats`,
:attr:`~KlipperClient.print_job`, :attr:`~KlipperClient.server_info`,
:attr:`~KlipperClient.motion_limits`) that the query methods refresh in
place.  Projection follows last-known-value semantics: only fields present
in a response are overwritten, so after a partial response the remaining
fields still hold what an earlier response reported.  Code that needs to
know whether a value is fresh has to compare successive snapshots itself.

Control commands are sent as small JSON bodies and judged purely on the
HTTP status code.  Numeric arguments are validated first and a rejected
command never touches the network.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from printhost.models import (
    FILENAME_MAX,
    HOSTNAME_MAX,
    STATE_LABEL_MAX,
    VERSION_MAX,
    MotionLimits,
    PrinterSnapshot,
    PrintJobSnapshot,
    ServerSnapshot,
    TemperatureReading,
)
from printhost.printers.base import ProtocolClient
from printhost.projection import (
    as_float,
    as_text,
    assign_float,
    assign_int,
    assign_text,
    bounded_text,
    job_state_for,
    klippy_state_for,
)
from printhost.safety import (
    is_valid_fan_speed,
    is_valid_feedrate,
    is_valid_index,
    is_valid_position,
    is_valid_temperature,
    normalize_axis,
)

logger = logging.getLogger(__name__)

DEFAULT_FEEDRATE = 3000


# ---------------------------------------------------------------------------
# Projectors
# ---------------------------------------------------------------------------


def _apply_printer_state(printer: PrinterSnapshot, label: str) -> None:
    printer.state = bounded_text(label, STATE_LABEL_MAX)
    printer.status = klippy_state_for(label)


def project_temperature(source: dict[str, Any], reading: TemperatureReading) -> None:
    """Heater object -> :class:`TemperatureReading` (power scaled to 0-255)."""
    assign_float(reading, "current", source, "temperature")
    assign_float(reading, "target", source, "target")
    assign_int(reading, "power", source, "power", scale=255)


def project_printer_info(
    result: dict[str, Any],
    printer: PrinterSnapshot,
    server: ServerSnapshot,
) -> None:
    """``GET /printer/info`` ``result`` -> printer state and server identity."""
    label = as_text(result.get("state"))
    if label is not None:
        _apply_printer_state(printer, label)
    assign_text(server, "klipper_version", result, "software_version", limit=VERSION_MAX)
    assign_text(server, "hostname", result, "hostname", limit=HOSTNAME_MAX)


def project_printer_statistics(status: dict[str, Any], printer: PrinterSnapshot) -> None:
    """``result.status`` of the combined object query -> printer snapshot."""
    heaters = (
        ("extruder", printer.extruder, "has_extruder"),
        ("extruder1", printer.extruder1, "has_extruder1"),
        ("heater_bed", printer.heated_bed, "has_heated_bed"),
    )
    for key, reading, flag in heaters:
        heater = status.get(key)
        if isinstance(heater, dict):
            project_temperature(heater, reading)
            setattr(printer, flag, True)

    toolhead = status.get("toolhead")
    if isinstance(toolhead, dict):
        position = toolhead.get("position")
        if isinstance(position, list) and len(position) >= 4:
            for index, axis in enumerate("xyze"):
                assign_float(printer, f"position_{axis}", position, index)

        homed_axes = as_text(toolhead.get("homed_axes"))
        if homed_axes is not None:
            homed = homed_axes.lower()
            printer.is_homed = all(axis in homed for axis in "xyz")

    print_stats = status.get("print_stats")
    if isinstance(print_stats, dict):
        label = as_text(print_stats.get("state"))
        if label is not None:
            _apply_printer_state(printer, label)

    gcode_move = status.get("gcode_move")
    if isinstance(gcode_move, dict):
        assign_int(printer, "speed_factor", gcode_move, "speed_factor", scale=100)
        assign_int(printer, "flow_factor", gcode_move, "extrude_factor", scale=100)


def project_server_info(result: dict[str, Any], server: ServerSnapshot) -> None:
    """``GET /server/info`` ``result`` -> Moonraker version."""
    assign_text(server, "moonraker_version", result, "moonraker_version", limit=VERSION_MAX)


def project_print_job(status: dict[str, Any], job: PrintJobSnapshot) -> None:
    """``result.status`` of the job query -> print job snapshot.

    ``time_left`` is recomputed from whatever progress and print time the
    snapshot holds afterwards, and only when both are positive.
    """
    print_stats = status.get("print_stats")
    if isinstance(print_stats, dict):
        assign_text(job, "filename", print_stats, "filename", limit=FILENAME_MAX)
        label = as_text(print_stats.get("state"))
        if label is not None:
            job.state = bounded_text(label, STATE_LABEL_MAX)
            job.job_state = job_state_for(label)
        assign_int(job, "print_time", print_stats, "print_duration")
        assign_int(job, "estimated_time", print_stats, "total_duration")

    sdcard = status.get("virtual_sdcard")
    if isinstance(sdcard, dict):
        progress = as_float(sdcard.get("progress"))
        if progress is not None:
            job.progress = min(max(progress, 0.0), 1.0)
        if assign_int(job, "file_size", sdcard, "file_size"):
            job.printed_bytes = int(job.progress * job.file_size)

    if job.progress > 0 and job.print_time > 0:
        total_estimated = job.print_time / job.progress
        job.time_left = max(0, int(total_estimated - job.print_time))


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class KlipperClient(ProtocolClient):
    """Blocking client for a Klipper printer behind Moonraker.

    Example::

        client = KlipperClient("klipper.local", 7125)
        if client.get_printer_statistics():
            print(client.printer_stats.state, client.printer_stats.extruder.current)
        else:
            print("no data, status", client.http_status_code)
    """

    USER_AGENT = "printhost-klipper/1.0"
    DEFAULT_PORT = 7125
    DEFAULT_TIMEOUT = 5.0
    MAX_BODY_BYTES = 1500
    JSON_CAPACITY = 2048
    MAX_POST_BODY = 256

    ENDPOINTS = {
        "printer_info": "/printer/info",
        "status_query": "/printer/objects/query?heater_bed&extruder&toolhead&print_stats&gcode_move",
        "server_info": "/server/info",
        "job_query": "/printer/objects/query?print_stats&virtual_sdcard",
        "print_start": "/printer/print/start",
        "print_pause": "/printer/print/pause",
        "print_resume": "/printer/print/resume",
        "print_cancel": "/printer/print/cancel",
        "gcode_script": "/printer/gcode/script",
        "emergency_stop": "/printer/emergency_stop",
        "firmware_restart": "/printer/restart",
        "host_reboot": "/machine/reboot",
    }

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.printer_stats = PrinterSnapshot()
        self.print_job = PrintJobSnapshot()
        self.server_info = ServerSnapshot()
        self.motion_limits = MotionLimits()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_printer_info(self) -> bool:
        """Refresh the Klipper state, version and hostname.

        Calls ``GET /printer/info``.  Returns ``False`` on any non-200
        status or when the response has no ``result`` object.
        """
        result = self._fetch_object("printer_info", "result")
        if result is None:
            return False
        project_printer_info(result, self.printer_stats, self.server_info)
        return True

    def get_printer_statistics(self) -> bool:
        """Refresh temperatures, position, homing, state and speed/flow factors.

        Calls the combined ``/printer/objects/query`` for ``heater_bed``,
        ``extruder``, ``toolhead``, ``print_stats`` and ``gcode_move``.
        Requires ``result.status`` in the response.
        """
        status = self._fetch_object("status_query", "result", "status")
        if status is None:
            return False
        project_printer_statistics(status, self.printer_stats)
        return True

    def get_server_info(self) -> bool:
        """Refresh the Moonraker version.  Calls ``GET /server/info``."""
        result = self._fetch_object("server_info", "result")
        if result is None:
            return False
        project_server_info(result, self.server_info)
        return True

    def get_print_job(self) -> bool:
        """Refresh the print job from ``print_stats`` and ``virtual_sdcard``."""
        status = self._fetch_object("job_query", "result", "status")
        if status is None:
            return False
        project_print_job(status, self.print_job)
        return True

    # ------------------------------------------------------------------
    # Print lifecycle
    # ------------------------------------------------------------------

    def start_print(self, filename: str) -> bool:
        """Start printing *filename* from the host's gcode directory."""
        if not filename:
            logger.warning("start_print called without a filename")
            return False
        return self._command("print_start", {"filename": filename})

    def pause_print(self) -> bool:
        return self._command("print_pause")

    def resume_print(self) -> bool:
        return self._command("print_resume")

    def cancel_print(self) -> bool:
        return self._command("print_cancel")

    # ------------------------------------------------------------------
    # Temperature and fans
    # ------------------------------------------------------------------

    def set_extruder_temperature(self, temperature: float, extruder: int = 0) -> bool:
        """Set an extruder target with ``M104``.

        Rejects (returns ``False`` without sending) temperatures outside
        [0, 500] Celsius and extruder indexes outside 0-255.
        """
        if not is_valid_temperature(temperature):
            logger.warning("Rejected extruder temperature %r: outside [0, 500]", temperature)
            return False
        if not is_valid_index(extruder):
            logger.warning("Rejected extruder index %r", extruder)
            return False
        return self.send_gcode(f"M104 T{extruder} S{temperature:.1f}")

    def set_bed_temperature(self, temperature: float) -> bool:
        """Set the heated-bed target with ``M140``.  Same bounds as the extruder."""
        if not is_valid_temperature(temperature):
            logger.warning("Rejected bed temperature %r: outside [0, 500]", temperature)
            return False
        return self.send_gcode(f"M140 S{temperature:.1f}")

    def set_fan_speed(self, speed: float, fan: int = 0) -> bool:
        """Set fan *fan* to *speed* percent (0-100) with ``M106``.

        The percentage is scaled to the 0-255 PWM range the firmware
        expects, rounded to the nearest step.
        """
        if not is_valid_fan_speed(speed):
            logger.warning("Rejected fan speed %r: outside [0, 100]", speed)
            return False
        if not is_valid_index(fan):
            logger.warning("Rejected fan index %r", fan)
            return False
        return self.send_gcode(f"M106 P{fan} S{round(speed * 255 / 100)}")

    # ------------------------------------------------------------------
    # Motion
    # ------------------------------------------------------------------

    def home_all(self) -> bool:
        return self.send_gcode("G28")

    def home_axis(self, axis: str) -> bool:
        """Home a single axis (``X``, ``Y`` or ``Z``, any case)."""
        normalized = normalize_axis(axis)
        if normalized is None:
            logger.warning("Rejected homing axis %r", axis)
            return False
        return self.send_gcode(f"G28 {normalized}")

    def _valid_move(self, coordinates: Sequence[float], feedrate: int) -> bool:
        if not all(is_valid_position(value) for value in coordinates):
            logger.warning("Rejected move %r: coordinate outside [-1000, 1000]", tuple(coordinates))
            return False
        if not is_valid_feedrate(feedrate):
            logger.warning("Rejected move feedrate %r", feedrate)
            return False
        return True

    def move_relative(
        self,
        x: float,
        y: float,
        z: float,
        e: float,
        feedrate: int = DEFAULT_FEEDRATE,
    ) -> bool:
        """Move by the given offsets (mm), then restore absolute positioning.

        Every offset must lie within [-1000, 1000] mm.
        """
        if not self._valid_move((x, y, z, e), feedrate):
            return False
        return self.send_gcode(f"G91\nG1 X{x:.2f} Y{y:.2f} Z{z:.2f} E{e:.2f} F{feedrate}\nG90")

    def move_absolute(
        self,
        x: float,
        y: float,
        z: float,
        e: float,
        feedrate: int = DEFAULT_FEEDRATE,
    ) -> bool:
        """Move to the given coordinates (mm), each within [-1000, 1000]."""
        if not self._valid_move((x, y, z, e), feedrate):
            return False
        return self.send_gcode(f"G90\nG1 X{x:.2f} Y{y:.2f} Z{z:.2f} E{e:.2f} F{feedrate}")

    # ------------------------------------------------------------------
    # G-code
    # ------------------------------------------------------------------

    def send_gcode(self, script: str) -> bool:
        """Run a G-code script (one or more newline-separated commands)."""
        if not script or not script.strip():
            logger.warning("Refusing to send an empty G-code script")
            return False
        return self._command("gcode_script", {"script": script})

    def send_gcode_multiple(self, scripts: Sequence[str]) -> bool:
        """Run several scripts as one request, joined with newlines."""
        if isinstance(scripts, str):
            scripts = [scripts]
        return self.send_gcode("\n".join(scripts))

    # ------------------------------------------------------------------
    # Emergency and restarts
    # ------------------------------------------------------------------

    def emergency_stop(self) -> bool:
        return self._command("emergency_stop")

    def restart_firmware(self) -> bool:
        return self._command("firmware_restart")

    def restart_host(self) -> bool:
        return self._command("host_reboot")
