"""Output formatting for the printhost CLI.

Every command can print either a JSON envelope (machine-parseable) or a
Rich-rendered panel.  The formatters take snapshot objects, never raw
payloads, so what is shown is exactly what the client projected.
"""

from __future__ import annotations

import json
import math
from io import StringIO
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from printhost.models import (
    OctoPrintJobSnapshot,
    OctoPrintPrinterSnapshot,
    OctoPrintVersion,
    PrinterSnapshot,
    PrintJobSnapshot,
    ServerSnapshot,
    TemperatureReading,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def format_time(seconds: int | float | None) -> str:
    """Convert seconds to a human-readable 'Xh Ym Zs' string."""
    if seconds is None or seconds < 0:
        return "N/A"
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    parts: list[str] = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)


def format_bytes(size_bytes: int | float | None) -> str:
    """Convert a byte count to a human-readable string (e.g. '1.2 MB')."""
    if size_bytes is None or size_bytes < 0:
        return "N/A"
    if size_bytes == 0:
        return "0 B"
    units = ("B", "KB", "MB", "GB", "TB")
    exponent = min(int(math.log(size_bytes, 1024)), len(units) - 1)
    value = size_bytes / (1024**exponent)
    if exponent == 0:
        return f"{int(value)} B"
    return f"{value:.1f} {units[exponent]}"


def format_temp(reading: TemperatureReading | None) -> str:
    """Format a heater reading like '214.8°C / 220.0°C (45%)'."""
    if reading is None:
        return "N/A"
    text = f"{reading.current:.1f}°C / {reading.target:.1f}°C"
    if reading.power:
        text += f" ({reading.power_fraction:.0%})"
    return text


def progress_bar(completion: float | None, width: int = 20) -> str:
    """Return a progress bar like '[███░░░] 42.3%'.

    *completion* is expected as a percentage (0-100).
    """
    if completion is None:
        completion = 0.0
    completion = max(0.0, min(100.0, completion))
    filled = int(round(width * completion / 100))
    empty = width - filled
    bar = "█" * filled + "░" * empty
    return f"[{bar}] {completion:.1f}%"


def _render_to_string(renderable: Any) -> str:
    """Render a Rich object to a string (with ANSI codes)."""
    buf = StringIO()
    console = Console(file=buf, force_terminal=True, width=100)
    console.print(renderable)
    return buf.getvalue().rstrip("\n")


def _success_json(data: dict[str, Any]) -> str:
    return json.dumps({"status": "success", "data": data, "error": None}, indent=2, sort_keys=False)


def _key_value_table() -> Table:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold cyan", no_wrap=True)
    table.add_column("Value")
    return table


# ---------------------------------------------------------------------------
# format_response
# ---------------------------------------------------------------------------


def format_response(
    status: str,
    data: dict[str, Any] | None = None,
    error: dict[str, Any] | None = None,
    json_mode: bool = False,
) -> str:
    """Build a generic response envelope.

    Parameters
    ----------
    status:
        ``"success"`` or ``"error"``.
    data:
        Arbitrary payload dict (used when *status* is ``"success"``).
    error:
        Error detail dict with keys ``code`` and ``message``.
    json_mode:
        When *True* return a JSON string; otherwise a Rich-formatted string.
    """
    if json_mode:
        envelope: dict[str, Any] = {
            "status": status,
            "data": data,
            "error": error,
        }
        return json.dumps(envelope, indent=2, sort_keys=False)

    if status == "error" and error:
        code = error.get("code", "UNKNOWN")
        message = error.get("message", "An unknown error occurred.")
        text = Text()
        text.append("Error", style="bold red")
        text.append(f" [{code}]: ", style="red")
        text.append(message)
        return _render_to_string(Panel(text, title="Error", border_style="red"))

    if data:
        lines = [f"[bold]{key}:[/bold] {value}" for key, value in data.items()]
        return _render_to_string(Panel("\n".join(lines), title="Response", border_style="green"))

    return f"Status: {status}"


# ---------------------------------------------------------------------------
# Klipper snapshots
# ---------------------------------------------------------------------------


def format_printer_status(printer: PrinterSnapshot, json_mode: bool = False) -> str:
    """Format a Klipper printer snapshot (state, heaters, toolhead)."""
    if json_mode:
        return _success_json(printer.to_dict())

    table = _key_value_table()
    table.add_row("State", printer.state or "Unknown")
    if printer.has_extruder:
        table.add_row("Extruder", format_temp(printer.extruder))
    if printer.has_extruder1:
        table.add_row("Extruder 1", format_temp(printer.extruder1))
    if printer.has_heated_bed:
        table.add_row("Bed", format_temp(printer.heated_bed))
    table.add_row(
        "Position",
        f"X{printer.position_x:.2f} Y{printer.position_y:.2f} "
        f"Z{printer.position_z:.2f} E{printer.position_e:.2f}",
    )
    table.add_row("Homed", "yes" if printer.is_homed else "no")
    table.add_row("Speed / flow", f"{printer.speed_factor}% / {printer.flow_factor}%")

    style = "red" if printer.error or printer.shutdown else "blue"
    return _render_to_string(Panel(table, title="Printer Status", border_style=style))


def format_job_status(job: PrintJobSnapshot, json_mode: bool = False) -> str:
    """Format a Klipper print-job snapshot."""
    if json_mode:
        return _success_json(job.to_dict())

    table = _key_value_table()
    table.add_row("State", job.state or "Unknown")
    table.add_row("File", job.filename or "N/A")
    table.add_row("Progress", progress_bar(job.progress * 100))
    table.add_row("Elapsed", format_time(job.print_time))
    if job.time_left:
        table.add_row("Time remaining", format_time(job.time_left))
    if job.file_size:
        table.add_row("Printed", f"{format_bytes(job.printed_bytes)} of {format_bytes(job.file_size)}")

    return _render_to_string(Panel(table, title="Print Job", border_style="blue"))


def format_server_info(server: ServerSnapshot, json_mode: bool = False) -> str:
    if json_mode:
        return _success_json(server.to_dict())

    table = _key_value_table()
    table.add_row("Hostname", server.hostname or "N/A")
    table.add_row("Klipper", server.klipper_version or "N/A")
    table.add_row("Moonraker", server.moonraker_version or "N/A")
    return _render_to_string(Panel(table, title="Server", border_style="blue"))


# ---------------------------------------------------------------------------
# OctoPrint snapshots
# ---------------------------------------------------------------------------


def format_octoprint_status(printer: OctoPrintPrinterSnapshot, json_mode: bool = False) -> str:
    if json_mode:
        return _success_json(printer.to_dict())

    table = _key_value_table()
    table.add_row("State", printer.state or "Unknown")
    flags = [name for name, value in printer.to_dict().items() if name != "state" and value]
    table.add_row("Flags", ", ".join(flags) or "none")
    return _render_to_string(Panel(table, title="Printer Status", border_style="blue"))


def format_octoprint_job(job: OctoPrintJobSnapshot, json_mode: bool = False) -> str:
    if json_mode:
        return _success_json(job.to_dict())

    table = _key_value_table()
    table.add_row("State", job.state or "Unknown")
    table.add_row("File", job.file_name or "N/A")
    table.add_row("Progress", progress_bar(job.completion))
    table.add_row("Elapsed", format_time(job.print_time))
    if job.print_time_left:
        table.add_row("Time remaining", format_time(job.print_time_left))
    if job.file_size:
        table.add_row("Size", format_bytes(job.file_size))
    return _render_to_string(Panel(table, title="Print Job", border_style="blue"))


def format_octoprint_version(version: OctoPrintVersion, json_mode: bool = False) -> str:
    if json_mode:
        return _success_json(version.to_dict())

    table = _key_value_table()
    table.add_row("OctoPrint", version.server or "N/A")
    table.add_row("API", version.api or "N/A")
    return _render_to_string(Panel(table, title="Server", border_style="blue"))


# ---------------------------------------------------------------------------
# format_action
# ---------------------------------------------------------------------------


_ACTION_MESSAGES = {
    "start": "Print job started.",
    "cancel": "Print job cancelled.",
    "pause": "Print job paused.",
    "resume": "Print job resumed.",
    "gcode": "G-code sent.",
    "temp": "Temperature targets set.",
    "fan": "Fan speed set.",
    "home": "Homing started.",
    "move": "Move sent.",
    "estop": "Emergency stop sent.",
    "restart": "Restart requested.",
}


def format_action(
    action: str,
    result_data: dict[str, Any] | None = None,
    json_mode: bool = False,
) -> str:
    """Format the result of a control command.

    Parameters
    ----------
    action:
        The action name, e.g. ``"start"``, ``"cancel"``, ``"estop"``.
    result_data:
        Extra fields to report alongside the message.
    json_mode:
        Return JSON when *True*.
    """
    result_data = result_data or {}
    message = _ACTION_MESSAGES.get(action, f"Action '{action}' completed.")

    if json_mode:
        return _success_json({"action": action, "message": message, **result_data})

    style_map = {
        "cancel": ("red", "bold red"),
        "estop": ("red", "bold red"),
        "pause": ("yellow", "bold yellow"),
        "restart": ("yellow", "bold yellow"),
    }
    border, text_style = style_map.get(action, ("green", "bold green"))
    text = Text(message, style=text_style)
    return _render_to_string(Panel(text, title=action.capitalize(), border_style=border))
