"""printhost - command-line interface for Klipper (Moonraker) and OctoPrint hosts.

Usage:
    printhost status [--json]
    printhost job [--json]
    printhost info [--json]
    printhost gcode <commands>... [--json]
    printhost start <filename> --confirm [--json]
    printhost pause [--json]
    printhost resume [--json]
    printhost cancel --confirm [--json]
    printhost temp [--extruder T] [--tool N] [--bed T] [--json]
    printhost fan <speed> [--fan N] [--json]
    printhost home [<axis>] [--json]
    printhost move <x> <y> <z> [--e E] [--feedrate F] [--relative] [--json]
    printhost estop --confirm [--json]
    printhost restart [--host-reboot] --confirm [--json]
    printhost init
"""

from __future__ import annotations

import sys

import click

from printhost.config import client_from_config, init_config, load_config, validate_config
from printhost.exit_codes import (
    OTHER_ERROR,
    PRINTER_BUSY,
    SUCCESS,
    error_code_for_status,
    exit_code_for,
)
from printhost.log_config import configure_logging
from printhost.output import (
    format_action,
    format_job_status,
    format_octoprint_job,
    format_octoprint_status,
    format_octoprint_version,
    format_printer_status,
    format_response,
    format_server_info,
    format_temp,
)
from printhost.printers import KlipperClient, OctoPrintClient, ProtocolClient
from printhost.safety import (
    check_can_cancel,
    check_temperatures,
    is_valid_fan_speed,
    is_valid_feedrate,
    is_valid_index,
    is_valid_position,
    is_valid_temperature,
    normalize_axis,
)

# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _emit(output: str, exit_code: int = SUCCESS) -> None:
    """Print output and exit with the given code."""
    click.echo(output)
    sys.exit(exit_code)


def _emit_error(
    code: str,
    message: str,
    json_mode: bool,
    exit_code: int | None = None,
) -> None:
    """Emit a structured error and exit."""
    if exit_code is None:
        exit_code = exit_code_for(code)
    output = format_response(
        "error",
        error={"code": code, "message": message},
        json_mode=json_mode,
    )
    _emit(output, exit_code)


def _make_client(ctx: click.Context, json_mode: bool) -> ProtocolClient:
    """Build a configured client, validating config first."""
    opts = ctx.obj
    config = load_config(
        host=opts["host"],
        port=opts["port"],
        api_key=opts["api_key"],
        flavor=opts["flavor"],
        timeout=opts["timeout"],
    )
    valid, err = validate_config(config)
    if not valid:
        _emit_error("CONFIG_ERROR", f"Configuration error: {err}", json_mode)
    try:
        return client_from_config(config)
    except ValueError as exc:
        _emit_error("CONFIG_ERROR", f"Configuration error: {exc}", json_mode)
        raise  # unreachable, _emit_error exits


def _klipper_client(ctx: click.Context, json_mode: bool, command: str) -> KlipperClient:
    """Build a client and insist it can send control commands."""
    client = _make_client(ctx, json_mode)
    if not isinstance(client, KlipperClient):
        _emit_error(
            "UNSUPPORTED",
            f"'{command}' is only available for Klipper hosts; the OctoPrint client is read-only.",
            json_mode,
            OTHER_ERROR,
        )
    return client  # type: ignore[return-value]


def _fail(client: ProtocolClient, what: str, json_mode: bool) -> None:
    """Report a failed client operation using its last status code, and exit."""
    status = client.http_status_code
    code = error_code_for_status(status)
    if status == 0:
        message = f"{what} failed: no response from {client.target.host_header}"
    else:
        message = f"{what} failed: HTTP {status}"
    _emit_error(code, message, json_mode)


def _rejected(message: str, json_mode: bool) -> None:
    _emit_error("VALIDATION_ERROR", message, json_mode, OTHER_ERROR)


def _require_confirm(confirm: bool, action: str, json_mode: bool) -> None:
    if not confirm:
        _emit_error(
            "CONFIRMATION_REQUIRED",
            f"The --confirm flag is required to {action}.",
            json_mode,
            OTHER_ERROR,
        )


# ------------------------------------------------------------------
# CLI group
# ------------------------------------------------------------------

json_option = click.option("--json", "json_mode", is_flag=True, default=False, help="Output as JSON.")


@click.group()
@click.option("--host", default=None, help="Printer host name or address (env PRINTHOST_HOST).")
@click.option("--port", type=int, default=None, help="API port (env PRINTHOST_PORT).")
@click.option("--api-key", default=None, help="Pre-shared API key (env PRINTHOST_API_KEY).")
@click.option(
    "--flavor",
    type=click.Choice(["klipper", "octoprint"], case_sensitive=False),
    default=None,
    help="Host API (env PRINTHOST_FLAVOR).",
)
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log requests to stderr.")
@click.version_option(package_name="printhost")
@click.pass_context
def cli(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    api_key: str | None,
    flavor: str | None,
    timeout: float | None,
    verbose: bool,
) -> None:
    """Query and control a 3D printer through its Moonraker or OctoPrint API."""
    ctx.ensure_object(dict)
    ctx.obj.update(host=host, port=port, api_key=api_key, flavor=flavor, timeout=timeout)

    try:
        configure_logging(stream=sys.stderr if verbose else None)
    except OSError as exc:
        click.echo(f"Warning: file logging disabled: {exc}", err=True)


# ------------------------------------------------------------------
# status / job / info
# ------------------------------------------------------------------


@cli.command()
@json_option
@click.pass_context
def status(ctx: click.Context, json_mode: bool) -> None:
    """Show printer state, temperatures and toolhead position."""
    client = _make_client(ctx, json_mode)
    if not client.get_printer_statistics():
        _fail(client, "Printer status", json_mode)

    if isinstance(client, OctoPrintClient):
        _emit(format_octoprint_status(client.printer_stats, json_mode=json_mode))

    output = format_printer_status(client.printer_stats, json_mode=json_mode)
    if not json_mode:
        for warning in check_temperatures(client.printer_stats)["warnings"]:
            click.echo(f"Warning: {warning}", err=True)
    _emit(output)


@cli.command()
@json_option
@click.pass_context
def job(ctx: click.Context, json_mode: bool) -> None:
    """Show the current print job."""
    client = _make_client(ctx, json_mode)
    if not client.get_print_job():
        _fail(client, "Print job", json_mode)

    if isinstance(client, OctoPrintClient):
        _emit(format_octoprint_job(client.print_job, json_mode=json_mode))
    _emit(format_job_status(client.print_job, json_mode=json_mode))


@cli.command()
@json_option
@click.pass_context
def info(ctx: click.Context, json_mode: bool) -> None:
    """Show host name and software versions."""
    client = _make_client(ctx, json_mode)

    if isinstance(client, OctoPrintClient):
        if not client.get_octoprint_version():
            _fail(client, "Version query", json_mode)
        _emit(format_octoprint_version(client.octoprint_version, json_mode=json_mode))

    if not client.get_printer_info():
        _fail(client, "Printer info", json_mode)
    # Moonraker's version is optional; older servers lack /server/info.
    client.get_server_info()
    _emit(format_server_info(client.server_info, json_mode=json_mode))


# ------------------------------------------------------------------
# Print lifecycle
# ------------------------------------------------------------------


@cli.command()
@click.argument("filename")
@click.option("--confirm", is_flag=True, default=False, help="Required flag to confirm print start.")
@json_option
@click.pass_context
def start(ctx: click.Context, filename: str, confirm: bool, json_mode: bool) -> None:
    """Start printing FILENAME from the host's gcode directory.

    Requires --confirm flag for safety.  Refuses to start while a job is
    printing or paused.
    """
    _require_confirm(confirm, "start a print", json_mode)
    if not filename.strip():
        _rejected("A filename is required.", json_mode)
    client = _klipper_client(ctx, json_mode, "start")

    if client.get_print_job() and (client.print_job.is_printing or client.print_job.is_paused):
        _emit_error(
            "PRINTER_BUSY",
            f"Printer is already {client.print_job.state}.",
            json_mode,
            PRINTER_BUSY,
        )

    if not client.start_print(filename):
        _fail(client, "Start print", json_mode)
    _emit(format_action("start", {"filename": filename}, json_mode=json_mode))


@cli.command()
@json_option
@click.pass_context
def pause(ctx: click.Context, json_mode: bool) -> None:
    """Pause the current print job."""
    client = _klipper_client(ctx, json_mode, "pause")
    if not client.pause_print():
        _fail(client, "Pause", json_mode)
    _emit(format_action("pause", json_mode=json_mode))


@cli.command()
@json_option
@click.pass_context
def resume(ctx: click.Context, json_mode: bool) -> None:
    """Resume a paused print job."""
    client = _klipper_client(ctx, json_mode, "resume")
    if not client.resume_print():
        _fail(client, "Resume", json_mode)
    _emit(format_action("resume", json_mode=json_mode))


@cli.command()
@click.option("--confirm", is_flag=True, default=False, help="Required flag to confirm cancellation.")
@json_option
@click.pass_context
def cancel(ctx: click.Context, confirm: bool, json_mode: bool) -> None:
    """Cancel the current print job.

    Requires --confirm flag for safety.
    """
    _require_confirm(confirm, "cancel a print", json_mode)
    client = _klipper_client(ctx, json_mode, "cancel")

    if not client.get_print_job():
        _fail(client, "Print job", json_mode)
    cancel_check = check_can_cancel(client.print_job)
    if not cancel_check["can_cancel"]:
        _emit_error("NO_ACTIVE_JOB", cancel_check["message"], json_mode, OTHER_ERROR)

    if not client.cancel_print():
        _fail(client, "Cancel", json_mode)
    _emit(format_action("cancel", json_mode=json_mode))


# ------------------------------------------------------------------
# gcode
# ------------------------------------------------------------------


@cli.command()
@click.argument("commands", nargs=-1, required=True)
@json_option
@click.pass_context
def gcode(ctx: click.Context, commands: tuple, json_mode: bool) -> None:
    """Send G-code commands to the printer in one request.

    Example: printhost gcode G28 "M104 S200"
    """
    if not any(c.strip() for c in commands):
        _rejected("No G-code to send.", json_mode)
    client = _klipper_client(ctx, json_mode, "gcode")
    if not client.body_fits({"script": "\n".join(commands)}):
        _rejected(f"G-code script is longer than the {client.MAX_POST_BODY}-byte request limit.", json_mode)
    if not client.send_gcode_multiple(list(commands)):
        _fail(client, "G-code", json_mode)
    _emit(format_action("gcode", {"commands": list(commands)}, json_mode=json_mode))


# ------------------------------------------------------------------
# temp / fan
# ------------------------------------------------------------------


@cli.command()
@click.option("--extruder", "extruder_temp", type=float, default=None, help="Extruder target temp (C).")
@click.option("--tool", "tool", type=int, default=0, show_default=True, help="Extruder index.")
@click.option("--bed", "bed_temp", type=float, default=None, help="Bed target temp (C).")
@json_option
@click.pass_context
def temp(
    ctx: click.Context,
    extruder_temp: float | None,
    tool: int,
    bed_temp: float | None,
    json_mode: bool,
) -> None:
    """Get or set temperatures.

    With no options, shows current temperatures.  Targets must be within
    0-500 C.
    """
    if extruder_temp is not None and not is_valid_temperature(extruder_temp):
        _rejected(f"Extruder temperature {extruder_temp} is outside 0-500 C.", json_mode)
    if bed_temp is not None and not is_valid_temperature(bed_temp):
        _rejected(f"Bed temperature {bed_temp} is outside 0-500 C.", json_mode)
    if not is_valid_index(tool):
        _rejected(f"Tool index {tool} is outside 0-255.", json_mode)
    client = _klipper_client(ctx, json_mode, "temp")

    targets: dict[str, float] = {}
    if extruder_temp is not None:
        if not client.set_extruder_temperature(extruder_temp, tool):
            _fail(client, "Set extruder temperature", json_mode)
        targets[f"extruder{tool or ''}"] = extruder_temp

    if bed_temp is not None:
        if not client.set_bed_temperature(bed_temp):
            _fail(client, "Set bed temperature", json_mode)
        targets["heater_bed"] = bed_temp

    if targets:
        _emit(format_action("temp", {"targets": targets}, json_mode=json_mode))

    if not client.get_printer_statistics():
        _fail(client, "Printer status", json_mode)
    printer = client.printer_stats
    if json_mode:
        data = {
            "extruder": printer.extruder.to_dict() if printer.has_extruder else None,
            "heater_bed": printer.heated_bed.to_dict() if printer.has_heated_bed else None,
        }
        _emit(format_response("success", data=data, json_mode=True))
    _emit(
        f"Extruder: {format_temp(printer.extruder if printer.has_extruder else None)}\n"
        f"Bed:      {format_temp(printer.heated_bed if printer.has_heated_bed else None)}"
    )


@cli.command()
@click.argument("speed", type=float)
@click.option("--fan", "fan_index", type=int, default=0, show_default=True, help="Fan index.")
@json_option
@click.pass_context
def fan(ctx: click.Context, speed: float, fan_index: int, json_mode: bool) -> None:
    """Set fan speed in percent (0-100)."""
    if not is_valid_fan_speed(speed):
        _rejected(f"Fan speed {speed} is outside 0-100%.", json_mode)
    if not is_valid_index(fan_index):
        _rejected(f"Fan index {fan_index} is outside 0-255.", json_mode)
    client = _klipper_client(ctx, json_mode, "fan")
    if not client.set_fan_speed(speed, fan_index):
        _fail(client, "Set fan speed", json_mode)
    _emit(format_action("fan", {"fan": fan_index, "speed": speed}, json_mode=json_mode))


# ------------------------------------------------------------------
# Motion
# ------------------------------------------------------------------


@cli.command()
@click.argument("axis", required=False, default=None)
@json_option
@click.pass_context
def home(ctx: click.Context, axis: str | None, json_mode: bool) -> None:
    """Home all axes, or just AXIS (X, Y or Z)."""
    if axis is not None and normalize_axis(axis) is None:
        _rejected(f"Cannot home axis {axis!r}; use X, Y or Z.", json_mode)
    client = _klipper_client(ctx, json_mode, "home")
    ok = client.home_all() if axis is None else client.home_axis(axis)
    if not ok:
        _fail(client, "Home", json_mode)
    _emit(format_action("home", {"axis": axis.upper() if axis else "all"}, json_mode=json_mode))


@cli.command()
@click.argument("x", type=float)
@click.argument("y", type=float)
@click.argument("z", type=float)
@click.option("--e", "e", type=float, default=0.0, show_default=True, help="Extruder move (mm).")
@click.option("--feedrate", type=int, default=3000, show_default=True, help="Feedrate (mm/min).")
@click.option("--relative", is_flag=True, default=False, help="Treat X Y Z as offsets.")
@json_option
@click.pass_context
def move(
    ctx: click.Context,
    x: float,
    y: float,
    z: float,
    e: float,
    feedrate: int,
    relative: bool,
    json_mode: bool,
) -> None:
    """Move the toolhead to X Y Z (or by X Y Z with --relative).

    Every coordinate must be within -1000..1000 mm.
    """
    if not all(is_valid_position(value) for value in (x, y, z, e)):
        _rejected("Coordinates must be within -1000..1000 mm.", json_mode)
    if not is_valid_feedrate(feedrate):
        _rejected(f"Feedrate {feedrate} is outside 1-65535 mm/min.", json_mode)
    client = _klipper_client(ctx, json_mode, "move")
    mover = client.move_relative if relative else client.move_absolute
    if not mover(x, y, z, e, feedrate):
        _fail(client, "Move", json_mode)
    _emit(
        format_action(
            "move",
            {"x": x, "y": y, "z": z, "e": e, "feedrate": feedrate, "relative": relative},
            json_mode=json_mode,
        )
    )


# ------------------------------------------------------------------
# Emergency stop / restart
# ------------------------------------------------------------------


@cli.command()
@click.option("--confirm", is_flag=True, default=False, help="Required flag to confirm the stop.")
@json_option
@click.pass_context
def estop(ctx: click.Context, confirm: bool, json_mode: bool) -> None:
    """Emergency stop: halt the printer immediately."""
    _require_confirm(confirm, "send an emergency stop", json_mode)
    client = _klipper_client(ctx, json_mode, "estop")
    if not client.emergency_stop():
        _fail(client, "Emergency stop", json_mode)
    _emit(format_action("estop", json_mode=json_mode))


@cli.command()
@click.option("--host-reboot", is_flag=True, default=False, help="Reboot the host machine instead of the firmware.")
@click.option("--confirm", is_flag=True, default=False, help="Required flag to confirm the restart.")
@json_option
@click.pass_context
def restart(ctx: click.Context, host_reboot: bool, confirm: bool, json_mode: bool) -> None:
    """Restart the printer firmware (or reboot the host with --host-reboot)."""
    _require_confirm(confirm, "restart", json_mode)
    client = _klipper_client(ctx, json_mode, "restart")
    ok = client.restart_host() if host_reboot else client.restart_firmware()
    if not ok:
        _fail(client, "Restart", json_mode)
    _emit(format_action("restart", {"target": "host" if host_reboot else "firmware"}, json_mode=json_mode))


# ------------------------------------------------------------------
# init
# ------------------------------------------------------------------


@cli.command()
@click.option("--host", prompt="Printer host", help="Printer host name or address.")
@click.option(
    "--flavor",
    type=click.Choice(["klipper", "octoprint"], case_sensitive=False),
    default="klipper",
    prompt="Host API",
    help="Host API.",
)
@click.option("--api-key", default="", prompt="API key (blank for none)", help="Pre-shared API key.")
def init(host: str, flavor: str, api_key: str) -> None:
    """Initialize configuration file (~/.printhost/config.yaml)."""
    path = init_config(host, api_key, flavor=flavor)
    click.echo(f"Configuration saved to {path}")


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------

if __name__ == "__main__":
    cli()
