"""Minimal Moonraker and OctoPrint API mock server for integration testing.

Implements just enough of both HTTP APIs to satisfy printhost's live test
suite (test_live_moonraker.py).  Simulates one virtual printer: G-code
temperature commands move the heater targets and the print endpoints walk
the job through printing, paused and cancelled.

Usage:
    python3 scripts/moonraker_mock.py  # starts on port 7125

Then run tests:
    PRINTHOST_LIVE_HOST=127.0.0.1 PRINTHOST_LIVE_PORT=7125 \
    python3 -m pytest tests/test_live_moonraker.py -m live -x -v
"""

from __future__ import annotations

import os
import re
import socket
from typing import Any, Dict

from flask import Flask, jsonify, request

app = Flask(__name__)

_MOCK_API_KEY = "mock-key"

# Simulated printer state
_state: Dict[str, Any] = {
    "print_state": "standby",
    "filename": "",
    "progress": 0.0,
    "print_duration": 0.0,
    "extruder_target": 0.0,
    "bed_target": 0.0,
    "homed_axes": "",
    "klippy_state": "ready",
}

_TEMP_RE = re.compile(r"^(M104|M140)(?:\s+T(\d+))?\s+S([\d.]+)", re.IGNORECASE)


def _objects() -> Dict[str, Any]:
    return {
        "extruder": {"temperature": 22.5, "target": _state["extruder_target"], "power": 0.0},
        "heater_bed": {"temperature": 21.0, "target": _state["bed_target"], "power": 0.0},
        "toolhead": {"position": [0.0, 0.0, 0.0, 0.0], "homed_axes": _state["homed_axes"]},
        "print_stats": {
            "state": _state["print_state"],
            "filename": _state["filename"],
            "print_duration": _state["print_duration"],
            "total_duration": _state["print_duration"],
        },
        "gcode_move": {"speed_factor": 1.0, "extrude_factor": 1.0},
        "virtual_sdcard": {"progress": _state["progress"], "file_size": 1024 if _state["filename"] else 0},
    }


def _ok():
    return jsonify({"result": "ok"})


# ---------------------------------------------------------------------------
# Moonraker queries
# ---------------------------------------------------------------------------


@app.route("/printer/info", methods=["GET"])
def printer_info():
    return jsonify(
        {
            "result": {
                "state": _state["klippy_state"],
                "state_message": "Printer is ready",
                "hostname": socket.gethostname(),
                "software_version": "v0.12.0-mock",
            }
        }
    )


@app.route("/printer/objects/query", methods=["GET"])
def objects_query():
    objects = _objects()
    status = {name: objects[name] for name in request.args if name in objects}
    return jsonify({"result": {"eventtime": 1.0, "status": status}})


@app.route("/server/info", methods=["GET"])
def server_info():
    return jsonify(
        {
            "result": {
                "klippy_connected": True,
                "klippy_state": _state["klippy_state"],
                "moonraker_version": "v0.8.0-mock",
            }
        }
    )


# ---------------------------------------------------------------------------
# Print lifecycle
# ---------------------------------------------------------------------------


@app.route("/printer/print/start", methods=["POST"])
def print_start():
    body = request.get_json(silent=True) or {}
    filename = body.get("filename")
    if not filename:
        return jsonify({"error": {"code": 400, "message": "No filename"}}), 400
    if _state["print_state"] in ("printing", "paused"):
        return jsonify({"error": {"code": 409, "message": "Already printing"}}), 409
    _state.update(print_state="printing", filename=filename, progress=0.25, print_duration=60.0)
    return _ok()


@app.route("/printer/print/pause", methods=["POST"])
def print_pause():
    if _state["print_state"] != "printing":
        return jsonify({"error": {"code": 409, "message": "Not printing"}}), 409
    _state["print_state"] = "paused"
    return _ok()


@app.route("/printer/print/resume", methods=["POST"])
def print_resume():
    if _state["print_state"] != "paused":
        return jsonify({"error": {"code": 409, "message": "Not paused"}}), 409
    _state["print_state"] = "printing"
    return _ok()


@app.route("/printer/print/cancel", methods=["POST"])
def print_cancel():
    _state.update(print_state="cancelled", progress=0.0)
    return _ok()


# ---------------------------------------------------------------------------
# G-code and machine control
# ---------------------------------------------------------------------------


@app.route("/printer/gcode/script", methods=["POST"])
def gcode_script():
    body = request.get_json(silent=True) or {}
    script = body.get("script", "")
    if not script:
        return jsonify({"error": {"code": 400, "message": "No script"}}), 400
    for line in script.splitlines():
        line = line.strip()
        match = _TEMP_RE.match(line)
        if match:
            key = "extruder_target" if match.group(1).upper() == "M104" else "bed_target"
            _state[key] = float(match.group(3))
        elif line.upper().startswith("G28"):
            axes = line[3:].strip().lower() or "xyz"
            _state["homed_axes"] = "".join(sorted(set(_state["homed_axes"] + axes)))
    return _ok()


@app.route("/printer/emergency_stop", methods=["POST"])
def emergency_stop():
    _state.update(klippy_state="shutdown", print_state="error", extruder_target=0.0, bed_target=0.0)
    return _ok()


@app.route("/printer/restart", methods=["POST"])
def firmware_restart():
    _state.update(klippy_state="ready", print_state="standby", homed_axes="")
    return _ok()


@app.route("/machine/reboot", methods=["POST"])
def machine_reboot():
    return _ok()


# ---------------------------------------------------------------------------
# OctoPrint (read-only)
# ---------------------------------------------------------------------------


def _check_auth():
    """Validate X-Api-Key header."""
    key = request.headers.get("X-Api-Key", "")
    if key != _MOCK_API_KEY:
        return jsonify({"error": "Invalid API key"}), 403
    return None


@app.route("/api/printer", methods=["GET"])
def octoprint_printer():
    auth_err = _check_auth()
    if auth_err:
        return auth_err
    printing = _state["print_state"] == "printing"
    return jsonify(
        {
            "state": {
                "text": "Printing" if printing else "Operational",
                "flags": {
                    "operational": True,
                    "ready": not printing,
                    "printing": printing,
                    "paused": _state["print_state"] == "paused",
                    "error": False,
                    "closedOrError": False,
                    "sdReady": True,
                },
            },
        }
    )


@app.route("/api/version", methods=["GET"])
def octoprint_version():
    auth_err = _check_auth()
    if auth_err:
        return auth_err
    return jsonify({"api": "0.1", "server": "1.9.3", "text": "OctoPrint 1.9.3"})


@app.route("/api/job", methods=["GET"])
def octoprint_job():
    auth_err = _check_auth()
    if auth_err:
        return auth_err
    return jsonify(
        {
            "job": {
                "file": {"name": _state["filename"] or None, "origin": "local", "size": 1024, "date": 0},
                "estimatedPrintTime": 240.0,
            },
            "progress": {
                "completion": _state["progress"] * 100,
                "filepos": int(_state["progress"] * 1024),
                "printTime": int(_state["print_duration"]),
                "printTimeLeft": 180,
            },
            "state": "Printing" if _state["print_state"] == "printing" else "Operational",
        }
    )


if __name__ == "__main__":
    port = int(os.environ.get("MOCK_MOONRAKER_PORT", "7125"))
    print(f"Moonraker mock server starting on port {port}...")
    app.run(host="127.0.0.1", port=port, debug=False)
