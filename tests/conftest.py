"""Shared fixtures for the printhost test suite."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pytest
import yaml

from printhost.printers import KlipperClient, OctoPrintClient
from printhost.transport import Transport

# ---------------------------------------------------------------------------
# Constants reused across tests
# ---------------------------------------------------------------------------

TEST_HOST = "klipper.local"
TEST_PORT = 7125
TEST_API_KEY = "TESTAPIKEY123456"

Chunk = Union[bytes, Exception]


def http_response(
    status: int = 200,
    body: Union[Dict[str, Any], str, bytes, None] = None,
    reason: str = "OK",
    headers: Optional[List[str]] = None,
) -> bytes:
    """Build raw response bytes as a host would send them."""
    if isinstance(body, dict):
        payload = json.dumps(body).encode("utf-8")
    elif isinstance(body, str):
        payload = body.encode("utf-8")
    else:
        payload = body or b""
    lines = [f"HTTP/1.1 {status} {reason}", "Content-Type: application/json"]
    lines.extend(headers or [])
    lines.append(f"Content-Length: {len(payload)}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + payload


# ---------------------------------------------------------------------------
# Scripted transport
# ---------------------------------------------------------------------------


class FakeTransport(Transport):
    """In-memory transport that replays scripted responses.

    Each queued response is a list of chunks handed out by successive
    :meth:`recv` calls, one response per :meth:`connect`.  A chunk that is
    an exception is raised instead of returned.  Everything written is
    recorded per request in :attr:`requests`.
    """

    def __init__(self, *responses: Union[bytes, List[Chunk]], connect_error: Optional[Exception] = None) -> None:
        self._queued: List[List[Chunk]] = [[r] if isinstance(r, bytes) else list(r) for r in responses]
        self._chunks: List[Chunk] = []
        self._connected = False
        self.connect_error = connect_error
        self.connect_calls: List[tuple] = []
        self.recv_timeouts: List[float] = []
        self.requests: List[bytes] = []
        self.close_calls = 0

    def queue(self, *responses: Union[bytes, List[Chunk]]) -> None:
        self._queued.extend([r] if isinstance(r, bytes) else list(r) for r in responses)

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self, host: str, port: int, timeout: float) -> None:
        self.connect_calls.append((host, port, timeout))
        if self.connect_error is not None:
            raise self.connect_error
        self._chunks = self._queued.pop(0) if self._queued else []
        self.requests.append(b"")
        self._connected = True

    def sendall(self, data: bytes) -> None:
        self.requests[-1] += data

    def recv(self, max_bytes: int, timeout: float) -> bytes:
        self.recv_timeouts.append(timeout)
        if not self._chunks:
            return b""
        item = self._chunks.pop(0)
        if isinstance(item, Exception):
            raise item
        if len(item) > max_bytes:
            self._chunks.insert(0, item[max_bytes:])
            item = item[:max_bytes]
        return item

    def close(self) -> None:
        self.close_calls += 1
        self._connected = False

    # -- inspection helpers ---------------------------------------------

    @property
    def last_request(self) -> str:
        return self.requests[-1].decode("utf-8") if self.requests else ""

    @property
    def last_body(self) -> str:
        return self.last_request.partition("\r\n\r\n")[2]

    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.last_body)

    @property
    def request_lines(self) -> List[str]:
        return [r.decode("utf-8").split("\r\n", 1)[0] for r in self.requests]


# ---------------------------------------------------------------------------
# Client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def klipper(transport: FakeTransport) -> KlipperClient:
    """KlipperClient wired to the scripted transport."""
    return KlipperClient(TEST_HOST, TEST_PORT, transport=transport)


@pytest.fixture()
def octoprint(transport: FakeTransport) -> OctoPrintClient:
    return OctoPrintClient("octopi.local", 80, TEST_API_KEY, transport=transport)


# ---------------------------------------------------------------------------
# Canned Moonraker payloads
# ---------------------------------------------------------------------------


@pytest.fixture()
def printer_info_ready() -> Dict[str, Any]:
    """Moonraker GET /printer/info while Klipper is ready."""
    return {
        "result": {
            "state": "ready",
            "state_message": "Printer is ready",
            "hostname": "voron",
            "software_version": "v0.12.0-85-gd785b396",
            "cpu_info": "4 core ARMv7 Processor rev 4 (v7l)",
        }
    }


@pytest.fixture()
def status_printing() -> Dict[str, Any]:
    """Combined object query while a print is running."""
    return {
        "result": {
            "eventtime": 3421.50,
            "status": {
                "extruder": {"temperature": 210.4, "target": 210.0, "power": 0.5},
                "heater_bed": {"temperature": 59.8, "target": 60.0, "power": 0.25},
                "toolhead": {
                    "position": [120.5, 80.25, 2.4, 1530.1],
                    "homed_axes": "xyz",
                },
                "print_stats": {"state": "printing", "filename": "benchy.gcode"},
                "gcode_move": {"speed_factor": 1.0, "extrude_factor": 0.95},
            },
        }
    }


@pytest.fixture()
def job_printing() -> Dict[str, Any]:
    """Job query half way through a 10 minute print."""
    return {
        "result": {
            "status": {
                "print_stats": {
                    "filename": "benchy.gcode",
                    "state": "printing",
                    "print_duration": 600.0,
                    "total_duration": 615.3,
                },
                "virtual_sdcard": {"progress": 0.5, "file_size": 2048000},
            }
        }
    }


@pytest.fixture()
def server_info() -> Dict[str, Any]:
    return {
        "result": {
            "klippy_connected": True,
            "klippy_state": "ready",
            "moonraker_version": "v0.8.0-143-g2c6f9b1",
        }
    }


# ---------------------------------------------------------------------------
# Canned OctoPrint payloads
# ---------------------------------------------------------------------------


@pytest.fixture()
def octoprint_printer_printing() -> Dict[str, Any]:
    """OctoPrint /api/printer response when the printer is actively printing."""
    return {
        "state": {
            "text": "Printing",
            "flags": {
                "operational": True,
                "printing": True,
                "cancelling": False,
                "pausing": False,
                "paused": False,
                "error": False,
                "ready": False,
                "closedOrError": False,
                "sdReady": True,
            },
        },
        "temperature": {
            "tool0": {"actual": 210.0, "target": 210.0, "offset": 0},
            "bed": {"actual": 60.0, "target": 60.0, "offset": 0},
        },
    }


@pytest.fixture()
def octoprint_job_printing() -> Dict[str, Any]:
    """OctoPrint /api/job response during an active print."""
    return {
        "job": {
            "file": {
                "name": "benchy.gcode",
                "origin": "local",
                "size": 1234567,
                "date": 1700000000,
            },
            "estimatedPrintTime": 3600.0,
        },
        "progress": {
            "completion": 42.5,
            "filepos": 524288,
            "printTime": 1530,
            "printTimeLeft": 2070,
        },
        "state": "Printing",
    }


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_config_file(tmp_path: Path) -> Path:
    """Create a sample YAML config file."""
    config = {
        "host": "http://myprinter.local/",
        "port": 7126,
        "api_key": "FILEAPIKEY789",
        "flavor": "klipper",
        "timeout": 2.5,
    }
    p = tmp_path / "config.yaml"
    with p.open("w") as fh:
        yaml.safe_dump(config, fh)
    return p


@pytest.fixture()
def env_clean(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Ensure PRINTHOST env vars are not set and the home config is isolated."""
    for name in (
        "PRINTHOST_HOST",
        "PRINTHOST_PORT",
        "PRINTHOST_API_KEY",
        "PRINTHOST_FLAVOR",
        "PRINTHOST_TIMEOUT",
        "PRINTHOST_LOG_DIR",
        "PRINTHOST_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture()
def restore_logging():
    """Undo handlers and levels that configure_logging puts on the package logger."""
    package_logger = logging.getLogger("printhost")
    handlers, level = list(package_logger.handlers), package_logger.level
    yield package_logger
    for handler in package_logger.handlers:
        if handler not in handlers:
            handler.close()
    package_logger.handlers = handlers
    package_logger.setLevel(level)
