"""Live integration smoke tests against a Moonraker host (or the mock server).

These tests are SKIPPED by default. Run them with:

    pytest tests/test_live_moonraker.py -m live -v

Required environment variables:
    PRINTHOST_LIVE_HOST  e.g. 192.168.1.50 or 127.0.0.1

Optional:
    PRINTHOST_LIVE_PORT  defaults to 7125
    PRINTHOST_LIVE_WRITE set to 1 to run the tests that change printer state

Only point the write tests at ``scripts/moonraker_mock.py`` or at a printer
that is safe to heat and home.
"""

from __future__ import annotations

import os

import pytest

from printhost.models import KlippyState
from printhost.printers import KlipperClient

# ---------------------------------------------------------------------------
# Skip all tests in this module unless running with -m live
# ---------------------------------------------------------------------------

pytestmark = pytest.mark.live

LIVE_HOST = os.environ.get("PRINTHOST_LIVE_HOST", "")
LIVE_PORT = int(os.environ.get("PRINTHOST_LIVE_PORT", "7125") or "7125")
LIVE_WRITE = os.environ.get("PRINTHOST_LIVE_WRITE", "") == "1"

if not LIVE_HOST:
    pytestmark = [pytestmark, pytest.mark.skip(reason="PRINTHOST_LIVE_HOST not set")]

needs_write = pytest.mark.skipif(not LIVE_WRITE, reason="PRINTHOST_LIVE_WRITE not set")


@pytest.fixture(scope="module")
def client() -> KlipperClient:
    return KlipperClient(LIVE_HOST, LIVE_PORT, timeout=10.0)


# ---------------------------------------------------------------------------
# Read-only
# ---------------------------------------------------------------------------


class TestLiveQueries:
    def test_printer_info(self, client: KlipperClient) -> None:
        assert client.get_printer_info(), f"status {client.http_status_code}"
        assert client.http_status_code == 200
        assert client.printer_stats.status is not None
        assert client.server_info.klipper_version

    def test_printer_statistics(self, client: KlipperClient) -> None:
        assert client.get_printer_statistics()
        assert client.printer_stats.has_extruder
        assert client.printer_stats.extruder.current > -50

    def test_server_info(self, client: KlipperClient) -> None:
        assert client.get_server_info()
        assert client.server_info.moonraker_version

    def test_print_job(self, client: KlipperClient) -> None:
        assert client.get_print_job()
        assert 0.0 <= client.print_job.progress <= 1.0

    def test_response_body_is_kept(self, client: KlipperClient) -> None:
        body = client.send_get("/server/info")
        assert client.http_status_code == 200
        assert body.lstrip().startswith("{")


# ---------------------------------------------------------------------------
# State-changing
# ---------------------------------------------------------------------------


@needs_write
class TestLiveCommands:
    def test_set_and_clear_bed_target(self, client: KlipperClient) -> None:
        assert client.set_bed_temperature(40)
        assert client.get_printer_statistics()
        assert client.printer_stats.heated_bed.target == 40.0
        assert client.set_bed_temperature(0)

    def test_home_all(self, client: KlipperClient) -> None:
        assert client.home_all()
        assert client.get_printer_statistics()
        assert client.printer_stats.is_homed

    def test_firmware_restart(self, client: KlipperClient) -> None:
        assert client.restart_firmware()
        assert client.get_printer_info()
        assert client.printer_stats.status in (KlippyState.READY, KlippyState.STARTUP)
