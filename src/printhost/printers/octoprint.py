"""Read-only client for the `OctoPrint REST API <https://docs.octoprint.org/en/master/api/>`_.

Shares the whole request cycle with :class:`~printhost.printers.moonraker.KlipperClient`
and differs only in its endpoint table, buffer sizes and projectors.
"""

from __future__ import annotations

import logging
from typing import Any

from printhost.models import (
    FILENAME_MAX,
    STATE_LABEL_MAX,
    VERSION_MAX,
    OctoPrintJobSnapshot,
    OctoPrintPrinterSnapshot,
    OctoPrintVersion,
)
from printhost.printers.base import ProtocolClient
from printhost.projection import assign_flag, assign_float, assign_int, assign_text

logger = logging.getLogger(__name__)

_STATE_FLAGS = (
    ("closed_or_error", "closedOrError"),
    ("error", "error"),
    ("operational", "operational"),
    ("paused", "paused"),
    ("printing", "printing"),
    ("ready", "ready"),
    ("sd_ready", "sdReady"),
)


def project_printer_state(state: dict[str, Any], printer: OctoPrintPrinterSnapshot) -> None:
    """``state`` object of ``GET /api/printer`` -> printer snapshot."""
    assign_text(printer, "state", state, "text", limit=STATE_LABEL_MAX)
    for attr, key in _STATE_FLAGS:
        assign_flag(printer, attr, state, "flags", key)


def project_version(payload: dict[str, Any], version: OctoPrintVersion) -> None:
    assign_text(version, "api", payload, "api", limit=VERSION_MAX)
    assign_text(version, "server", payload, "server", limit=VERSION_MAX)


def project_job(payload: dict[str, Any], job: OctoPrintJobSnapshot) -> None:
    """``GET /api/job`` payload -> job snapshot.

    ``payload`` is the whole response; the ``job`` object must already
    have been checked for.
    """
    assign_text(job, "state", payload, "state", limit=STATE_LABEL_MAX)
    assign_int(job, "estimated_print_time", payload, "job", "estimatedPrintTime")
    assign_int(job, "file_date", payload, "job", "file", "date")
    assign_text(job, "file_name", payload, "job", "file", "name", limit=FILENAME_MAX)
    assign_text(job, "file_origin", payload, "job", "file", "origin", limit=STATE_LABEL_MAX)
    assign_int(job, "file_size", payload, "job", "file", "size")
    assign_float(job, "completion", payload, "progress", "completion")
    assign_int(job, "filepos", payload, "progress", "filepos")
    assign_int(job, "print_time", payload, "progress", "printTime")
    assign_int(job, "print_time_left", payload, "progress", "printTimeLeft")


class OctoPrintClient(ProtocolClient):
    """Blocking, read-only client for an OctoPrint server.

    OctoPrint requires an API key for every endpoint used here, so one
    should always be passed.
    """

    USER_AGENT = "printhost-octoprint/1.0"
    DEFAULT_PORT = 80
    DEFAULT_TIMEOUT = 1.5
    MAX_BODY_BYTES = 1000
    JSON_CAPACITY = 2048

    ENDPOINTS = {
        "printer": "/api/printer",
        "version": "/api/version",
        "job": "/api/job",
    }

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.printer_stats = OctoPrintPrinterSnapshot()
        self.octoprint_version = OctoPrintVersion()
        self.print_job = OctoPrintJobSnapshot()

    def get_printer_statistics(self) -> bool:
        """Refresh the state text and flags.  Requires a ``state`` object."""
        state = self._fetch_object("printer", "state")
        if state is None:
            return False
        project_printer_state(state, self.printer_stats)
        return True

    def get_octoprint_version(self) -> bool:
        payload = self._fetch_object("version")
        if payload is None:
            return False
        project_version(payload, self.octoprint_version)
        return True

    def get_print_job(self) -> bool:
        """Refresh the job snapshot.  Requires a ``job`` object."""
        payload = self._fetch_object("job")
        if payload is None or not isinstance(payload.get("job"), dict):
            if payload is not None:
                logger.warning("Response from %s has no 'job' object", self._endpoint("job"))
            return False
        project_job(payload, self.print_job)
        return True
