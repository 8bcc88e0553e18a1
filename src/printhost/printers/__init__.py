"""Printer-host clients.

Re-exports the clients so consumers can write::

    from printhost.printers import KlipperClient, OctoPrintClient
"""

from __future__ import annotations

from printhost.printers.base import ProtocolClient
from printhost.printers.moonraker import KlipperClient
from printhost.printers.octoprint import OctoPrintClient

__all__ = [
    "KlipperClient",
    "OctoPrintClient",
    "ProtocolClient",
]
