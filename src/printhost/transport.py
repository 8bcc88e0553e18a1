"""Byte-stream transport used for one request cycle at a time.

A :class:`Transport` is a connect/send/receive/close abstraction.  Clients
open a fresh connection for every request and close it again before the
call returns, so an implementation never has to cope with reuse of a live
connection.  :class:`SocketTransport` is the stock TCP implementation;
callers on constrained platforms (or tests) can supply their own.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Union, cast

from printhost.errors import ResponseTimeout, TransportError

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


# ---------------------------------------------------------------------------
# Connection target
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConnectionTarget:
    """Where requests go, fixed for the lifetime of a client.

    Exactly one of *host* (a hostname) or *address* (a resolved IP
    address) is set.  An empty *api_key* is treated as "no key".

    Raises:
        ValueError: If both or neither of *host* and *address* are given,
            or if *port* is outside 1-65535.
    """

    port: int
    host: str | None = None
    address: IPAddress | None = None
    api_key: str | None = None

    def __post_init__(self) -> None:
        if (self.host is None) == (self.address is None):
            raise ValueError("exactly one of host or address must be given")
        if self.host is not None and not self.host.strip():
            raise ValueError("host must not be empty")
        if not 0 < self.port < 65536:
            raise ValueError(f"port out of range: {self.port}")
        if not self.api_key:
            object.__setattr__(self, "api_key", None)

    @classmethod
    def parse(cls, host: str, port: int, api_key: str | None = None) -> ConnectionTarget:
        """Build a target from text that may be a hostname or an IP literal."""
        text = host.strip().strip("[]")
        try:
            return cls(port=port, address=ipaddress.ip_address(text), api_key=api_key)
        except ValueError:
            return cls(port=port, host=host.strip(), api_key=api_key)

    @property
    def uses_address(self) -> bool:
        return self.address is not None

    @property
    def connect_host(self) -> str:
        """The string handed to the transport's ``connect``."""
        if self.address is not None:
            return str(self.address)
        return cast(str, self.host)

    @property
    def host_header(self) -> str:
        """Value of the ``Host`` request header (``name:port``)."""
        if isinstance(self.address, ipaddress.IPv6Address):
            return f"[{self.address}]:{self.port}"
        return f"{self.connect_host}:{self.port}"

    def __repr__(self) -> str:
        key = "set" if self.api_key else "none"
        return f"ConnectionTarget({self.host_header!r}, api_key={key})"


# ---------------------------------------------------------------------------
# Transport interface
# ---------------------------------------------------------------------------


class Transport(ABC):
    """Connect/send/receive/close over a single byte stream."""

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether a connection is currently open."""

    @abstractmethod
    def connect(self, host: str, port: int, timeout: float) -> None:
        """Open a connection to *host*:*port*.

        Raises:
            TransportError: If the connect attempt does not succeed.
        """

    @abstractmethod
    def sendall(self, data: bytes) -> None:
        """Write all of *data* to the stream.

        Raises:
            TransportError: If the stream is closed or broken.
        """

    @abstractmethod
    def recv(self, max_bytes: int, timeout: float) -> bytes:
        """Read up to *max_bytes*, blocking for at most *timeout* seconds.

        Returns ``b""`` once the peer has closed the stream.

        Raises:
            ResponseTimeout: If no byte arrives within *timeout*.
            TransportError: If the stream is broken.
        """

    @abstractmethod
    def close(self) -> None:
        """Close the connection.  Safe to call when already closed."""


class SocketTransport(Transport):
    """:class:`Transport` over a plain TCP socket."""

    def __init__(self) -> None:
        self._sock: socket.socket | None = None

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self, host: str, port: int, timeout: float) -> None:
        self.close()
        try:
            self._sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as exc:
            raise TransportError(f"Could not connect to {host}:{port}: {exc}", cause=exc) from exc

    def sendall(self, data: bytes) -> None:
        if self._sock is None:
            raise TransportError("sendall on a closed transport")
        try:
            self._sock.sendall(data)
        except OSError as exc:
            raise TransportError(f"Send failed: {exc}", cause=exc) from exc

    def recv(self, max_bytes: int, timeout: float) -> bytes:
        if self._sock is None:
            raise TransportError("recv on a closed transport")
        self._sock.settimeout(max(timeout, 0.001))
        try:
            return self._sock.recv(max_bytes)
        except socket.timeout as exc:
            raise ResponseTimeout(f"No data within {timeout:.3f}s", cause=exc) from exc
        except OSError as exc:
            raise TransportError(f"Receive failed: {exc}", cause=exc) from exc

    def close(self) -> None:
        if self._sock is None:
            return
        try:
            self._sock.close()
        except OSError as exc:
            logger.debug("Ignoring error while closing socket: %s", exc)
        finally:
            self._sock = None
