"""Protocol client shared by every printer-host API.

:class:`ProtocolClient` owns everything that does not depend on which host
API is on the other end: the connection target, the transport, the
request deadline, the body ceiling, the decode capacity, the last status
code, and the connect -> send -> read -> decode cycle.  A host API is a
thin subclass that supplies an endpoint table, a user agent, its buffer
constants and the projectors that map payloads onto its snapshots.

Nothing raised below this class escapes it.  Connect failures, timeouts,
unparseable status lines and missing ``result`` keys all end up as a
``False`` return with :attr:`ProtocolClient.http_status_code` telling the
caller what (if anything) the server said.
"""

from __future__ import annotations

import ipaddress
import json as _json
import logging
import time
from typing import Any, ClassVar

from printhost.errors import PrintHostError, ResponseTimeout, SemanticMismatch
from printhost.http import ResponseMessage, ResponseReader, build_request
from printhost.payload import decode_payload, safe_get
from printhost.transport import ConnectionTarget, IPAddress, SocketTransport, Transport

logger = logging.getLogger(__name__)


class ProtocolClient:
    """Blocking JSON-over-HTTP client for one printer host.

    Args:
        host: Hostname (``str``) or resolved address
            (:class:`ipaddress.IPv4Address` / ``IPv6Address``) of the host.
        port: TCP port.  Defaults to the subclass's ``DEFAULT_PORT``.
        api_key: Optional pre-shared key, sent as ``X-Api-Key``.
        transport: Byte-stream transport to use.  Defaults to a fresh
            :class:`~printhost.transport.SocketTransport`.
        timeout: Seconds allowed for the connect and, separately, for the
            whole response (measured from dispatch).
        max_body_bytes: Response body bytes kept; the rest is discarded.
        json_capacity: Largest body, in characters, that will be decoded.

    Raises:
        ValueError: If *host* is empty or *port* is out of range.

    Not safe for concurrent use: callers sharing one instance across
    threads must serialise access themselves.
    """

    USER_AGENT: ClassVar[str] = "printhost/1.0"
    ENDPOINTS: ClassVar[dict[str, str]] = {}
    DEFAULT_PORT: ClassVar[int] = 80
    DEFAULT_TIMEOUT: ClassVar[float] = 5.0
    MAX_BODY_BYTES: ClassVar[int] = 1500
    JSON_CAPACITY: ClassVar[int] = 2048
    MAX_POST_BODY: ClassVar[int] = 256

    def __init__(
        self,
        host: str | IPAddress,
        port: int | None = None,
        api_key: str | None = None,
        *,
        transport: Transport | None = None,
        timeout: float | None = None,
        max_body_bytes: int | None = None,
        json_capacity: int | None = None,
    ) -> None:
        port = self.DEFAULT_PORT if port is None else port
        if isinstance(host, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
            self._target = ConnectionTarget(port=port, address=host, api_key=api_key)
        else:
            if not host:
                raise ValueError("host must not be empty")
            self._target = ConnectionTarget(port=port, host=host, api_key=api_key)

        self._transport: Transport = transport if transport is not None else SocketTransport()
        self._timeout: float = self.DEFAULT_TIMEOUT if timeout is None else float(timeout)
        self._max_body_bytes: int = self.MAX_BODY_BYTES if max_body_bytes is None else max_body_bytes
        self._json_capacity: int = self.JSON_CAPACITY if json_capacity is None else json_capacity

        self.http_status_code: int = 0

    @property
    def target(self) -> ConnectionTarget:
        return self._target

    @property
    def timeout(self) -> float:
        return self._timeout

    # ------------------------------------------------------------------
    # Request cycle
    # ------------------------------------------------------------------

    def _exchange(self, method: str, path: str, body: str | None = None) -> ResponseMessage:
        """Run one full request cycle and record the status code.

        The connection is closed before this returns, whichever way the
        cycle ended.
        """
        request = build_request(method, path, self._target, self.USER_AGENT, body)
        transport = self._transport
        logger.debug("Request to %s:\n%s", self._target.host_header, request.encode().decode("utf-8", "replace"))

        try:
            transport.connect(self._target.connect_host, self._target.port, self._timeout)
            transport.sendall(request.encode())
            deadline = time.monotonic() + self._timeout
            response = ResponseReader(transport, deadline, self._max_body_bytes).read()
        except ResponseTimeout as exc:
            logger.warning("%s %s timed out after %.1fs: %s", method, path, self._timeout, exc)
            response = ResponseMessage.failed()
        except PrintHostError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            response = ResponseMessage.failed()
        finally:
            transport.close()

        self.http_status_code = response.status_code
        if response.truncated:
            logger.debug("Body of %s %s cut at %d bytes", method, path, self._max_body_bytes)
        logger.debug("Response %d from %s %s: %s", response.status_code, method, path, response.body)
        return response

    def send_get(self, path: str) -> str:
        """GET *path* and return the (possibly truncated) body text."""
        return self._exchange("GET", path).body

    def send_post(self, path: str, body: str | None) -> str:
        """POST *body* to *path* and return the (possibly truncated) body text."""
        return self._exchange("POST", path, body).body

    def get_endpoint_results(self, path: str) -> str:
        """Alias of :meth:`send_get` for ad-hoc endpoint inspection."""
        return self.send_get(path)

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _endpoint(self, name: str) -> str:
        return self.ENDPOINTS[name]

    def _fetch_object(self, name: str, *keys: str) -> dict[str, Any] | None:
        """GET endpoint *name*, decode it and return the object at *keys*.

        Returns ``None`` (and the operation should report failure) when the
        status is not 200, the body is empty, or the expected object is
        missing.  With no *keys* the whole payload must be a non-empty
        object.
        """
        path = self._endpoint(name)
        response = self._exchange("GET", path)
        if not response.ok or not response.body:
            return None

        payload = decode_payload(response.body, self._json_capacity)
        try:
            return self._require_object(payload, path, *keys)
        except SemanticMismatch as exc:
            logger.warning("%s", exc)
            return None

    @staticmethod
    def _require_object(payload: dict[str, Any], path: str, *keys: str) -> dict[str, Any]:
        """Return the object at *keys* inside *payload*.

        Raises:
            SemanticMismatch: If it is absent or not an object.
        """
        found = safe_get(payload, *keys) if keys else payload
        if not isinstance(found, dict) or (not keys and not found):
            where = ".".join(keys) if keys else "payload"
            raise SemanticMismatch(f"Response from {path} has no '{where}' object")
        return found

    @staticmethod
    def _encode_body(payload: dict[str, Any] | None) -> str:
        return _json.dumps(payload or {}, separators=(",", ":"))

    def body_fits(self, payload: dict[str, Any] | None) -> bool:
        """Whether *payload* encodes within ``MAX_POST_BODY`` bytes."""
        return len(self._encode_body(payload).encode("utf-8")) <= self.MAX_POST_BODY

    def _command(self, name: str, payload: dict[str, Any] | None = None) -> bool:
        """POST a JSON command to endpoint *name*; success is status 200.

        *payload* defaults to an empty object.  No response body is decoded.
        A body over ``MAX_POST_BODY`` bytes is refused without sending.
        """
        body = self._encode_body(payload)
        if len(body.encode("utf-8")) > self.MAX_POST_BODY:
            logger.warning(
                "Refusing to send %d-byte command body to %s (limit %d)",
                len(body.encode("utf-8")),
                self._endpoint(name),
                self.MAX_POST_BODY,
            )
            return False
        response = self._exchange("POST", self._endpoint(name), body)
        return response.status_code == 200

    def __repr__(self) -> str:
        return f"{type(self).__name__}(target={self._target!r})"
