"""Hand-built HTTP/1.1 messages for a single request cycle.

There is no general HTTP client underneath this module.  Requests are
formatted by :func:`build_request` and written straight to a
:class:`~printhost.transport.Transport`; the response is pulled off the
same transport by :class:`ResponseReader`, which honours an absolute
deadline and a hard ceiling on the number of body bytes it keeps.

Every request is self-contained: ``Connection: close``, no chunked
encoding, no keep-alive.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field

from printhost.errors import PrintHostError, ProtocolError, ResponseTimeout
from printhost.transport import ConnectionTarget, Transport

logger = logging.getLogger(__name__)

# Bytes requested from the transport per read.
_RECV_CHUNK = 512

# A status line must be longer than this to be considered at all
# ("HTTP/1.1 200 " is 13 characters).
_MIN_STATUS_LINE_LENGTH = 12

DEFAULT_MAX_HEADER_BYTES = 2048


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


@dataclass
class RequestMessage:
    """A fully formatted request, built and discarded per call."""

    method: str
    path: str
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: str | None = None

    def header(self, name: str) -> str | None:
        """Return the first header value named *name* (case-insensitive)."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None

    def encode(self) -> bytes:
        """Serialise to the exact bytes written on the wire."""
        lines = [f"{self.method} {self.path} HTTP/1.1"]
        lines.extend(f"{key}: {value}" for key, value in self.headers)
        head = "\r\n".join(lines) + "\r\n\r\n"
        payload = head.encode("utf-8")
        if self.body:
            payload += self.body.encode("utf-8")
        return payload


def build_request(
    method: str,
    path: str,
    target: ConnectionTarget,
    user_agent: str,
    body: str | None = None,
) -> RequestMessage:
    """Format a single HTTP/1.1 request for *target*.

    ``X-Api-Key`` is only sent when the target carries a key, and the
    ``Content-Type``/``Content-Length`` pair only when *body* is non-empty.
    ``Content-Length`` is the UTF-8 byte length of the body, not its
    character count.
    """
    headers: list[tuple[str, str]] = [
        ("Host", target.host_header),
        ("User-Agent", user_agent),
        ("Connection", "close"),
    ]
    if target.api_key:
        headers.append(("X-Api-Key", target.api_key))
    if body:
        headers.append(("Content-Type", "application/json"))
        headers.append(("Content-Length", str(len(body.encode("utf-8")))))
    return RequestMessage(method=method.upper(), path=path, headers=headers, body=body or None)


# ---------------------------------------------------------------------------
# Status line
# ---------------------------------------------------------------------------


def parse_status_line(line: str) -> int:
    """Return the numeric code from ``HTTP/<ver> <code> <reason>``.

    The code is whatever sits between the first and the second space.

    Raises:
        ProtocolError: If the line is too short, either delimiter is
            missing, or the code is not a decimal number.
    """
    line = line.rstrip("\r\n")
    if len(line) <= _MIN_STATUS_LINE_LENGTH:
        raise ProtocolError(f"Status line too short: {line!r}")
    first = line.find(" ")
    second = line.find(" ", first + 1) if first != -1 else -1
    if first == -1 or second == -1:
        raise ProtocolError(f"Status line has no code delimiters: {line!r}")
    code = line[first + 1 : second]
    if not (code.isascii() and code.isdigit()):
        raise ProtocolError(f"Status code is not numeric: {code!r}")
    return int(code)


def extract_status_code(header_block: str) -> int:
    """Return the status code from the first line of *header_block*, or 0.

    A missing or malformed status line is reported as ``0``, which callers
    treat exactly like "no response".
    """
    first_line = header_block.split("\n", 1)[0]
    try:
        return parse_status_line(first_line)
    except ProtocolError as exc:
        if header_block:
            logger.debug("Unparseable response: %s", exc)
        return 0


def _content_length(header_block: str) -> int | None:
    for line in header_block.splitlines()[1:]:
        name, sep, value = line.partition(":")
        if sep and name.strip().lower() == "content-length":
            value = value.strip()
            return int(value) if value.isdigit() else None
    return None


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------


class RequestPhase(enum.Enum):
    """Where a request cycle currently is."""

    IDLE = "idle"
    CONNECTING = "connecting"
    SENDING = "sending"
    AWAITING_HEADERS = "awaiting_headers"
    AWAITING_BODY = "awaiting_body"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (RequestPhase.COMPLETE, RequestPhase.FAILED)


@dataclass
class ResponseMessage:
    """What one request cycle produced.

    ``status_code`` is ``0`` when no valid response was obtained.  ``body``
    holds at most the configured ceiling; ``truncated`` records whether
    bytes beyond it were discarded, or may have been when the body stopped
    exactly at the ceiling without a ``Content-Length`` to confirm it.
    """

    status_code: int = 0
    headers: str = ""
    body: str = ""
    truncated: bool = False
    phase: RequestPhase = RequestPhase.IDLE

    @classmethod
    def failed(cls) -> ResponseMessage:
        """The "no response" sentinel."""
        return cls(phase=RequestPhase.FAILED)

    @property
    def ok(self) -> bool:
        return self.status_code == 200


class ResponseReader:
    """Read a header block and then a bounded body under a deadline.

    The deadline is an absolute :func:`time.monotonic` value fixed when
    the request was dispatched.  Every blocking read only gets the budget
    that is left, so the whole response is bounded by the same wall-clock
    limit no matter how the bytes trickle in.

    Args:
        transport: A connected transport the request has been sent on.
        deadline: Absolute :func:`time.monotonic` time after which the
            read fails.
        max_body_bytes: Body bytes to keep; the body is cut exactly here
            and the rest is discarded unread.
        max_header_bytes: Header bytes to keep; extra header lines are
            dropped while the reader keeps looking for the blank line.
    """

    def __init__(
        self,
        transport: Transport,
        deadline: float,
        max_body_bytes: int,
        max_header_bytes: int = DEFAULT_MAX_HEADER_BYTES,
    ) -> None:
        if max_body_bytes < 0:
            raise ValueError("max_body_bytes must not be negative")
        self._transport = transport
        self._deadline = deadline
        self._max_body = max_body_bytes
        self._max_header = max_header_bytes
        self._headers = bytearray()
        self._body = bytearray()
        self._pending = b""
        self._partial_line = False
        self._truncated = False
        self.phase = RequestPhase.AWAITING_HEADERS

    def read(self) -> ResponseMessage:
        """Consume the response and return it.

        Raises:
            ResponseTimeout: If the deadline passes in either waiting phase.
            TransportError: If the stream breaks.
        """
        try:
            while not self._done():
                chunk = self._recv()
                if not chunk:
                    break
                if self.phase is RequestPhase.AWAITING_HEADERS:
                    chunk = self._feed_headers(chunk)
                if self.phase is RequestPhase.AWAITING_BODY and chunk:
                    self._feed_body(chunk)
        except PrintHostError:
            self.phase = RequestPhase.FAILED
            raise

        if self.phase is RequestPhase.AWAITING_HEADERS and self._pending:
            self._append_header(self._pending)
            self._pending = b""

        headers = self._headers.decode("latin-1")
        if self._done() and not self._truncated:
            # Stopped at the ceiling: unread bytes may remain unless Content-Length says otherwise.
            length = _content_length(headers)
            self._truncated = length is None or length > len(self._body)
        self.phase = RequestPhase.COMPLETE
        return ResponseMessage(
            status_code=extract_status_code(headers),
            headers=headers,
            body=self._body.decode("utf-8", errors="replace"),
            truncated=self._truncated,
            phase=self.phase,
        )

    # -- internals -------------------------------------------------------

    def _done(self) -> bool:
        return self.phase is RequestPhase.AWAITING_BODY and len(self._body) >= self._max_body

    def _recv(self) -> bytes:
        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            raise ResponseTimeout(f"Deadline passed while {self.phase.value}")
        return self._transport.recv(_RECV_CHUNK, remaining)

    def _feed_headers(self, chunk: bytes) -> bytes:
        """Consume header lines; return whatever belongs to the body.

        An unterminated line is never held past the header ceiling: what
        fits is kept, the rest is dropped while scanning for its end.
        """
        self._pending += chunk
        while b"\n" in self._pending:
            line, _, self._pending = self._pending.partition(b"\n")
            if not self._partial_line and not line.rstrip(b"\r"):
                self.phase = RequestPhase.AWAITING_BODY
                rest, self._pending = self._pending, b""
                return rest
            self._append_header(line + b"\n")
            self._partial_line = False
        if len(self._pending) > self._max_header:
            self._append_header(self._pending)
            self._pending = b""
            self._partial_line = True
        return b""

    def _append_header(self, line: bytes) -> None:
        room = self._max_header - len(self._headers)
        if room > 0:
            self._headers += line[:room]

    def _feed_body(self, chunk: bytes) -> None:
        room = self._max_body - len(self._body)
        if len(chunk) > room:
            self._truncated = True
        self._body += chunk[:room]
