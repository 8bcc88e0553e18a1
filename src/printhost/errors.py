"""Exception taxonomy for the printhost request cycle.

These exceptions are raised by the transport and response-reading layers
and caught by :class:`~printhost.printers.base.ProtocolClient`, which
collapses every one of them into a status code of ``0`` and a ``False``
return.  They never cross the public client boundary.

Truncated bodies and undecodable payloads are deliberately *not*
exceptions: they surface as :attr:`ResponseMessage.truncated
<printhost.http.ResponseMessage.truncated>` and an empty decoded payload.
"""

from __future__ import annotations


class PrintHostError(Exception):
    """Base exception for all request-cycle failures.

    Args:
        message: Human-readable description of the failure.
        cause: The lower-level exception (e.g. :class:`OSError`) that
            triggered this one, if any.
    """

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class TransportError(PrintHostError):
    """The connection could not be established or the stream broke."""


class ResponseTimeout(PrintHostError):
    """The request deadline elapsed while waiting for bytes."""


class ProtocolError(PrintHostError):
    """A status line was received but could not be parsed."""


class SemanticMismatch(PrintHostError):
    """A well-formed response lacked an expected ``result``/``status`` key."""
