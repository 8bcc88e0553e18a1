"""Tests for printhost.http: request building, status lines and the response reader."""

from __future__ import annotations

import ipaddress
import time

import pytest

from printhost.errors import ProtocolError, ResponseTimeout, TransportError
from printhost.http import (
    RequestPhase,
    ResponseMessage,
    ResponseReader,
    build_request,
    extract_status_code,
    parse_status_line,
)
from printhost.transport import ConnectionTarget

from .conftest import FakeTransport, http_response


def _reader(transport: FakeTransport, max_body: int = 1500, budget: float = 5.0, **kwargs) -> ResponseReader:
    transport.connect("h", 1, 1.0)
    return ResponseReader(transport, time.monotonic() + budget, max_body, **kwargs)


# ===================================================================
# build_request
# ===================================================================


class TestBuildRequest:
    def test_get_without_key_or_body(self) -> None:
        target = ConnectionTarget(port=7125, host="klipper.local")
        raw = build_request("GET", "/printer/info", target, "printhost-test/1.0").encode()
        assert raw == (
            b"GET /printer/info HTTP/1.1\r\n"
            b"Host: klipper.local:7125\r\n"
            b"User-Agent: printhost-test/1.0\r\n"
            b"Connection: close\r\n"
            b"\r\n"
        )

    def test_post_with_key_and_body(self) -> None:
        target = ConnectionTarget(port=80, host="octopi", api_key="SECRET")
        raw = build_request("POST", "/printer/print/pause", target, "ua", "{}").encode()
        assert raw == (
            b"POST /printer/print/pause HTTP/1.1\r\n"
            b"Host: octopi:80\r\n"
            b"User-Agent: ua\r\n"
            b"Connection: close\r\n"
            b"X-Api-Key: SECRET\r\n"
            b"Content-Type: application/json\r\n"
            b"Content-Length: 2\r\n"
            b"\r\n"
            b"{}"
        )

    def test_empty_key_is_not_sent(self) -> None:
        target = ConnectionTarget(port=80, host="octopi", api_key="")
        request = build_request("GET", "/", target, "ua")
        assert request.header("X-Api-Key") is None

    def test_content_length_counts_utf8_bytes(self) -> None:
        target = ConnectionTarget(port=80, host="h")
        request = build_request("POST", "/", target, "ua", "héllo")
        assert request.header("content-length") == "6"

    def test_empty_body_sends_no_content_headers(self) -> None:
        target = ConnectionTarget(port=80, host="h")
        request = build_request("POST", "/", target, "ua", "")
        assert request.header("Content-Type") is None
        assert request.header("Content-Length") is None
        assert request.body is None

    def test_ipv4_address_host_header(self) -> None:
        target = ConnectionTarget(port=7125, address=ipaddress.ip_address("192.168.1.50"))
        assert build_request("GET", "/", target, "ua").header("Host") == "192.168.1.50:7125"

    def test_ipv6_address_is_bracketed(self) -> None:
        target = ConnectionTarget(port=7125, address=ipaddress.ip_address("fe80::1"))
        assert build_request("GET", "/", target, "ua").header("Host") == "[fe80::1]:7125"

    def test_method_is_upper_cased(self) -> None:
        target = ConnectionTarget(port=80, host="h")
        assert build_request("get", "/", target, "ua").encode().startswith(b"GET / HTTP/1.1\r\n")


# ===================================================================
# Status line
# ===================================================================


class TestStatusLine:
    @pytest.mark.parametrize(
        "block, expected",
        [
            ("HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n", 200),
            ("HTTP/1.1 404 Not Found\r\n", 404),
            ("HTTP/1.0 503 Service Unavailable", 503),
            ("HTTP/1.1 200 ", 200),
        ],
    )
    def test_valid_lines(self, block: str, expected: int) -> None:
        assert extract_status_code(block) == expected

    @pytest.mark.parametrize(
        "block",
        [
            "",
            "garbage",
            "HTTP/1.1 200",  # no second delimiter, and too short
            "HTTP/1.1 abc Not OK",
            "HTTP/1.1200OKNOSPACES",
        ],
    )
    def test_invalid_lines_give_zero(self, block: str) -> None:
        assert extract_status_code(block) == 0

    def test_parse_raises_protocol_error(self) -> None:
        with pytest.raises(ProtocolError):
            parse_status_line("HTTP/1.1 xyz Oops")

    def test_only_first_line_is_considered(self) -> None:
        assert extract_status_code("junk line here\r\nHTTP/1.1 200 OK\r\n") == 0


# ===================================================================
# ResponseReader
# ===================================================================


class TestResponseReader:
    def test_single_chunk_response(self) -> None:
        transport = FakeTransport(http_response(200, {"result": {}}))
        response = _reader(transport).read()
        assert response.status_code == 200
        assert response.body == '{"result": {}}'
        assert response.phase is RequestPhase.COMPLETE
        assert response.truncated is False
        assert "Content-Type: application/json" in response.headers

    def test_headers_split_across_chunks(self) -> None:
        transport = FakeTransport([b"HTTP/1.1 200 OK\r\nCon", b"tent-Type: x\r\n\r", b"\n{}", b""])
        response = _reader(transport).read()
        assert response.status_code == 200
        assert response.body == "{}"

    def test_bare_lf_line_endings(self) -> None:
        transport = FakeTransport(b"HTTP/1.1 200 OK\nX: y\n\n{\"a\": 1}")
        response = _reader(transport).read()
        assert response.status_code == 200
        assert response.body == '{"a": 1}'

    def test_body_kept_verbatim_including_newlines(self) -> None:
        transport = FakeTransport(http_response(200, '{\n  "a": 1\n}\n'))
        assert _reader(transport).read().body == '{\n  "a": 1\n}\n'

    def test_body_truncated_exactly_at_ceiling(self) -> None:
        transport = FakeTransport(http_response(200, "x" * 100))
        response = _reader(transport, max_body=10).read()
        assert response.body == "x" * 10
        assert response.truncated is True

    def test_body_reaching_ceiling_stops_reading(self) -> None:
        transport = FakeTransport([http_response(200, "x" * 10), b"never read"])
        response = _reader(transport, max_body=10).read()
        assert response.body == "x" * 10
        # The trailing chunk was not consumed.
        assert len(transport.recv_timeouts) == 1

    def test_ceiling_hit_on_chunk_boundary_with_more_declared(self) -> None:
        head = b"HTTP/1.1 200 OK\r\nContent-Length: 20\r\n\r\n"
        transport = FakeTransport([head, b"x" * 10, b"y" * 10])
        response = _reader(transport, max_body=10).read()
        assert response.body == "x" * 10
        assert response.truncated is True

    def test_ceiling_hit_without_content_length_is_truncated(self) -> None:
        transport = FakeTransport([b"HTTP/1.1 200 OK\r\n\r\n", b"x" * 10, b"more"])
        response = _reader(transport, max_body=10).read()
        assert response.truncated is True

    def test_ceiling_matching_content_length_is_complete(self) -> None:
        transport = FakeTransport(http_response(200, "x" * 10))
        assert _reader(transport, max_body=10).read().truncated is False

    def test_body_spread_over_many_chunks(self) -> None:
        body = b'{"result": {"state": "ready"}}'
        chunks = [http_response(200, b"")] + [body[i : i + 3] for i in range(0, len(body), 3)]
        response = _reader(FakeTransport(chunks)).read()
        assert response.body == body.decode()

    def test_header_ceiling_drops_extra_lines(self) -> None:
        extra = [f"X-Filler-{i}: {'a' * 30}" for i in range(10)]
        transport = FakeTransport(http_response(200, "{}", headers=extra))
        response = _reader(transport, max_header_bytes=40).read()
        assert len(response.headers) == 40
        assert response.status_code == 200
        assert response.body == "{}"

    def test_unterminated_header_line_stays_bounded(self) -> None:
        class WatchedTransport(FakeTransport):
            reader = None
            peak = 0

            def recv(self, max_bytes: int, timeout: float) -> bytes:
                if self.reader is not None:
                    self.peak = max(self.peak, len(self.reader._pending))
                return super().recv(max_bytes, timeout)

        chunks = [b"HTTP/1.1 200 OK\r\nX-Flood: "] + [b"A" * 512] * 400 + [b"\r\n\r\n{}"]
        transport = WatchedTransport(chunks)
        reader = _reader(transport, max_header_bytes=2048)
        transport.reader = reader
        response = reader.read()
        assert transport.peak <= 2048
        assert len(response.headers) <= 2048
        assert response.status_code == 200
        assert response.body == "{}"

    def test_cr_ending_a_dropped_line_is_not_the_blank_line(self) -> None:
        first = b"HTTP/1.1 200 OK\r\nX-Long: " + b"A" * 3000 + b"\r"
        transport = FakeTransport([first, b"\nX-After: 1\r\n\r\n{}"])
        response = _reader(transport, max_header_bytes=40).read()
        assert response.status_code == 200
        assert response.body == "{}"
        assert len(response.headers) == 40

    def test_eof_before_blank_line_keeps_status(self) -> None:
        transport = FakeTransport(b"HTTP/1.1 503 Service Unavailable")
        response = _reader(transport).read()
        assert response.status_code == 503
        assert response.body == ""
        assert response.phase is RequestPhase.COMPLETE

    def test_empty_stream_gives_status_zero(self) -> None:
        response = _reader(FakeTransport(b"")).read()
        assert response.status_code == 0
        assert response.ok is False

    def test_timeout_while_awaiting_headers(self) -> None:
        reader = _reader(FakeTransport([b"HTTP/1.1 200", ResponseTimeout("slow")]))
        with pytest.raises(ResponseTimeout):
            reader.read()
        assert reader.phase is RequestPhase.FAILED

    def test_timeout_while_awaiting_body(self) -> None:
        reader = _reader(FakeTransport([b"HTTP/1.1 200 OK\r\n\r\n{\"par", ResponseTimeout("slow")]))
        with pytest.raises(ResponseTimeout):
            reader.read()
        assert reader.phase is RequestPhase.FAILED

    def test_expired_deadline_fails_without_reading(self) -> None:
        transport = FakeTransport(http_response(200, "{}"))
        transport.connect("h", 1, 1.0)
        reader = ResponseReader(transport, time.monotonic() - 1, 1500)
        with pytest.raises(ResponseTimeout):
            reader.read()
        assert transport.recv_timeouts == []

    def test_each_read_gets_remaining_budget_only(self) -> None:
        transport = FakeTransport([b"HTTP/1.1 200 OK\r\n", b"\r\n", b"{}"])
        _reader(transport, budget=2.0).read()
        assert all(0 < t <= 2.0 for t in transport.recv_timeouts)
        assert transport.recv_timeouts == sorted(transport.recv_timeouts, reverse=True)

    def test_transport_error_propagates(self) -> None:
        reader = _reader(FakeTransport([TransportError("reset")]))
        with pytest.raises(TransportError):
            reader.read()
        assert reader.phase is RequestPhase.FAILED

    def test_negative_ceiling_rejected(self) -> None:
        with pytest.raises(ValueError):
            ResponseReader(FakeTransport(), time.monotonic() + 1, -1)

    def test_invalid_utf8_is_replaced(self) -> None:
        transport = FakeTransport(b"HTTP/1.1 200 OK\r\n\r\n\xff{}")
        assert _reader(transport).read().body == "�{}"


class TestResponseMessage:
    def test_failed_sentinel(self) -> None:
        response = ResponseMessage.failed()
        assert response.status_code == 0
        assert response.body == ""
        assert response.phase is RequestPhase.FAILED
        assert response.phase.terminal

    def test_ok_only_for_200(self) -> None:
        assert ResponseMessage(status_code=200).ok
        assert not ResponseMessage(status_code=204).ok
