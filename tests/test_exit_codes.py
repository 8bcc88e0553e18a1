"""Tests for printhost.exit_codes."""

from __future__ import annotations

import pytest

from printhost.exit_codes import (
    ERROR_CODE_MAP,
    OTHER_ERROR,
    PRINTER_BUSY,
    PRINTER_OFFLINE,
    SUCCESS,
    error_code_for_status,
    exit_code_for,
)


class TestExitCodeConstants:
    """Verify the exit code integer values are stable."""

    def test_values(self) -> None:
        assert (SUCCESS, PRINTER_OFFLINE, PRINTER_BUSY, OTHER_ERROR) == (0, 1, 3, 4)

    def test_map_only_uses_known_codes(self) -> None:
        assert set(ERROR_CODE_MAP.values()) <= {PRINTER_OFFLINE, PRINTER_BUSY, OTHER_ERROR}


class TestErrorCodeForStatus:
    @pytest.mark.parametrize(
        "status, code",
        [
            (0, "NO_RESPONSE"),
            (401, "AUTH_ERROR"),
            (403, "AUTH_ERROR"),
            (404, "NOT_FOUND"),
            (409, "CONFLICT"),
            (500, "SERVER_ERROR"),
            (503, "SERVER_ERROR"),
            (200, "SERVER_ERROR"),
            (400, "VALIDATION_ERROR"),
        ],
    )
    def test_classification(self, status: int, code: str) -> None:
        assert error_code_for_status(status) == code


class TestExitCodeFor:
    def test_no_response_is_offline(self) -> None:
        assert exit_code_for("NO_RESPONSE") == PRINTER_OFFLINE

    def test_conflict_is_busy(self) -> None:
        assert exit_code_for("CONFLICT") == PRINTER_BUSY

    def test_unknown_code_is_other(self) -> None:
        assert exit_code_for("SOMETHING_NEW") == OTHER_ERROR
