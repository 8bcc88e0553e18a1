"""Exit codes for scriptable error handling.

These codes let a calling script determine the category of failure
without parsing error messages.
"""

from __future__ import annotations

# Success
SUCCESS = 0

# Printer host is offline, unreachable or did not answer in time
PRINTER_OFFLINE = 1

# Printer is busy (already printing, paused, etc.)
PRINTER_BUSY = 3

# Any other error (rejected input, auth, server error, unknown)
OTHER_ERROR = 4


ERROR_CODE_MAP: dict[str, int] = {
    "NO_RESPONSE": PRINTER_OFFLINE,
    "PRINTER_NOT_READY": PRINTER_OFFLINE,
    "CONFLICT": PRINTER_BUSY,
    "PRINTER_BUSY": PRINTER_BUSY,
    "AUTH_ERROR": OTHER_ERROR,
    "NOT_FOUND": OTHER_ERROR,
    "SERVER_ERROR": OTHER_ERROR,
    "VALIDATION_ERROR": OTHER_ERROR,
    "CONFIG_ERROR": OTHER_ERROR,
}


def error_code_for_status(status_code: int) -> str:
    """Classify the last HTTP status code of a failed operation."""
    if status_code == 0:
        return "NO_RESPONSE"
    if status_code in (401, 403):
        return "AUTH_ERROR"
    if status_code == 404:
        return "NOT_FOUND"
    if status_code == 409:
        return "CONFLICT"
    if status_code >= 500:
        return "SERVER_ERROR"
    if status_code == 200:
        # 200 with a body that lacked the expected objects.
        return "SERVER_ERROR"
    return "VALIDATION_ERROR"


def exit_code_for(error_code: str) -> int:
    """Map an error code string to a CLI exit code."""
    return ERROR_CODE_MAP.get(error_code, OTHER_ERROR)
