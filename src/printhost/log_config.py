"""Log rotation and sensitive data scrubbing for printhost.

Provides a logging filter that redacts API keys, tokens and passwords
from log output, and a helper to configure a rotating file handler with
the scrub filter installed.  Request dumps at DEBUG level include the
``X-Api-Key`` header, so the filter matters whenever DEBUG is enabled.
"""

from __future__ import annotations

import logging
import os
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import IO, Optional

LOG_FILENAME = "printhost.log"

_REDACTED = r"\1***REDACTED***"

# Patterns that match sensitive values in log messages.
_SCRUB_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(X-Api-Key:\s*)(\S+)", re.IGNORECASE), _REDACTED),
    (re.compile(r'(api_key["\x27]?\s*[:=]\s*["\x27]?)([^"\x27\s,}{\]]+)', re.IGNORECASE), _REDACTED),
    (re.compile(r'(token["\x27]?\s*[:=]\s*["\x27]?)([^"\x27\s,}{\]]+)', re.IGNORECASE), _REDACTED),
    (re.compile(r'(password["\x27]?\s*[:=]\s*["\x27]?)([^"\x27\s,}{\]]+)', re.IGNORECASE), _REDACTED),
    (re.compile(r'(secret["\x27]?\s*[:=]\s*["\x27]?)([^"\x27\s,}{\]]+)', re.IGNORECASE), _REDACTED),
]


class ScrubFilter(logging.Filter):
    """Logging filter that redacts sensitive data from log messages.

    Applied to both the format string and any string arguments, so a key
    interpolated via ``%s`` is caught as well.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg and isinstance(record.msg, str):
            record.msg = scrub(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: scrub(v) if isinstance(v, str) else v for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(scrub(a) if isinstance(a, str) else a for a in record.args)
        return True


def scrub(text: str) -> str:
    """Apply all scrub patterns to *text*."""
    for pattern, replacement in _SCRUB_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def get_default_log_dir() -> Path:
    """Return the default log directory, ``~/.printhost/logs``."""
    return Path.home() / ".printhost" / "logs"


def _scrubbed(handler: logging.Handler) -> logging.Handler:
    if not any(isinstance(f, ScrubFilter) for f in handler.filters):
        handler.addFilter(ScrubFilter())
    return handler


def configure_logging(
    log_dir: Optional[str] = None,
    *,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    level: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> Path:
    """Attach printhost's handlers to the ``printhost`` logger.

    A rotating file handler is added once per process; with *stream* a
    DEBUG-level stream handler (the CLI's ``--verbose``) is added as well.
    Every handler on the logger gets a :class:`ScrubFilter`.

    :param log_dir: Directory for the log file.  Falls back to the
        ``PRINTHOST_LOG_DIR`` env var, then :func:`get_default_log_dir`.
    :param level: Level name for the file.  Falls back to
        ``PRINTHOST_LOG_LEVEL``, then ``"INFO"``.
    :returns: Path of the log file.
    :raises OSError: If the log directory cannot be created.
    """
    directory = Path(log_dir or os.environ.get("PRINTHOST_LOG_DIR") or get_default_log_dir())
    level_name = (level or os.environ.get("PRINTHOST_LOG_LEVEL") or "INFO").upper()
    file_level = logging.getLevelName(level_name)
    if not isinstance(file_level, int):
        file_level = logging.INFO

    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / LOG_FILENAME

    package_logger = logging.getLogger("printhost")
    package_logger.setLevel(logging.DEBUG if stream is not None else file_level)

    if not any(isinstance(h, RotatingFileHandler) for h in package_logger.handlers):
        file_handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
        package_logger.addHandler(file_handler)

    if stream is not None:
        stream_handler = logging.StreamHandler(stream)
        stream_handler.setLevel(logging.DEBUG)
        stream_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        package_logger.addHandler(stream_handler)

    for handler in package_logger.handlers:
        _scrubbed(handler)
    return log_path
