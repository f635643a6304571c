"""Error types for folio.

Every error raised on purpose by folio derives from FolioError so the CLI can
report it in one place. Each kind maps onto one outcome:

- NotFoundError: missing document or path; HTTP 404, never fatal.
- DecodeError: file is not valid UTF-8; HTTP 500 plus a log entry.
- MarkupError: malformed markup; recovered by the renderer unless strict.
- BindError: listening socket unavailable; fatal at startup.
- ConfigError: unreadable _config.yml; fatal at startup.
"""

from __future__ import annotations

from pathlib import Path


class FolioError(Exception):
    """Base class for folio errors.

    Attributes:
        message: Human-readable error message.
        path: Path of the file involved, when known.
    """

    def __init__(self, message: str, path: Path | None = None):
        self.message = message
        self.path = path
        super().__init__(f"{path}: {message}" if path is not None else message)


class NotFoundError(FolioError):
    """Requested document, file or directory does not exist."""


class DecodeError(FolioError):
    """Document bytes could not be decoded as UTF-8 text."""


class MarkupError(FolioError):
    """Malformed lightweight-markup construct.

    Attributes:
        line: 1-based source line where the construct starts, when known.
    """

    def __init__(self, message: str, path: Path | None = None, line: int | None = None):
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message, path)


class BindError(FolioError):
    """The dev server could not bind its listening socket."""

    def __init__(self, host: str, port: int, reason: str):
        self.host = host
        self.port = port
        super().__init__(f"cannot listen on {host}:{port} ({reason})")


class ConfigError(FolioError):
    """Configuration file could not be loaded."""
