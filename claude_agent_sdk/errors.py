"""Exception hierarchy used across the SDK."""

from __future__ import annotations

from typing import Any

_MAX_LINE_PREVIEW = 100


class SDKError(Exception):
    """Base class for every error raised by the SDK.

    ``messages`` holds any messages that were parsed successfully before
    the error occurred, so callers can still use partial results.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.messages: list[Any] = []


class CLINotFoundError(SDKError):
    """The command line tool, or something it needs, could not be found."""

    def __init__(self, message: str, cli_path: str = "") -> None:
        self.cli_path = cli_path
        text = f"{message}: {cli_path}" if cli_path else message
        super().__init__(text)
        self.message = message


class CLIConnectionError(SDKError):
    """Connecting to or preparing the command line tool failed."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        text = f"{message}: {cause}" if cause is not None else message
        super().__init__(text)
        self.message = message
        if cause is not None:
            self.__cause__ = cause


class JSONDecodeError(SDKError):
    """Output from the command line tool could not be decoded as JSON."""

    def __init__(
        self,
        line: str,
        position: int = 0,
        cause: BaseException | None = None,
    ) -> None:
        self.line = line
        self.position = position
        self.cause = cause
        preview = line if len(line) <= _MAX_LINE_PREVIEW else line[:_MAX_LINE_PREVIEW] + "..."
        text = f"failed to decode JSON: {preview}"
        if cause is not None:
            text = f"{text}: {cause}"
            self.__cause__ = cause
        super().__init__(text)


class MessageParseError(SDKError):
    """A decoded JSON object did not have the shape of a known message."""

    def __init__(self, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.data = data