"""Exceptions raised while parsing connection strings."""

from __future__ import annotations


class ConfigParseError(ValueError):
    """Base class for every connection string parse failure."""


class ConnectionStringSyntaxError(ConfigParseError):
    """Raised when the input does not follow the key/value or URL grammar."""

    def __init__(self, message: str, *, position: int | None = None) -> None:
        super().__init__(message)
        self.position = position


class UnknownOptionError(ConfigParseError):
    """Raised for keys that are not recognized connection parameters."""

    def __init__(self, key: str) -> None:
        super().__init__(f"unknown option '{key}'")
        self.key = key


class InvalidValueError(ConfigParseError):
    """Raised when a recognized key carries a malformed value."""

    def __init__(self, key: str) -> None:
        super().__init__(f"invalid value for option '{key}'")
        self.key = key


class DecodeError(ConfigParseError):
    """Raised when percent-decoded bytes are not valid UTF-8 text."""

    def __init__(self, error: UnicodeDecodeError) -> None:
        super().__init__(f"invalid UTF-8 in percent-decoded text: {error.reason}")
        self.error = error


__all__ = [
    "ConfigParseError",
    "ConnectionStringSyntaxError",
    "DecodeError",
    "InvalidValueError",
    "UnknownOptionError",
]
