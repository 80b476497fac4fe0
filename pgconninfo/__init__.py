"""Parse PostgreSQL connection strings into connection configuration values."""

from .config import Config, ConfigState
from .errors import (
    ConfigParseError,
    ConnectionStringSyntaxError,
    DecodeError,
    InvalidValueError,
    UnknownOptionError,
)
from .models import DEFAULT_PORT, Host, TargetSessionAttrs, TcpHost, UnixSocketHost
from .parse import parse_config

__all__ = [
    "Config",
    "ConfigParseError",
    "ConfigState",
    "ConnectionStringSyntaxError",
    "DEFAULT_PORT",
    "DecodeError",
    "Host",
    "InvalidValueError",
    "TargetSessionAttrs",
    "TcpHost",
    "UnixSocketHost",
    "UnknownOptionError",
    "parse_config",
]
