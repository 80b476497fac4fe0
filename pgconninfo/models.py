"""Value types shared by the parsers and the connector."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class TargetSessionAttrs(str, Enum):
    """Properties required of a session."""

    ANY = "any"
    READ_WRITE = "read-write"


@dataclass(frozen=True, slots=True)
class TcpHost:
    """A network host name or IP address."""

    name: str


@dataclass(frozen=True, slots=True)
class UnixSocketHost:
    """Directory containing the server's Unix domain socket."""

    path: Path


Host = TcpHost | UnixSocketHost

DEFAULT_PORT = 5432


__all__ = ["DEFAULT_PORT", "Host", "TargetSessionAttrs", "TcpHost", "UnixSocketHost"]
