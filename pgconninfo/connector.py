"""Open asyncpg connections from a parsed :class:`Config`."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

import asyncpg

from .config import Config
from .models import DEFAULT_PORT, Host, TargetSessionAttrs, UnixSocketHost

LOG = logging.getLogger(__name__)


class ConnectError(RuntimeError):
    """Raised when no configured host accepts a connection."""


@dataclass(frozen=True, slots=True)
class ConnectTarget:
    """One host/port pair to try, in configuration order."""

    host: Host
    port: int

    @property
    def address(self) -> str:
        """Host string understood by asyncpg (socket directory or host name)."""

        if isinstance(self.host, UnixSocketHost):
            return os.fsdecode(self.host.path)
        return self.host.name

    def describe(self) -> str:
        if isinstance(self.host, UnixSocketHost):
            return f"{self.address} (unix socket, port {self.port})"
        return f"{self.address}:{self.port}"


def connect_targets(config: Config) -> tuple[ConnectTarget, ...]:
    """Pair hosts with ports.

    Zero ports means the default port for every host, a single port is shared
    by every host, otherwise there must be exactly one port per host.
    """

    hosts = config.hosts
    if not hosts:
        raise ConnectError("host missing")
    ports = config.ports
    if not ports:
        ports = (DEFAULT_PORT,) * len(hosts)
    elif len(ports) == 1:
        ports = ports * len(hosts)
    elif len(ports) != len(hosts):
        raise ConnectError("invalid number of ports")
    return tuple(ConnectTarget(host, port) for host, port in zip(hosts, ports))


def server_settings(config: Config) -> dict[str, str]:
    """Runtime parameters sent in the startup packet.

    ``options`` may carry ``-c name=value``, ``-cname=value`` and
    ``--name=value`` flags, separated by whitespace.
    """

    settings: dict[str, str] = {}
    if config.options:
        tokens = _split_options(config.options)
        while tokens:
            token = tokens.pop(0)
            if token == "-c":
                if not tokens:
                    raise ConnectError("missing setting after -c in options")
                assignment = tokens.pop(0)
            elif token.startswith("--"):
                name, sep, value = token[2:].partition("=")
                assignment = f"{name.replace('-', '_')}{sep}{value}"
            elif token.startswith("-c"):
                assignment = token[2:]
            else:
                raise ConnectError(f"unsupported server option '{token}'")
            name, sep, value = assignment.partition("=")
            if not sep or not name:
                raise ConnectError(f"malformed server option '{assignment}'")
            settings[name] = value
    if config.application_name is not None:
        settings["application_name"] = config.application_name
    return settings


def connect_kwargs(
    config: Config,
    target: ConnectTarget,
    *,
    default_timeout: float | None = None,
) -> dict[str, Any]:
    """Build ``asyncpg.connect`` keyword arguments for a single target."""

    kwargs: dict[str, Any] = {"host": target.address, "port": target.port}
    if config.user is not None:
        kwargs["user"] = config.user
    if config.password is not None:
        try:
            kwargs["password"] = config.password.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ConnectError("password is not valid UTF-8") from exc
    if config.dbname is not None:
        kwargs["database"] = config.dbname
    if config.connect_timeout is not None:
        kwargs["timeout"] = config.connect_timeout.total_seconds()
    elif default_timeout is not None:
        kwargs["timeout"] = default_timeout
    settings = server_settings(config)
    if settings:
        kwargs["server_settings"] = settings
    return kwargs


class AsyncpgConnector:
    """Tries each configured host in order until one accepts the session."""

    def __init__(self, *, default_timeout: float | None = None) -> None:
        self._default_timeout = default_timeout

    async def connect(self, config: Config) -> asyncpg.Connection:
        targets = connect_targets(config)
        LOG.debug(
            "TCP keepalive settings are left to the operating system",
            extra={
                "keepalives": config.keepalives,
                "keepalives_idle": config.keepalives_idle.total_seconds(),
            },
        )
        last_error: Exception | None = None
        for target in targets:
            kwargs = connect_kwargs(config, target, default_timeout=self._default_timeout)
            try:
                conn = await asyncpg.connect(**kwargs)
            except Exception as exc:
                LOG.warning("Connection attempt failed", extra={"target": target.describe(), "error": str(exc)})
                last_error = exc
                continue
            if config.target_session_attrs is TargetSessionAttrs.READ_WRITE:
                try:
                    read_only = await conn.fetchval("SHOW transaction_read_only")
                except Exception as exc:
                    await conn.close()
                    LOG.warning("Session check failed", extra={"target": target.describe(), "error": str(exc)})
                    last_error = exc
                    continue
                if read_only == "on":
                    await conn.close()
                    LOG.info("Skipping read-only session", extra={"target": target.describe()})
                    last_error = ConnectError(f"database at {target.describe()} does not allow writes")
                    continue
            LOG.debug("Connected", extra={"target": target.describe()})
            return conn
        raise ConnectError(f"could not connect to any of {len(targets)} host(s): {last_error}") from last_error


def _split_options(options: str) -> list[str]:
    tokens: list[str] = []
    current: list[str] = []
    escaped = False
    for c in options:
        if escaped:
            current.append(c)
            escaped = False
        elif c == "\\":
            escaped = True
        elif c.isspace():
            if current:
                tokens.append("".join(current))
                current = []
        else:
            current.append(c)
    if current:
        tokens.append("".join(current))
    return tokens


__all__ = [
    "AsyncpgConnector",
    "ConnectError",
    "ConnectTarget",
    "connect_kwargs",
    "connect_targets",
    "server_settings",
]
