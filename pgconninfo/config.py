"""Connection configuration value and its keyed-setter dispatch."""

from __future__ import annotations

import logging
import os
import re
import socket
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path

from .errors import InvalidValueError, UnknownOptionError
from .models import DEFAULT_PORT, Host, TargetSessionAttrs, TcpHost, UnixSocketHost

LOG = logging.getLogger(__name__)

UNIX_SOCKETS = hasattr(socket, "AF_UNIX")
DEFAULT_KEEPALIVES_IDLE = timedelta(hours=2)

_SIGNED_INT = re.compile(r"[+-]?[0-9]+", re.ASCII)
_UNSIGNED_INT = re.compile(r"\+?[0-9]+", re.ASCII)
_I64_MAX = 2**63 - 1
_U64_MAX = 2**64 - 1
_U16_MAX = 2**16 - 1
_MAX_TIMEDELTA_SECONDS = timedelta.max.days * 24 * 60 * 60


@dataclass(frozen=True, slots=True)
class ConfigState:
    """Immutable record holding every parsed field.

    Records are shared between clones of a :class:`Config`; they are never
    mutated, only replaced.
    """

    user: str | None = None
    password: bytes | None = None
    dbname: str | None = None
    options: str | None = None
    application_name: str | None = None
    hosts: tuple[Host, ...] = ()
    ports: tuple[int, ...] = ()
    connect_timeout: timedelta | None = None
    keepalives: bool = True
    keepalives_idle: timedelta = DEFAULT_KEEPALIVES_IDLE
    target_session_attrs: TargetSessionAttrs = TargetSessionAttrs.ANY


class Config:
    """PostgreSQL connection configuration.

    Build one with the ``set_*``/``add_*`` methods (which return ``self`` so
    calls can be chained), with :meth:`apply` for ``key=value`` pairs, or by
    parsing a connection string with :func:`pgconninfo.parse_config`.

    Clones share their underlying :class:`ConfigState`; a setter replaces the
    record of the instance it is called on, so other clones keep observing
    the state they were created with.
    """

    __slots__ = ("_state", "_unix_sockets")

    def __init__(self, *, unix_sockets: bool | None = None) -> None:
        self._state = ConfigState()
        self._unix_sockets = UNIX_SOCKETS if unix_sockets is None else unix_sockets

    # -- snapshots -----------------------------------------------------------------

    @property
    def state(self) -> ConfigState:
        """Current immutable snapshot of every field."""

        return self._state

    @property
    def unix_sockets(self) -> bool:
        return self._unix_sockets

    def clone(self) -> Config:
        """Return a cheap copy sharing the current state."""

        other = Config.__new__(Config)
        other._state = self._state
        other._unix_sockets = self._unix_sockets
        return other

    __copy__ = clone

    def __deepcopy__(self, memo: dict[int, object]) -> Config:
        return self.clone()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Config):
            return NotImplemented
        return self._state == other._state

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        state = self._state
        password = None if state.password is None else "***"
        return (
            f"Config(user={state.user!r}, password={password}, dbname={state.dbname!r}, "
            f"options={state.options!r}, application_name={state.application_name!r}, "
            f"hosts={state.hosts!r}, ports={state.ports!r}, "
            f"connect_timeout={state.connect_timeout!r}, keepalives={state.keepalives!r}, "
            f"keepalives_idle={state.keepalives_idle!r}, "
            f"target_session_attrs={state.target_session_attrs.value!r})"
        )

    # -- accessors -----------------------------------------------------------------

    @property
    def user(self) -> str | None:
        return self._state.user

    @property
    def password(self) -> bytes | None:
        return self._state.password

    @property
    def dbname(self) -> str | None:
        return self._state.dbname

    @property
    def options(self) -> str | None:
        return self._state.options

    @property
    def application_name(self) -> str | None:
        return self._state.application_name

    @property
    def hosts(self) -> tuple[Host, ...]:
        return self._state.hosts

    @property
    def ports(self) -> tuple[int, ...]:
        return self._state.ports

    @property
    def connect_timeout(self) -> timedelta | None:
        return self._state.connect_timeout

    @property
    def keepalives(self) -> bool:
        return self._state.keepalives

    @property
    def keepalives_idle(self) -> timedelta:
        return self._state.keepalives_idle

    @property
    def target_session_attrs(self) -> TargetSessionAttrs:
        return self._state.target_session_attrs

    # -- typed setters -------------------------------------------------------------

    def set_user(self, user: str) -> Config:
        """Set the user to authenticate with."""

        return self._update(user=user)

    def set_password(self, password: str | bytes) -> Config:
        """Set the password; arbitrary bytes are accepted."""

        if isinstance(password, str):
            password = password.encode("utf-8")
        return self._update(password=bytes(password))

    def set_dbname(self, dbname: str) -> Config:
        return self._update(dbname=dbname)

    def set_options(self, options: str) -> Config:
        """Set the command line options sent to the server."""

        return self._update(options=options)

    def set_application_name(self, application_name: str) -> Config:
        return self._update(application_name=application_name)

    def add_host(self, host: str) -> Config:
        """Append a host.

        With Unix socket support, a host starting with ``/`` names the directory
        holding the server socket; anything else is a network host name.
        """

        return self._update(hosts=self._state.hosts + (self._host_from_text(host),))

    def add_host_path(self, path: str | bytes | os.PathLike[str]) -> Config:
        """Append a Unix socket directory; non UTF-8 byte paths are accepted."""

        return self._update(hosts=self._state.hosts + (UnixSocketHost(Path(os.fsdecode(path))),))

    def add_port(self, port: int) -> Config:
        """Append a port; pair ports with hosts by position."""

        if not 0 <= port <= _U16_MAX:
            raise ValueError(f"port out of range: {port}")
        return self._update(ports=self._state.ports + (port,))

    def set_connect_timeout(self, connect_timeout: timedelta) -> Config:
        """Set the limit applied to each socket-level connection attempt."""

        return self._update(connect_timeout=connect_timeout)

    def set_keepalives(self, keepalives: bool) -> Config:
        return self._update(keepalives=keepalives)

    def set_keepalives_idle(self, keepalives_idle: timedelta) -> Config:
        """Set the idle time before the first TCP keepalive probe."""

        return self._update(keepalives_idle=keepalives_idle)

    def set_target_session_attrs(self, target_session_attrs: TargetSessionAttrs) -> Config:
        return self._update(target_session_attrs=target_session_attrs)

    # -- keyed dispatch ------------------------------------------------------------

    def apply(self, key: str, value: str) -> None:
        """Apply one ``key=value`` connection parameter.

        The value is fully validated before any field changes, so a failing
        call leaves the configuration untouched.

        Raises:
            UnknownOptionError: ``key`` is not a connection parameter.
            InvalidValueError: ``value`` is malformed for ``key``.
        """

        LOG.debug("Applying connection parameter", extra={"key": key})
        if key == "user":
            self.set_user(value)
        elif key == "password":
            self.set_password(value)
        elif key == "dbname":
            self.set_dbname(value)
        elif key == "options":
            self.set_options(value)
        elif key == "application_name":
            self.set_application_name(value)
        elif key == "host":
            hosts = tuple(self._host_from_text(host) for host in value.split(","))
            self._update(hosts=self._state.hosts + hosts)
        elif key == "port":
            ports = tuple(_parse_port(port) for port in value.split(","))
            self._update(ports=self._state.ports + ports)
        elif key == "connect_timeout":
            seconds = _parse_int(value, key, _SIGNED_INT, _I64_MAX)
            if seconds > 0:
                self.set_connect_timeout(_seconds(seconds))
        elif key == "keepalives":
            self.set_keepalives(_parse_int(value, key, _UNSIGNED_INT, _U64_MAX) != 0)
        elif key == "keepalives_idle":
            seconds = _parse_int(value, key, _SIGNED_INT, _I64_MAX)
            if seconds > 0:
                self.set_keepalives_idle(_seconds(seconds))
        elif key == "target_session_attrs":
            try:
                attrs = TargetSessionAttrs(value)
            except ValueError:
                raise InvalidValueError(key) from None
            self.set_target_session_attrs(attrs)
        else:
            raise UnknownOptionError(key)

    # -- rendering -----------------------------------------------------------------

    def to_conninfo(self) -> str:
        """Render the configured fields as a key/value connection string.

        Defaults are omitted and every value is single-quoted.

        Raises:
            ValueError: the password is not valid UTF-8.
        """

        return " ".join(f"{key}={_quote(value)}" for key, value in self._conninfo_items())

    def _conninfo_items(self) -> list[tuple[str, str]]:
        state = self._state
        items: list[tuple[str, str]] = []
        if state.user is not None:
            items.append(("user", state.user))
        if state.password is not None:
            try:
                items.append(("password", state.password.decode("utf-8")))
            except UnicodeDecodeError as exc:
                raise ValueError("password is not valid UTF-8 and cannot be rendered") from exc
        for key in ("dbname", "options", "application_name"):
            value = getattr(state, key)
            if value is not None:
                items.append((key, value))
        if state.hosts:
            items.append(("host", ",".join(_host_text(host) for host in state.hosts)))
        if state.ports:
            items.append(("port", ",".join(str(port) for port in state.ports)))
        if state.connect_timeout is not None:
            items.append(("connect_timeout", str(int(state.connect_timeout.total_seconds()))))
        if not state.keepalives:
            items.append(("keepalives", "0"))
        if state.keepalives_idle != DEFAULT_KEEPALIVES_IDLE:
            items.append(("keepalives_idle", str(int(state.keepalives_idle.total_seconds()))))
        if state.target_session_attrs is not TargetSessionAttrs.ANY:
            items.append(("target_session_attrs", state.target_session_attrs.value))
        return items

    # -- helpers -------------------------------------------------------------------

    def _update(self, **changes: object) -> Config:
        self._state = replace(self._state, **changes)
        return self

    def _host_from_text(self, host: str) -> Host:
        if self._unix_sockets and host.startswith("/"):
            return UnixSocketHost(Path(host))
        return TcpHost(host)


def _parse_int(value: str, key: str, pattern: re.Pattern[str], maximum: int) -> int:
    if not pattern.fullmatch(value):
        raise InvalidValueError(key)
    number = int(value)
    if not -maximum - 1 <= number <= maximum:
        raise InvalidValueError(key)
    return number


def _parse_port(value: str) -> int:
    if not value:
        return DEFAULT_PORT
    return _parse_int(value, "port", _UNSIGNED_INT, _U16_MAX)


def _seconds(seconds: int) -> timedelta:
    # i64 seconds exceed timedelta's range; saturate at the largest duration.
    if seconds >= _MAX_TIMEDELTA_SECONDS:
        return timedelta.max
    return timedelta(seconds=seconds)


def _host_text(host: Host) -> str:
    if isinstance(host, UnixSocketHost):
        return os.fsdecode(host.path)
    return host.name


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


__all__ = ["Config", "ConfigState", "DEFAULT_KEEPALIVES_IDLE", "UNIX_SOCKETS"]
