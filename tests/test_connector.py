"""Tests for the asyncpg connector adapter."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest

from pgconninfo.config import Config
from pgconninfo.connector import (
    AsyncpgConnector,
    ConnectError,
    ConnectTarget,
    connect_kwargs,
    connect_targets,
    server_settings,
)
from pgconninfo.models import TargetSessionAttrs, TcpHost, UnixSocketHost
from pgconninfo.parse import parse_config


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def test_targets_default_port_for_every_host() -> None:
    config = parse_config("host=a,b")

    assert connect_targets(config) == (ConnectTarget(TcpHost("a"), 5432), ConnectTarget(TcpHost("b"), 5432))


def test_targets_share_a_single_port() -> None:
    config = parse_config("host=a,b port=6543")

    assert [target.port for target in connect_targets(config)] == [6543, 6543]


def test_targets_pair_ports_by_position() -> None:
    config = parse_config("host=a,b,c port=1,,3")

    assert [(target.address, target.port) for target in connect_targets(config)] == [
        ("a", 1),
        ("b", 5432),
        ("c", 3),
    ]


def test_targets_reject_mismatched_port_count() -> None:
    with pytest.raises(ConnectError, match="invalid number of ports"):
        connect_targets(parse_config("host=a,b,c port=1,2"))


def test_targets_require_a_host() -> None:
    with pytest.raises(ConnectError, match="host missing"):
        connect_targets(parse_config("user=postgres"))


def test_unix_socket_target_address_is_the_directory() -> None:
    target = ConnectTarget(UnixSocketHost(Path("/run/postgresql")), 5432)

    assert target.address == "/run/postgresql"
    assert "unix socket" in target.describe()


def test_connect_kwargs_maps_fields() -> None:
    config = parse_config(
        "host=db port=6000 user=app password=secret dbname=main connect_timeout=7 application_name=report"
    )
    (target,) = connect_targets(config)

    kwargs = connect_kwargs(config, target)

    assert kwargs == {
        "host": "db",
        "port": 6000,
        "user": "app",
        "password": "secret",
        "database": "main",
        "timeout": 7.0,
        "server_settings": {"application_name": "report"},
    }


def test_connect_kwargs_uses_default_timeout_only_when_unset() -> None:
    config = Config().add_host("db")
    (target,) = connect_targets(config)

    assert connect_kwargs(config, target, default_timeout=3.0)["timeout"] == 3.0
    assert "timeout" not in connect_kwargs(config, target)
    config.set_connect_timeout(timedelta(seconds=9))
    assert connect_kwargs(config, target, default_timeout=3.0)["timeout"] == 9.0


def test_connect_kwargs_rejects_binary_password() -> None:
    config = Config().add_host("db").set_password(b"\xff")
    (target,) = connect_targets(config)

    with pytest.raises(ConnectError):
        connect_kwargs(config, target)


def test_server_settings_parse_options_flags() -> None:
    config = Config().set_options(r"-c search_path=app -cstatement_timeout=5s --lock-timeout=1s -c x=a\ b")

    assert server_settings(config) == {
        "search_path": "app",
        "statement_timeout": "5s",
        "lock_timeout": "1s",
        "x": "a b",
    }


@pytest.mark.parametrize("options", ["-c", "verbose", "-c noequals"])
def test_server_settings_reject_unsupported_options(options: str) -> None:
    with pytest.raises(ConnectError):
        server_settings(Config().set_options(options))


class _FakeConnection:
    def __init__(self, read_only: str = "off") -> None:
        self.read_only = read_only
        self.closed = False

    async def fetchval(self, query: str) -> str:
        assert query == "SHOW transaction_read_only"
        return self.read_only

    async def close(self) -> None:
        self.closed = True


@pytest.mark.anyio
async def test_connector_fails_over_to_next_host(monkeypatch: pytest.MonkeyPatch) -> None:
    attempts: list[tuple[str, int]] = []
    connection = _FakeConnection()

    async def _connect(**kwargs: Any) -> _FakeConnection:
        attempts.append((kwargs["host"], kwargs["port"]))
        if kwargs["host"] == "down":
            raise OSError("connection refused")
        return connection

    monkeypatch.setattr("pgconninfo.connector.asyncpg.connect", _connect)

    result = await AsyncpgConnector().connect(parse_config("host=down,up port=1,2 user=app"))

    assert result is connection
    assert attempts == [("down", 1), ("up", 2)]


@pytest.mark.anyio
async def test_connector_skips_read_only_sessions(monkeypatch: pytest.MonkeyPatch) -> None:
    replica = _FakeConnection(read_only="on")
    primary = _FakeConnection(read_only="off")
    connections = {"replica": replica, "primary": primary}

    async def _connect(**kwargs: Any) -> _FakeConnection:
        return connections[kwargs["host"]]

    monkeypatch.setattr("pgconninfo.connector.asyncpg.connect", _connect)
    config = parse_config("host=replica,primary target_session_attrs=read-write")

    result = await AsyncpgConnector().connect(config)

    assert result is primary
    assert replica.closed is True
    assert primary.closed is False


@pytest.mark.anyio
async def test_connector_does_not_check_sessions_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    replica = _FakeConnection(read_only="on")

    async def _connect(**kwargs: Any) -> _FakeConnection:
        return replica

    monkeypatch.setattr("pgconninfo.connector.asyncpg.connect", _connect)

    result = await AsyncpgConnector().connect(parse_config("host=replica"))

    assert result is replica
    assert parse_config("host=replica").target_session_attrs is TargetSessionAttrs.ANY


@pytest.mark.anyio
async def test_connector_raises_when_every_host_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _connect(**kwargs: Any) -> None:
        raise OSError("boom")

    monkeypatch.setattr("pgconninfo.connector.asyncpg.connect", _connect)

    with pytest.raises(ConnectError, match="2 host") as excinfo:
        await AsyncpgConnector().connect(parse_config("host=a,b"))

    assert isinstance(excinfo.value.__cause__, OSError)


@pytest.mark.anyio
async def test_connector_does_not_mutate_config(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _connect(**kwargs: Any) -> _FakeConnection:
        return _FakeConnection()

    monkeypatch.setattr("pgconninfo.connector.asyncpg.connect", _connect)
    config = parse_config("host=db")
    before = config.state

    await AsyncpgConnector().connect(config)

    assert config.state is before
