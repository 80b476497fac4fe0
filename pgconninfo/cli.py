"""Command line inspector for connection strings."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Sequence

from .config import Config
from .connector import AsyncpgConnector, ConnectError
from .errors import ConfigParseError
from .models import UnixSocketHost
from .parse import parse_config
from .profiles import ProfileNotFoundError, load_profiles

LOG = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pgconninfo",
        description="Parse a PostgreSQL connection string and show the resulting settings.",
    )
    parser.add_argument("conninfo", nargs="?", help="key/value string or postgres:// URL")
    parser.add_argument("--profile", help="use a profile from the profiles file instead")
    output = parser.add_mutually_exclusive_group()
    output.add_argument("--json", action="store_true", help="print the settings as JSON")
    output.add_argument("--conninfo", dest="render", action="store_true", help="print a normalized key/value string")
    parser.add_argument("--connect", action="store_true", help="open and close a connection to check the settings")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser


def describe(config: Config) -> dict[str, object]:
    """JSON-friendly view of a configuration with the password masked."""

    return {
        "user": config.user,
        "password": None if config.password is None else "***",
        "dbname": config.dbname,
        "options": config.options,
        "application_name": config.application_name,
        "hosts": [
            {"unix": os.fsdecode(host.path)} if isinstance(host, UnixSocketHost) else {"tcp": host.name}
            for host in config.hosts
        ],
        "ports": list(config.ports),
        "connect_timeout": None if config.connect_timeout is None else config.connect_timeout.total_seconds(),
        "keepalives": config.keepalives,
        "keepalives_idle": config.keepalives_idle.total_seconds(),
        "target_session_attrs": config.target_session_attrs.value,
    }


def main(argv: Sequence[str] | None = None) -> int:
    """Run the inspector; returns the process exit status."""

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.conninfo is not None and args.profile is not None:
        parser.error("CONNINFO and --profile cannot be used together")
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _resolve_config(args.conninfo, args.profile)
    except ConfigParseError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except ProfileNotFoundError as exc:
        print(f"error: unknown profile '{exc.args[0]}'", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(describe(config), indent=2))
    elif args.render:
        try:
            print(config.to_conninfo())
        except ValueError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2
    else:
        for key, value in describe(config).items():
            print(f"{key}: {value}")

    if args.connect:
        try:
            asyncio.run(_check_connection(config))
        except ConnectError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
        print("connection ok")
    return 0


def _resolve_config(conninfo: str | None, profile_name: str | None) -> Config:
    if conninfo is not None:
        return parse_config(conninfo)
    profiles = load_profiles()
    profile = profiles.get(profile_name) if profile_name else profiles.active()
    if profile is None:
        return Config()
    LOG.debug("Using profile", extra={"profile": profile.name})
    return profile.to_config()


async def _check_connection(config: Config) -> None:
    conn = await AsyncpgConnector().connect(config)
    await conn.close()


__all__ = ["build_parser", "describe", "main"]
