"""Entry point choosing between the URL and key/value grammars."""

from __future__ import annotations

from .config import Config
from .keyvalue import parse_keyvalue
from .url import parse_url


def parse_config(text: str, *, unix_sockets: bool | None = None) -> Config:
    """Parse a connection string in either supported format.

    URLs starting with ``postgres://`` or ``postgresql://`` use the URL
    grammar; anything else is read as ``key=value`` pairs.

    Raises:
        ConfigParseError: the string is malformed or names an invalid parameter.
    """

    config = Config(unix_sockets=unix_sockets)
    parsed = parse_url(text, config=config)
    if parsed is not None:
        return parsed
    return parse_keyvalue(text, config=config)


__all__ = ["parse_config"]
