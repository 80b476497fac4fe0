"""Parser for ``postgres://`` and ``postgresql://`` connection URLs.

The grammar is intentionally loose and mirrors what libpq accepts rather than
RFC 3986::

    postgresql://[user[:password]@][host[:port]][,host[:port]]...[/dbname][?key=value[&key=value]...]

Unix socket directories go in the host section percent-encoded
(``%2Fvar%2Frun%2Fpostgresql``) or in a ``host`` query parameter, since the
path section names the database. IPv6 literals must be bracketed.
"""

from __future__ import annotations

import logging

from .config import Config
from .errors import ConnectionStringSyntaxError, InvalidValueError
from .percent import decode_bytes, decode_text

LOG = logging.getLogger(__name__)

URL_PREFIXES = ("postgres://", "postgresql://")


def strip_url_prefix(text: str) -> str | None:
    """Return ``text`` without its URL scheme, or ``None`` if it is not a URL."""

    for prefix in URL_PREFIXES:
        if text.startswith(prefix):
            return text[len(prefix) :]
    return None


class UrlParser:
    """Consumes the sections of a connection URL left to right."""

    def __init__(self, text: str, config: Config) -> None:
        rest = strip_url_prefix(text)
        if rest is None:
            raise ValueError("not a postgres:// or postgresql:// URL")
        self._text = text
        self._rest = rest
        self._config = config

    def parse(self) -> Config:
        self._parse_credentials()
        self._parse_hosts()
        self._parse_path()
        self._parse_query()
        return self._config

    def _parse_credentials(self) -> None:
        credentials = self._take_until("@")
        if credentials is None:
            return
        self._eat_char()

        user, sep, password = credentials.partition(":")
        self._config.set_user(decode_text(user))
        if sep:
            self._config.set_password(decode_bytes(password))

    def _parse_hosts(self) -> None:
        hosts = self._take_until("/?")
        if hosts is None:
            hosts = self._take_all()
        if not hosts:
            return

        for chunk in hosts.split(","):
            port: str | None
            if chunk.startswith("["):
                end = chunk.find("]")
                if end == -1:
                    raise InvalidValueError("host")
                host = chunk[1:end]
                remaining = chunk[end + 1 :]
                if remaining.startswith(":"):
                    port = remaining[1:]
                elif not remaining:
                    port = None
                else:
                    raise InvalidValueError("host")
            else:
                host, sep, port_text = chunk.partition(":")
                port = port_text if sep else None

            self._host_param(host)
            self._config.apply("port", decode_text(port if port is not None else "5432"))

    def _parse_path(self) -> None:
        if not self._rest.startswith("/"):
            return
        self._eat_char()

        dbname = self._take_until("?")
        if dbname is None:
            dbname = self._take_all()
        if dbname:
            self._config.set_dbname(decode_text(dbname))

    def _parse_query(self) -> None:
        if not self._rest.startswith("?"):
            return
        self._eat_char()

        while self._rest:
            equals = self._rest.find("=")
            ampersand = self._rest.find("&")
            if equals == -1 or -1 < ampersand < equals:
                raise ConnectionStringSyntaxError("unterminated parameter", position=self._offset())
            key = decode_text(self._rest[:equals])
            self._rest = self._rest[equals + 1 :]

            value = self._take_until("&")
            if value is None:
                value = self._take_all()
            else:
                self._eat_char()

            if key == "host":
                self._host_param(value)
            else:
                self._config.apply(key, decode_text(value))

    def _host_param(self, text: str) -> None:
        if not self._config.unix_sockets:
            self._config.apply("host", decode_text(text))
            return
        decoded = decode_bytes(text)
        if decoded.startswith(b"/"):
            self._config.add_host_path(decoded)
        else:
            self._config.add_host(decode_text(text))

    def _take_until(self, stops: str) -> str | None:
        found = [index for index in (self._rest.find(stop) for stop in stops) if index != -1]
        if not found:
            return None
        end = min(found)
        head, self._rest = self._rest[:end], self._rest[end:]
        return head

    def _take_all(self) -> str:
        rest, self._rest = self._rest, ""
        return rest

    def _eat_char(self) -> None:
        self._rest = self._rest[1:]

    def _offset(self) -> int:
        consumed = self._text[: len(self._text) - len(self._rest)]
        return len(consumed.encode("utf-8", "surrogatepass"))


def parse_url(text: str, *, config: Config | None = None) -> Config | None:
    """Parse a connection URL, or return ``None`` when ``text`` is not one."""

    if strip_url_prefix(text) is None:
        return None
    config = UrlParser(text, config if config is not None else Config()).parse()
    LOG.debug("Parsed connection URL", extra={"hosts": len(config.hosts)})
    return config


__all__ = ["URL_PREFIXES", "UrlParser", "parse_url", "strip_url_prefix"]
