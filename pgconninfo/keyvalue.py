"""Parser for libpq-style ``key=value`` connection strings.

Pairs are separated by whitespace and may have whitespace around ``=``.
Values that are empty or contain whitespace must be wrapped in ``'``; inside
any value a backslash takes the next character literally::

    host=localhost user=postgres password='secret with spaces' options=-c\\ x=y
"""

from __future__ import annotations

import logging
from typing import Callable, Iterator

from .config import Config
from .errors import ConnectionStringSyntaxError

LOG = logging.getLogger(__name__)


class KeyValueParser:
    """Scanner over a single key/value connection string."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def parameters(self) -> Iterator[tuple[str, str]]:
        """Yield ``(keyword, value)`` pairs until an empty keyword is reached.

        Like libpq, text after a stray ``=`` in keyword position is ignored.
        """

        while True:
            parameter = self._parameter()
            if parameter is None:
                return
            yield parameter

    def _parameter(self) -> tuple[str, str] | None:
        self._skip_ws()
        keyword = self._take_while(lambda c: not _is_whitespace(c) and c != "=")
        if not keyword:
            return None
        self._skip_ws()
        self._eat("=")
        self._skip_ws()
        return keyword, self._value()

    def _value(self) -> str:
        if self._eat_if("'"):
            value = self._quoted_value()
            self._eat("'")
            return value
        return self._simple_value()

    def _simple_value(self) -> str:
        chars: list[str] = []
        while (c := self._peek()) is not None and not _is_whitespace(c):
            self._pos += 1
            if c == "\\":
                if (escaped := self._next()) is not None:
                    chars.append(escaped)
            else:
                chars.append(c)
        if not chars:
            raise ConnectionStringSyntaxError("unexpected EOF", position=self._byte_offset(self._pos))
        return "".join(chars)

    def _quoted_value(self) -> str:
        chars: list[str] = []
        while (c := self._peek()) is not None:
            if c == "'":
                return "".join(chars)
            self._pos += 1
            if c == "\\":
                if (escaped := self._next()) is not None:
                    chars.append(escaped)
            else:
                chars.append(c)
        raise ConnectionStringSyntaxError("unterminated quoted connection parameter value")

    def _skip_ws(self) -> None:
        self._take_while(_is_whitespace)

    def _take_while(self, predicate: Callable[[str], bool]) -> str:
        start = self._pos
        while (c := self._peek()) is not None and predicate(c):
            self._pos += 1
        return self._text[start : self._pos]

    def _eat(self, target: str) -> None:
        position = self._pos
        c = self._next()
        if c is None:
            raise ConnectionStringSyntaxError("unexpected EOF", position=self._byte_offset(position))
        if c != target:
            offset = self._byte_offset(position)
            raise ConnectionStringSyntaxError(
                f"unexpected character at byte {offset}: expected '{target}' but got '{c}'",
                position=offset,
            )

    def _eat_if(self, target: str) -> bool:
        if self._peek() == target:
            self._pos += 1
            return True
        return False

    def _peek(self) -> str | None:
        if self._pos < len(self._text):
            return self._text[self._pos]
        return None

    def _next(self) -> str | None:
        c = self._peek()
        if c is not None:
            self._pos += 1
        return c

    def _byte_offset(self, index: int) -> int:
        return len(self._text[:index].encode("utf-8", "surrogatepass"))


# Unicode White_Space; str.isspace also matches the information separators.
_NOT_WHITESPACE = frozenset("\x1c\x1d\x1e\x1f")


def _is_whitespace(c: str) -> bool:
    return c.isspace() and c not in _NOT_WHITESPACE


def parse_keyvalue(text: str, *, config: Config | None = None) -> Config:
    """Parse a key/value connection string into a :class:`Config`.

    Parsing stops at the first grammar or parameter error.
    """

    config = config if config is not None else Config()
    for key, value in KeyValueParser(text).parameters():
        config.apply(key, value)
    LOG.debug("Parsed key/value connection string", extra={"hosts": len(config.hosts)})
    return config


__all__ = ["KeyValueParser", "parse_keyvalue"]
