"""Percent-decoding helpers used by the URL grammar."""

from __future__ import annotations

from urllib.parse import unquote_to_bytes

from .errors import DecodeError


def decode_bytes(value: str) -> bytes:
    """Decode ``%XX`` escapes into raw bytes.

    Malformed escapes such as ``%zz`` or a trailing ``%`` are kept verbatim.
    """

    return unquote_to_bytes(value)


def decode_text(value: str) -> str:
    """Decode ``%XX`` escapes and require the result to be UTF-8 text."""

    try:
        return decode_bytes(value).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(exc) from exc


__all__ = ["decode_bytes", "decode_text"]
