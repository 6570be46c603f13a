"""Incremental decoding of back-to-back JSON values from a byte stream.

The daemon's streaming endpoints write one JSON value after another with no
guaranteed delimiter, and HTTP chunk boundaries fall anywhere, including in
the middle of a multi-byte UTF-8 character. ``JsonStreamDecoder`` buffers
input and hands out each value as soon as it is complete.
"""
from __future__ import annotations

import codecs
import json
import re
from typing import Any, List, Optional

_WHITESPACE = " \t\n\r"
_LITERALS = ("true", "false", "null", "NaN", "Infinity", "-Infinity")
# What may still follow the digits already read, or precede them.
_NUMBER_FRAGMENT = re.compile(r"-?\d*(\.\d*)?([eE][-+]?\d*)?")
_NUMBER_TAIL = re.compile(r"(\.\d*)?([eE][-+]?\d*)?")


class JsonStreamError(ValueError):
    """Raised when the stream can never become valid JSON."""


def _is_incomplete(err: json.JSONDecodeError, buffer: str) -> bool:
    """True if ``err`` could be caused by input that simply stops too early."""
    tail = buffer[err.pos:]
    if not tail:
        return True
    if err.msg.startswith("Unterminated string"):
        return True
    if err.msg.startswith("Invalid \\"):
        return len(tail) < 6
    if any(literal.startswith(tail) for literal in _LITERALS):
        return True
    return _NUMBER_FRAGMENT.fullmatch(tail) is not None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class JsonStreamDecoder:
    """Splits a byte stream into JSON values.

    Example:
        >>> decoder = JsonStreamDecoder()
        >>> decoder.feed(b'{"a": 1}{"a"')
        [{'a': 1}]
        >>> decoder.feed(b': 2}')
        [{'a': 2}]
    """

    def __init__(self, max_buffer: int = 8 * 1024 * 1024) -> None:
        self._decoder = json.JSONDecoder()
        self._utf8 = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""
        self._max_buffer = max_buffer
        self._error: Optional[JsonStreamError] = None
        # Set while the buffer ends inside a string; only a '"' can end it.
        self._in_string = False

    @property
    def pending(self) -> str:
        """Input received but not yet decoded into a value."""
        return self._buffer

    def feed(self, chunk: bytes) -> List[Any]:
        """Adds ``chunk`` and returns every value completed by it, in order.

        Raises:
            JsonStreamError: If the input is malformed or an incomplete value
                grows beyond ``max_buffer``.
        """
        if self._error is not None:
            raise self._error
        try:
            text = self._utf8.decode(chunk)
        except UnicodeDecodeError as e:
            raise JsonStreamError(f"invalid UTF-8 in stream: {e}") from e
        self._buffer += text
        if self._in_string and '"' not in text:
            self._check_size()
            return []
        return self._drain(final=False)

    def _check_size(self) -> None:
        if len(self._buffer) > self._max_buffer:
            raise JsonStreamError(f"incomplete JSON value exceeds {self._max_buffer} characters")

    def close(self) -> List[Any]:
        """Signals end of input and returns any last value.

        Raises:
            JsonStreamError: If the stream ended in the middle of a value.
        """
        if self._error is not None:
            raise self._error
        try:
            self._buffer += self._utf8.decode(b"", final=True)
        except UnicodeDecodeError as e:
            raise JsonStreamError(f"stream ended inside a UTF-8 sequence: {e}") from e
        values = self._drain(final=True)
        if self._buffer:
            raise JsonStreamError(f"stream ended inside a JSON value: {self._buffer[:80]!r}")
        return values

    def _drain(self, *, final: bool) -> List[Any]:
        values = []
        self._in_string = False
        buffer = self._buffer.lstrip(_WHITESPACE)
        while buffer:
            try:
                value, end = self._decoder.raw_decode(buffer)
            except json.JSONDecodeError as e:
                if final:
                    break
                if not _is_incomplete(e, buffer):
                    error = JsonStreamError(f"malformed JSON in stream: {e}")
                    error.__cause__ = e
                    if not values:
                        raise error
                    # Hand out what was complete first; fail on the next call.
                    self._error = error
                    break
                self._in_string = e.msg.startswith("Unterminated string")
                if len(buffer) > self._max_buffer:
                    raise JsonStreamError(
                        f"incomplete JSON value exceeds {self._max_buffer} characters"
                    ) from e
                break
            if not final and _is_number(value) and _NUMBER_TAIL.fullmatch(buffer[end:]):
                break
            values.append(value)
            buffer = buffer[end:].lstrip(_WHITESPACE)
        self._buffer = buffer
        return values
