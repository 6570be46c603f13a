"""Typed failures raised by the IPFS clients.

Every transport failure is classified into exactly one ``IpfsError`` subclass
by :func:`map_http_exception`. Two further kinds, ``InvalidResponseError`` and
``IpldParseError``, are raised after a successful HTTP exchange when the body
does not have the expected shape.
"""
from __future__ import annotations

import json
from typing import Any, Optional

import requests
from urllib3.exceptions import ReadTimeoutError

DAEMON_NAME = "IPFS daemon"


class IpfsError(Exception):
    """
    Base class for all radicle-ipfs errors.

    The rendered message always starts with ``"ipfs: "`` so callers can show
    any error without adding their own prefix.
    """

    def __init__(self, message: str):
        super().__init__(f"ipfs: {message}")


class DaemonError(IpfsError):
    """
    Raised when the daemon answers with a structured error body.

    Attributes:
        message: The daemon's ``Message`` field, verbatim.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DaemonTimeoutError(IpfsError):
    """
    Raised when the daemon did not respond within the response-wait deadline.

    Attributes:
        path: API path under ``/api/v0/`` that timed out.
    """

    def __init__(self, path: str):
        super().__init__(f"{DAEMON_NAME} took too long to respond for {path}")
        self.path = path


class NoDaemonError(IpfsError):
    """
    Raised when no connection to the daemon could be established.

    Attributes:
        path: API path of the failed request, kept for logging only.
    """

    def __init__(self, path: Optional[str] = None):
        super().__init__(f"Cannot connect to {DAEMON_NAME}")
        self.path = path


class UnclassifiedDaemonError(IpfsError):
    """
    Raised for any other transport failure without an extractable message.

    Attributes:
        path: API path of the failed request.
    """

    def __init__(self, path: str):
        super().__init__(f"{DAEMON_NAME} failed with no error message")
        self.path = path


class InvalidResponseError(IpfsError):
    """
    Raised when a response body is not JSON or lacks the expected shape.

    Attributes:
        path: API path the response was obtained from.
        detail: The raw parse diagnostic.
    """

    def __init__(self, path: str, detail: str):
        super().__init__(f"Cannot parse {DAEMON_NAME} response for {path}: {detail}")
        self.path = path
        self.detail = detail


class IpldParseError(IpfsError):
    """
    Raised when a ``dag/get`` document cannot be converted to the requested type.

    The body was well-formed JSON; only the conversion failed.

    Attributes:
        address: The address that was fetched.
        detail: The conversion diagnostic.
    """

    def __init__(self, address: Any, detail: str):
        super().__init__(f"Failed to parse IPLD document {address}: {detail}")
        self.address = address
        self.detail = detail


def error_message(body: Optional[bytes]) -> Optional[str]:
    """Return the top-level ``Message`` string of a JSON error body, if any."""
    if not body:
        return None
    try:
        value = json.loads(body)
    except ValueError:
        return None
    if not isinstance(value, dict):
        return None
    message = value.get("Message")
    return message if isinstance(message, str) else None


def _is_read_timeout(exc: requests.RequestException) -> bool:
    if isinstance(exc, requests.ReadTimeout):
        return True
    # Body reads of a streamed response wrap the urllib3 timeout in ConnectionError.
    return bool(exc.args) and isinstance(exc.args[0], ReadTimeoutError)


def map_http_exception(path: str, exc: requests.RequestException) -> IpfsError:
    """
    Classify a ``requests`` failure into an ``IpfsError``.

    A structured daemon error wins over every other kind, then timeouts, then
    connection failures. Everything else is unclassified.

    Args:
        path: API path of the failed request.
        exc: The exception raised by ``requests``.

    Returns:
        The matching ``IpfsError`` instance (not raised).
    """
    response = getattr(exc, "response", None)
    if response is not None:
        message = error_message(response.content)
        if message is not None:
            return DaemonError(message)
    if _is_read_timeout(exc):
        return DaemonTimeoutError(path)
    # ConnectTimeout is also a Timeout, but nothing was ever reached.
    if isinstance(exc, requests.ConnectionError):
        return NoDaemonError(path)
    return UnclassifiedDaemonError(path)
