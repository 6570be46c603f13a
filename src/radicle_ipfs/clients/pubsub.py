"""Publish/subscribe over the daemon's ``pubsub`` endpoints.

``subscribe`` blocks the calling thread for as long as the subscription is
open. To stop it, hand it a :class:`CancelToken` and call
:meth:`CancelToken.cancel` from another thread (or from the handler itself).
"""
from __future__ import annotations

import functools
import logging
import socket
import threading
from typing import Any, Callable, Iterator, List, Optional

import requests
from pydantic import ValidationError
from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool

from radicle_ipfs.clients.base_client import BaseClient
from radicle_ipfs.clients.errors import IpfsError, InvalidResponseError, map_http_exception
from radicle_ipfs.config import IpfsConfig
from radicle_ipfs.types import PubsubMessage
from radicle_ipfs.utils.json_stream import JsonStreamDecoder, JsonStreamError

logger = logging.getLogger(__name__)

SUBSCRIBE_PATH = "pubsub/sub"
PUBLISH_PATH = "pubsub/pub"

MessageHandler = Callable[[PubsubMessage], None]


class CancelToken:
    """A caller-owned, thread-safe cancellation signal.

    Close hooks registered by a running subscription are called exactly once
    when the token is cancelled, which interrupts a read blocked on the socket.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._hooks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation. Safe to call more than once and from any thread."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            hooks, self._hooks = self._hooks, []
        for hook in hooks:
            hook()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; returns ``cancelled``."""
        return self._event.wait(timeout)

    def add_hook(self, hook: Callable[[], None]) -> None:
        """Register ``hook``; runs it at once if the token is already cancelled."""
        with self._lock:
            if not self._event.is_set():
                self._hooks.append(hook)
                return
        hook()

    def remove_hook(self, hook: Callable[[], None]) -> None:
        with self._lock:
            if hook in self._hooks:
                self._hooks.remove(hook)


def _shutdown_socket(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        logger.debug("Could not shut down subscription socket: %s", e)


class _SocketWatch:
    """Sockets opened for one subscription, so cancellation can shut them down.

    This covers the wait for response headers, before any ``Response``
    exists to interrupt.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sockets: List[socket.socket] = []
        self._closed = False

    def opened(self, sock: socket.socket) -> None:
        with self._lock:
            self._sockets.append(sock)
            closed = self._closed
        if closed:
            _shutdown_socket(sock)

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
            sockets = list(self._sockets)
        for sock in sockets:
            _shutdown_socket(sock)


class _WatchedConnectionMixin:
    watch: Optional[_SocketWatch] = None

    def connect(self) -> None:
        super().connect()
        if self.watch is not None and self.sock is not None:
            self.watch.opened(self.sock)


class _WatchedHTTPConnection(_WatchedConnectionMixin, HTTPConnection):
    pass


class _WatchedHTTPSConnection(_WatchedConnectionMixin, HTTPSConnection):
    pass


class _WatchedPoolMixin:
    def __init__(self, *args: Any, watch: _SocketWatch, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._watch = watch

    def _new_conn(self):
        conn = super()._new_conn()
        conn.watch = self._watch
        return conn


class _WatchedHTTPConnectionPool(_WatchedPoolMixin, HTTPConnectionPool):
    ConnectionCls = _WatchedHTTPConnection


class _WatchedHTTPSConnectionPool(_WatchedPoolMixin, HTTPSConnectionPool):
    ConnectionCls = _WatchedHTTPSConnection


class _WatchedAdapter(HTTPAdapter):
    """Transport adapter whose connections report their sockets to a ``_SocketWatch``."""

    def __init__(self, watch: _SocketWatch) -> None:
        self._watch = watch
        super().__init__()

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": functools.partial(_WatchedHTTPConnectionPool, watch=self._watch),
            "https": functools.partial(_WatchedHTTPSConnectionPool, watch=self._watch),
        }


def _subscription_session(watch: _SocketWatch) -> requests.Session:
    session = requests.Session()
    adapter = _WatchedAdapter(watch)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _interrupt(response: requests.Response) -> None:
    """Shut down the socket under ``response`` so a blocked read returns."""
    try:
        response.raw.shutdown()
    except (OSError, ValueError, RuntimeError) as e:
        # Connection already gone; the reader sees end of stream either way.
        logger.debug("Could not shut down subscription socket: %s", e)


def decode_message(value: Any) -> PubsubMessage:
    """
    Validate one decoded JSON value from the ``pubsub/sub`` stream.

    Raises:
        InvalidResponseError: If the value is not a valid pubsub message,
            including when a base64 field does not decode.
    """
    try:
        return PubsubMessage.model_validate(value)
    except ValidationError as e:
        raise InvalidResponseError(SUBSCRIBE_PATH, str(e)) from e


class PubsubClient(BaseClient):
    """Client for the daemon's real-time publish/subscribe bus."""

    def __init__(self, config: Optional[IpfsConfig] = None) -> None:
        super().__init__(config=config)

    def publish(self, topic: str, data: bytes) -> None:
        """
        Publish ``data`` on ``topic``.

        Success means the daemon accepted the request; the body is not parsed.
        """
        self._post_raw(PUBLISH_PATH, {"arg": topic}, "data", data)

    def subscribe(
        self,
        topic: str,
        handler: MessageHandler,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        """
        Subscribe to ``topic`` and call ``handler`` on every message.

        Messages are delivered synchronously and in arrival order; the next
        message is not parsed until ``handler`` returns. The call blocks until
        the daemon ends the stream or ``cancel`` is cancelled, and the
        connection is released on every exit path.

        Args:
            topic: Topic to subscribe to.
            handler: Called with each ``PubsubMessage``. Exceptions it raises
                end the subscription and propagate unchanged.
            cancel: Token that stops the subscription when cancelled.

        Raises:
            InvalidResponseError: If the stream is not valid JSON or a message
                cannot be decoded. The subscription is aborted, not skipped.
            DaemonError, DaemonTimeoutError, NoDaemonError, UnclassifiedDaemonError:
                On transport failures before cancellation.
        """
        cancel = cancel if cancel is not None else CancelToken()
        if cancel.cancelled:
            return

        params = {"arg": topic, "encoding": "json", "stream-channels": "true"}
        watch = _SocketWatch()
        response: Optional[requests.Response] = None

        def hook() -> None:
            watch.shutdown()
            if response is not None:
                _interrupt(response)

        # The hook also covers the wait for response headers.
        cancel.add_hook(hook)
        session = _subscription_session(watch)
        try:
            try:
                response = self._stream(SUBSCRIBE_PATH, params, session=session)
            except IpfsError as e:
                if cancel.cancelled:
                    logger.debug("Subscription to topic %r cancelled before headers: %s", topic, e)
                    return
                raise
            logger.debug("Subscribed to topic %r", topic)
            decoder = JsonStreamDecoder(max_buffer=self._config.max_stream_buffer)
            for chunk in self._chunks(response, cancel):
                for value in self._feed(decoder, chunk):
                    if cancel.cancelled:
                        return
                    handler(decode_message(value))
            if cancel.cancelled:
                return
            for value in self._feed(decoder, None):
                handler(decode_message(value))
        finally:
            cancel.remove_hook(hook)
            if response is not None:
                response.close()
            session.close()
            logger.debug("Subscription to topic %r closed", topic)

    @staticmethod
    def _feed(decoder: JsonStreamDecoder, chunk: Optional[bytes]) -> List[Any]:
        try:
            return decoder.feed(chunk) if chunk is not None else decoder.close()
        except JsonStreamError as e:
            raise InvalidResponseError(SUBSCRIBE_PATH, str(e)) from e

    @staticmethod
    def _chunks(response: requests.Response, cancel: CancelToken) -> Iterator[bytes]:
        """Yield body chunks until the stream ends or cancellation is observed."""
        chunks = response.iter_content(chunk_size=None)
        while not cancel.cancelled:
            try:
                chunk = next(chunks)
            except StopIteration:
                return
            except OSError as e:
                # requests.RequestException is an OSError too.
                if cancel.cancelled:
                    logger.debug("Subscription read interrupted by cancellation: %s", e)
                    return
                if isinstance(e, requests.RequestException):
                    error = map_http_exception(SUBSCRIBE_PATH, e)
                    logger.warning("Subscription stream failed: %s", error)
                    raise error from e
                raise
            if chunk:
                yield chunk
