import logging
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from radicle_ipfs.clients.errors import InvalidResponseError, map_http_exception
from radicle_ipfs.config import IpfsConfig

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

Params = Dict[str, str]


class BaseClient:
    """Common functionality for all IPFS clients: config, HTTP requests and error mapping."""

    def __init__(self, *, config: Optional[IpfsConfig] = None) -> None:
        """
        Initialize the BaseClient.

        Args:
            config: Daemon connection settings. Defaults to ``IpfsConfig()``;
                use ``IpfsConfig.from_env()`` to honour ``RAD_IPFS_API_URL``.
        """
        self._config = config if config is not None else IpfsConfig()

    @property
    def config(self) -> IpfsConfig:
        return self._config

    @property
    def _timeout(self) -> Tuple[float, float]:
        return self._config.connect_timeout, self._config.timeout

    def _send(self, path: str, send: Callable[[], requests.Response]) -> requests.Response:
        """
        Perform one HTTP exchange and map any failure to an ``IpfsError``.

        Args:
            path: API path under ``/api/v0/``, used in error context.
            send: Issues the request and returns the response.

        Returns:
            The successful (2xx) response.

        Raises:
            DaemonError, DaemonTimeoutError, NoDaemonError, UnclassifiedDaemonError
        """
        try:
            response = send()
            response.raise_for_status()
        except requests.RequestException as e:
            error = map_http_exception(path, e)
            logger.warning("IPFS request to %s failed: %s", path, error)
            raise error from e
        return response

    def _get_raw(self, path: str, params: Optional[Params] = None) -> requests.Response:
        url = self._config.api_url_for(path)
        logger.debug("GET %s params=%s", url, params)
        return self._send(path, lambda: requests.get(url, params=params, timeout=self._timeout))

    def _post_raw(
        self,
        path: str,
        params: Optional[Params],
        field: str,
        payload: bytes,
    ) -> requests.Response:
        """
        POST ``payload`` as the only multipart field, with optional query params.

        The response body is returned uninterpreted.
        """
        url = self._config.api_url_for(path)
        logger.debug("POST %s params=%s field=%s bytes=%d", url, params, field, len(payload))
        return self._send(
            path,
            lambda: requests.post(url, params=params, files={field: payload}, timeout=self._timeout),
        )

    def _get(self, path: str, params: Optional[Params] = None) -> Any:
        """GET with query params and return the parsed JSON body."""
        return self._json_body(path, self._get_raw(path, params))

    def _post(self, path: str, params: Optional[Params], field: str, payload: bytes) -> Any:
        """POST a single multipart field and return the parsed JSON body."""
        return self._json_body(path, self._post_raw(path, params, field, payload))

    def _stream(
        self,
        path: str,
        params: Optional[Params] = None,
        session: Optional[requests.Session] = None,
    ) -> requests.Response:
        """
        Open a streaming GET. The caller owns the returned response and must close it.

        Uses ``stream_read_timeout`` as the idle-read deadline instead of the
        one-shot ``timeout``. The request goes through ``session`` when given.
        """
        url = self._config.api_url_for(path)
        timeout = (self._config.connect_timeout, self._config.stream_read_timeout)
        logger.debug("GET (stream) %s params=%s", url, params)
        http = session if session is not None else requests
        opened = []

        def send() -> requests.Response:
            response = http.get(url, params=params, stream=True, timeout=timeout)
            opened.append(response)
            return response

        try:
            return self._send(path, send)
        except Exception:
            for response in opened:
                response.close()
            raise

    @staticmethod
    def _json_body(path: str, response: requests.Response) -> Any:
        """
        Parse the response body as JSON.

        Raises:
            InvalidResponseError: If the body is not valid JSON.
        """
        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseError(path, str(e)) from e

    @staticmethod
    def _parse(path: str, model: Type[M], value: Any) -> M:
        """
        Validate a decoded JSON body into a response model.

        Raises:
            InvalidResponseError: If the body does not have the expected shape.
        """
        try:
            return model.model_validate(value)
        except ValidationError as e:
            raise InvalidResponseError(path, str(e)) from e
