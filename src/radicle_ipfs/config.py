"""Configuration for talking to an IPFS daemon.

The environment is consulted only by :meth:`IpfsConfig.from_env`, which the
owning application calls once and passes into the client.
"""
from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

API_URL_ENV = "RAD_IPFS_API_URL"
DEFAULT_API_URL = "http://localhost:9301"


class IpfsConfig(BaseModel):
    """Connection settings for the daemon's HTTP API.

    Attributes:
        api_url: Base URL of the daemon, without the ``/api/v0`` suffix.
        timeout: Response-wait deadline in seconds for one-shot calls.
        connect_timeout: TCP connect deadline in seconds for every call.
        stream_read_timeout: Idle-read deadline for ``pubsub/sub``. ``None``
            waits for the next message indefinitely.
        max_stream_buffer: Largest incomplete JSON value, in characters, that
            a subscription buffers before giving up.
    """
    model_config = ConfigDict(frozen=True)

    api_url: str = Field(default=DEFAULT_API_URL, min_length=1)
    timeout: float = Field(default=30.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    stream_read_timeout: Optional[float] = Field(default=None, gt=0)
    max_stream_buffer: int = Field(default=8 * 1024 * 1024, ge=1024)

    @field_validator("api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "IpfsConfig":
        """Builds a config, taking the base URL from ``RAD_IPFS_API_URL`` when set.

        Args:
            environ: Mapping to read instead of ``os.environ``.
            **overrides: Other fields to set explicitly.

        Returns:
            A new IpfsConfig.
        """
        env = os.environ if environ is None else environ
        api_url = env.get(API_URL_ENV) or DEFAULT_API_URL
        return cls(api_url=api_url, **overrides)

    def api_url_for(self, path: str) -> str:
        """Returns the full URL of an endpoint under ``/api/v0/``."""
        return f"{self.api_url}/api/v0/{path}"
