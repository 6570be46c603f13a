"""
radicle-ipfs Client Subpackage.

This package provides the client classes for talking to an IPFS daemon over
its HTTP API: the DAG, pin and naming operations, the pubsub bus, and the
typed errors every operation raises.
"""

from .base_client import BaseClient
from .ipfs_client import IpfsClient
from .pubsub import CancelToken, PubsubClient, decode_message
from .errors import (
    IpfsError,
    DaemonError,
    DaemonTimeoutError,
    NoDaemonError,
    UnclassifiedDaemonError,
    InvalidResponseError,
    IpldParseError,
    error_message,
    map_http_exception,
)

__all__ = [
    "BaseClient",
    "IpfsClient",
    "PubsubClient",
    "CancelToken",
    "decode_message",
    "IpfsError",
    "DaemonError",
    "DaemonTimeoutError",
    "NoDaemonError",
    "UnclassifiedDaemonError",
    "InvalidResponseError",
    "IpldParseError",
    "error_message",
    "map_http_exception",
]
