"""Use a running IPFS daemon as a content store, naming service and pubsub bus.

Example:
    >>> from radicle_ipfs import IpfsClient, IpfsConfig
    >>> client = IpfsClient(IpfsConfig.from_env())
    >>> cid = client.dag_put({"hello": "world"})
"""
from radicle_ipfs.clients import (
    CancelToken,
    DaemonError,
    DaemonTimeoutError,
    InvalidResponseError,
    IpfsClient,
    IpfsError,
    IpldParseError,
    NoDaemonError,
    PubsubClient,
    UnclassifiedDaemonError,
)
from radicle_ipfs.config import IpfsConfig
from radicle_ipfs.types import (
    Address,
    InvalidCidError,
    IpfsAddress,
    IpldLink,
    IpnsAddress,
    PubsubMessage,
    format_address,
    ipld_link,
    parse_address,
    parse_ipld_link,
)

__all__ = [
    "Address",
    "CancelToken",
    "DaemonError",
    "DaemonTimeoutError",
    "InvalidCidError",
    "InvalidResponseError",
    "IpfsAddress",
    "IpfsClient",
    "IpfsConfig",
    "IpfsError",
    "IpldLink",
    "IpldParseError",
    "IpnsAddress",
    "NoDaemonError",
    "PubsubClient",
    "PubsubMessage",
    "UnclassifiedDaemonError",
    "format_address",
    "ipld_link",
    "parse_address",
    "parse_ipld_link",
]
