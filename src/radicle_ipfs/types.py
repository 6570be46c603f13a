"""Defines the addressing types and response models for the IPFS HTTP API.

This module contains the two addressing schemes understood by the daemon
(immutable content IDs under ``/ipfs/`` and mutable names under ``/ipns/``),
the IPLD link convention ``{"/": "<cid>"}``, and the Pydantic models that the
daemon's JSON responses are validated into.
"""
from __future__ import annotations

import base64
import binascii
from typing import Annotated, Any, List, Optional, Union

from multiformats import CID
from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, PlainValidator, field_validator

IPFS_PREFIX = "/ipfs/"
IPNS_PREFIX = "/ipns/"

IpnsId = str


class InvalidCidError(ValueError):
    """Raised when a value is not a valid IPLD link or CID text."""


def cid_from_text(text: str) -> Optional[CID]:
    """Decodes the canonical text of a CID, returning None if it is malformed."""
    if not text:
        return None
    try:
        return CID.decode(text)
    except (ValueError, KeyError, IndexError, TypeError):
        # multiformats reports truncated input as IndexError.
        return None


class IpfsAddress(BaseModel):
    """Address of immutable content, rendered as ``/ipfs/<cid>``.

    Attributes:
        cid: The content identifier.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    cid: CID

    def __str__(self) -> str:
        return format_address(self)


class IpnsAddress(BaseModel):
    """Address of a mutable name, rendered as ``/ipns/<id>``.

    Attributes:
        ipns_id: The naming identifier, kept opaque.
    """
    model_config = ConfigDict(frozen=True)

    ipns_id: IpnsId

    def __str__(self) -> str:
        return format_address(self)


Address = Union[IpfsAddress, IpnsAddress]


def format_address(address: Address) -> str:
    """Returns the path form used by the IPFS CLI and daemon."""
    if isinstance(address, IpfsAddress):
        return IPFS_PREFIX + str(address.cid)
    return IPNS_PREFIX + address.ipns_id


def parse_address(text: str) -> Optional[Address]:
    """Partial inverse of :func:`format_address`.

    ``/ipfs/`` is tried first and requires a valid CID; ``/ipns/`` is the
    fallback. Any other text yields None.
    """
    if text.startswith(IPFS_PREFIX):
        cid = cid_from_text(text[len(IPFS_PREFIX):])
        return IpfsAddress(cid=cid) if cid is not None else None
    if text.startswith(IPNS_PREFIX):
        return IpnsAddress(ipns_id=text[len(IPNS_PREFIX):])
    return None


def ipld_link(cid: CID) -> dict:
    """Given a CID returns the IPLD link object ``{"/": "<cid>"}``."""
    return {"/": str(cid)}


def parse_ipld_link(value: Any) -> CID:
    """Parses an IPLD link object back into its CID.

    Raises:
        InvalidCidError: If ``value`` is not an object with a ``"/"`` string
            field holding a valid CID.
    """
    if not isinstance(value, dict):
        raise InvalidCidError(f"invalid CID: expected IPLD link object, got {type(value).__name__}")
    text = value.get("/")
    if not isinstance(text, str):
        raise InvalidCidError("invalid CID: IPLD link has no '/' string field")
    cid = cid_from_text(text)
    if cid is None:
        raise InvalidCidError(f"invalid CID: {text!r}")
    return cid


def ipld_json_default(obj: Any) -> Any:
    """``json.dumps`` hook that writes CIDs as IPLD links and dumps Pydantic models."""
    if isinstance(obj, CID):
        return ipld_link(obj)
    if isinstance(obj, BaseModel):
        return obj.model_dump(by_alias=True)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _as_link(value: Any) -> CID:
    if isinstance(value, CID):
        return value
    return parse_ipld_link(value)


IpldLink = Annotated[CID, PlainValidator(_as_link), PlainSerializer(ipld_link)]
"""A CID field that reads and writes the IPLD link form ``{"/": "<cid>"}``.

Use it in models passed to ``IpfsClient.dag_put`` and read back with
``IpfsClient.dag_get``::

    class Node(BaseModel):
        parent: Optional[IpldLink] = None
"""


def _decode_base64(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    if not isinstance(value, str):
        raise ValueError(f"expected base64 string, got {type(value).__name__}")
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as e:
        raise ValueError(f"invalid base64: {e}") from e


class PubsubMessage(BaseModel):
    """A message received on a pubsub topic.

    On the wire the binary fields are base64 text; they are decoded during
    validation, so an instance only exists if all three decoded cleanly.

    Attributes:
        topics: Topics the message was published to (wire name ``topicIDs``).
        data: The message payload.
        from_: Peer ID of the sender (wire name ``from``).
        seqno: Sender-assigned sequence number.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    topics: List[str] = Field(alias="topicIDs")
    data: bytes
    from_: bytes = Field(alias="from")
    seqno: bytes

    @field_validator("data", "from_", "seqno", mode="before")
    @classmethod
    def _binary_field(cls, value: Any) -> bytes:
        return _decode_base64(value)


class VersionResponse(BaseModel):
    """Response of ``version``."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: str = Field(alias="Version")


class KeyGenResponse(BaseModel):
    """Response of ``key/gen``; ``Id`` is the new key's naming ID."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    ipns_id: IpnsId = Field(alias="Id")


class DagPutResponse(BaseModel):
    """Response of ``dag/put``: ``{"Cid": {"/": "<cid>"}}``."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    cid: IpldLink = Field(alias="Cid")


class PinResponse(BaseModel):
    """Response of ``pin/add``: the CIDs that are now pinned."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, arbitrary_types_allowed=True)

    pins: List[CID] = Field(alias="Pins")

    @field_validator("pins", mode="before")
    @classmethod
    def _cids(cls, value: Any) -> List[CID]:
        if not isinstance(value, list):
            raise ValueError("expected a list of CIDs")
        cids = []
        for item in value:
            cid = item if isinstance(item, CID) else (cid_from_text(item) if isinstance(item, str) else None)
            if cid is None:
                raise ValueError(f"invalid CID: {item!r}")
            cids.append(cid)
        return cids


class NameResolveResponse(BaseModel):
    """Response of ``name/resolve``. ``Path`` must be an ``/ipfs/`` path."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, arbitrary_types_allowed=True)

    cid: CID = Field(alias="Path")

    @field_validator("cid", mode="before")
    @classmethod
    def _ipfs_path(cls, value: Any) -> CID:
        if isinstance(value, CID):
            return value
        address = parse_address(value) if isinstance(value, str) else None
        if address is None:
            raise ValueError("invalid IPFS path")
        if not isinstance(address, IpfsAddress):
            raise ValueError("expected /ipfs path")
        return address.cid
