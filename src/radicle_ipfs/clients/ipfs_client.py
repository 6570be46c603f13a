import json
import logging
from typing import Any, List, Optional, Type, TypeVar

from multiformats import CID
from pydantic import TypeAdapter, ValidationError

from radicle_ipfs.clients.base_client import BaseClient
from radicle_ipfs.clients.errors import IpldParseError
from radicle_ipfs.config import IpfsConfig
from radicle_ipfs.types import (
    Address,
    DagPutResponse,
    IpnsId,
    KeyGenResponse,
    NameResolveResponse,
    PinResponse,
    VersionResponse,
    format_address,
    ipld_json_default,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class IpfsClient(BaseClient):
    """Client for the content-addressed store and naming service of an IPFS daemon.

    Every method is a single synchronous request/response call. Failures are
    raised as ``IpfsError`` subclasses; nothing is retried.
    """

    def __init__(self, config: Optional[IpfsConfig] = None) -> None:
        super().__init__(config=config)

    # ------------------------------------------------------------------ node

    def version(self) -> str:
        """Returns the daemon's version string."""
        body = self._get("version")
        return self._parse("version", VersionResponse, body).version

    def key_gen(self, name: str) -> IpnsId:
        """
        Generate a new ed25519 key in the daemon's keystore.

        Args:
            name: Local name of the key.

        Returns:
            The naming ID that the key publishes under.
        """
        body = self._get("key/gen", {"arg": name, "type": "ed25519"})
        return self._parse("key/gen", KeyGenResponse, body).ipns_id

    # ------------------------------------------------------------------- dag

    def dag_put(self, value: Any) -> CID:
        """
        Store and pin a JSON value as a DAG node.

        CIDs anywhere inside ``value`` are written as IPLD links and Pydantic
        models are dumped by alias. Nothing is sent if ``value`` cannot be
        encoded.

        Args:
            value: Any JSON-serializable value.

        Returns:
            The CID of the stored node.

        Raises:
            TypeError: If ``value`` holds an object JSON cannot represent.
            ValueError: If ``value`` holds a NaN or infinite float.
            InvalidResponseError: If the response has no valid ``Cid`` link.
        """
        payload = json.dumps(
            value, separators=(",", ":"), allow_nan=False, default=ipld_json_default
        ).encode("utf-8")
        body = self._post("dag/put", {"pin": "true"}, "arg", payload)
        cid = self._parse("dag/put", DagPutResponse, body).cid
        logger.debug("Stored DAG node %s", cid)
        return cid

    def dag_get(self, address: Address, as_type: Type[T] = Any) -> T:
        """
        Fetch a DAG node and convert it to ``as_type``.

        Args:
            address: Address of the node.
            as_type: Any type Pydantic can validate into, e.g. a ``BaseModel``
                subclass or ``dict[str, int]``. Defaults to the raw JSON value.

        Returns:
            The node converted to ``as_type``.

        Raises:
            InvalidResponseError: If the body is not JSON.
            IpldParseError: If the JSON cannot be converted to ``as_type``.
        """
        value = self._get("dag/get", {"arg": format_address(address)})
        try:
            return TypeAdapter(as_type).validate_python(value)
        except ValidationError as e:
            raise IpldParseError(address, str(e)) from e

    def pin_add(self, address: Address) -> List[CID]:
        """Pin the object at ``address`` and return the CIDs now pinned."""
        body = self._get("pin/add", {"arg": format_address(address)})
        return self._parse("pin/add", PinResponse, body).pins

    # ------------------------------------------------------------------ name

    def name_publish(self, ipns_id: IpnsId, address: Address) -> None:
        """
        Point the name owned by key ``ipns_id`` at ``address``.

        The response must be JSON but is otherwise ignored.
        """
        self._get("name/publish", {"arg": format_address(address), "key": ipns_id})

    def name_resolve(self, ipns_id: IpnsId) -> CID:
        """
        Resolve a name, following IPNS chains to the final content ID.

        Raises:
            InvalidResponseError: If ``Path`` is not a valid ``/ipfs/`` path.
        """
        body = self._get("name/resolve", {"arg": ipns_id, "recursive": "true"})
        return self._parse("name/resolve", NameResolveResponse, body).cid
