"""
Cluster REST client.

Fetches topology from the cat APIs and submits shard moves through the
cluster reroute API.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from aiohttp import ClientSession, ClientTimeout
from pydantic import BaseModel, ValidationError, field_validator, model_validator

from .config import Settings
from .exceptions import (
    ClusterNotFoundError,
    RelocationSubmissionError,
    RelocationValidationError,
    TopologyFetchError,
)
from .models import Topology
from .topology.transform import transform_indices, transform_nodes, transform_shards

logger = logging.getLogger(__name__)

NODE_COLUMNS = "id,name,ip,node.role,master,heap.current,heap.max,disk.used,disk.total,cpu,load_1m,version"
INDEX_COLUMNS = "index,health,status,pri,rep,docs.count,store.size"
SHARD_COLUMNS = "index,shard,prirep,state,docs,store,node"

INVALID_INDEX_CHARS = ('\\', '/', '*', '?', '"', '<', '>', '|', ' ', ',', '#')


class RelocateShardRequest(BaseModel):
    """Parameters of a shard move."""
    index: str
    shard: int
    from_node: str
    to_node: str

    @field_validator("index")
    @classmethod
    def valid_index_name(cls, value: str) -> str:
        if not value:
            raise ValueError("Index name is required. Please provide a valid index name.")
        if any(c.isupper() for c in value):
            raise ValueError(
                f"Index name '{value}' contains uppercase characters. Index names must be lowercase."
            )
        for char in INVALID_INDEX_CHARS:
            if char in value:
                raise ValueError(f"Index name '{value}' contains invalid character '{char}'.")
        return value

    @field_validator("shard")
    @classmethod
    def non_negative_shard(cls, value: int) -> int:
        if value < 0:
            raise ValueError("Shard number must not be negative.")
        return value

    @field_validator("from_node", "to_node")
    @classmethod
    def node_required(cls, value: str) -> str:
        if not value:
            raise ValueError("Source and destination node IDs are required.")
        return value

    @model_validator(mode="after")
    def distinct_nodes(self) -> "RelocateShardRequest":
        if self.from_node == self.to_node:
            raise ValueError(
                f"Source and destination nodes must be different (both are {self.from_node})."
            )
        return self

    @classmethod
    def build(cls, index: str, shard: int, from_node: str, to_node: str) -> "RelocateShardRequest":
        """
        Validate relocation parameters.

        Raises:
            RelocationValidationError: a parameter is invalid
        """
        try:
            return cls(index=index, shard=shard, from_node=from_node, to_node=to_node)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error.get("loc", ())) or None
            message = error["msg"].removeprefix("Value error, ")
            raise RelocationValidationError(message, field=field) from e

    def to_reroute_command(self) -> Dict[str, Any]:
        return {
            "commands": [{
                "move": {
                    "index": self.index,
                    "shard": self.shard,
                    "from_node": self.from_node,
                    "to_node": self.to_node,
                }
            }]
        }


class ClusterClient:
    """
    REST client for one cluster.

    Implements both the topology source and the relocation submitter used
    by the engine.
    """

    def __init__(
        self,
        base_url: str,
        cluster_id: str = "default",
        timeout: float = 30.0,
        api_key: Optional[str] = None,
    ):
        """
        Initialize cluster client.

        Args:
            base_url: Cluster HTTP address
            cluster_id: Identifier this client answers to
            timeout: Request timeout in seconds
            api_key: Optional API key sent as ``Authorization: ApiKey``
        """
        self.base_url = base_url.rstrip('/')
        self.cluster_id = cluster_id
        self.timeout = ClientTimeout(total=timeout)
        self._headers = {"Accept": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"ApiKey {api_key}"

        self._session: Optional[ClientSession] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClusterClient":
        return cls(
            base_url=settings.cluster_url,
            cluster_id=settings.cluster_id,
            timeout=settings.request_timeout,
            api_key=settings.api_key,
        )

    async def _get_session(self) -> ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = ClientSession(timeout=self.timeout, headers=self._headers)
        return self._session

    async def close(self):
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "ClusterClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _get_cat(self, endpoint: str, columns: str) -> List[Dict[str, Any]]:
        session = await self._get_session()
        url = f"{self.base_url}/_cat/{endpoint}"
        params = {"format": "json", "bytes": "b", "h": columns}
        if endpoint == "nodes":
            params["full_id"] = "true"

        try:
            async with session.get(url, params=params) as response:
                if response.status != 200:
                    text = await response.text()
                    raise TopologyFetchError(
                        f"_cat/{endpoint} returned HTTP {response.status}: {text[:200]}",
                        endpoint=endpoint,
                    )
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise TopologyFetchError(f"_cat/{endpoint} timed out", endpoint=endpoint) from e
        except aiohttp.ClientError as e:
            raise TopologyFetchError(f"_cat/{endpoint} failed: {e}", endpoint=endpoint) from e

    async def fetch_topology(self) -> Topology:
        """Fetch nodes, indices and shards concurrently."""
        node_rows, index_rows, shard_rows = await asyncio.gather(
            self._get_cat("nodes", NODE_COLUMNS),
            self._get_cat("indices", INDEX_COLUMNS),
            self._get_cat("shards", SHARD_COLUMNS),
        )
        return Topology(
            nodes=transform_nodes(node_rows),
            indices=transform_indices(index_rows),
            shards=transform_shards(shard_rows),
        )

    async def relocate_shard(
        self,
        cluster_id: str,
        index: str,
        shard: int,
        from_node: str,
        to_node: str,
    ) -> Dict[str, Any]:
        """
        Move a shard between nodes via the reroute API.

        Raises:
            ClusterNotFoundError: cluster_id is not served by this client
            RelocationValidationError: parameters are invalid
            RelocationSubmissionError: the cluster rejected or failed the request
        """
        if cluster_id != self.cluster_id:
            raise ClusterNotFoundError(cluster_id)

        request = RelocateShardRequest.build(index, shard, from_node, to_node)
        session = await self._get_session()

        logger.info(
            f"Shard relocation requested: cluster={cluster_id} index={index} "
            f"shard={shard} from={from_node} to={to_node}"
        )
        try:
            async with session.post(
                f"{self.base_url}/_cluster/reroute",
                json=request.to_reroute_command(),
            ) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = {"error": {"reason": await response.text()}}

                if not 200 <= response.status < 300:
                    reason = _error_reason(body) or f"HTTP {response.status}"
                    logger.error(f"Cluster rejected shard relocation ({response.status}): {reason}")
                    raise RelocationSubmissionError(reason, status=response.status)
        except asyncio.TimeoutError as e:
            raise RelocationSubmissionError("Shard relocation request timed out") from e
        except aiohttp.ClientError as e:
            raise RelocationSubmissionError(f"connection error: {e}") from e

        logger.info(f"Shard relocation initiated: {index}[{shard}] {from_node} -> {to_node}")
        return body


def _error_reason(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("reason") or error.get("type")
    if isinstance(error, str):
        return error
    return None
