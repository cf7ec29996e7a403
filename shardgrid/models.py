"""
Cluster Topology Data Models

Defines the records received from the cluster (nodes, indices, shards)
and the normalized grid snapshot built from them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ShardState(str, Enum):
    """Allocation state of a shard copy."""
    STARTED = "STARTED"
    INITIALIZING = "INITIALIZING"
    RELOCATING = "RELOCATING"
    UNASSIGNED = "UNASSIGNED"
    # Synthetic marker for destination indicators, never produced by the parser
    DESTINATION = "DESTINATION"


class ShardKey(NamedTuple):
    """Identity of one physical shard copy."""
    index: str
    shard: int
    primary: bool

    def __str__(self) -> str:
        return f"{self.index}[{self.shard}]{'p' if self.primary else 'r'}"


class ShardInfo(BaseModel):
    """
    One copy (primary or replica) of one shard of an index.

    Attributes:
        index: Index name
        shard: Shard number
        primary: True for the primary copy
        state: Allocation state
        node: Hosting node reference (id, name or ip), absent when unassigned
        relocating_node: Relocation target reference, only while RELOCATING
        docs: Document count
        store: Store size in bytes
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    index: str
    shard: int = Field(..., ge=0)
    primary: bool
    state: ShardState
    node: Optional[str] = None
    relocating_node: Optional[str] = Field(default=None, alias="relocatingNode")
    docs: int = 0
    store: int = 0

    @field_validator("state", mode="before")
    @classmethod
    def normalize_state(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("node", "relocating_node", mode="before")
    @classmethod
    def blank_reference_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def key(self) -> ShardKey:
        return ShardKey(self.index, self.shard, self.primary)

    @property
    def is_assigned(self) -> bool:
        return self.node is not None and self.state != ShardState.UNASSIGNED

    def __str__(self) -> str:
        return f"{self.key} {self.state.value} on {self.node or '-'}"


class NodeInfo(BaseModel):
    """A cluster node with its roles and resource gauges."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    ip: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    heap_used: int = Field(default=0, alias="heapUsed")
    heap_max: int = Field(default=0, alias="heapMax")
    disk_used: int = Field(default=0, alias="diskUsed")
    disk_total: int = Field(default=0, alias="diskTotal")
    cpu_percent: Optional[float] = Field(default=None, alias="cpuPercent")
    load_average: Optional[float] = Field(default=None, alias="loadAverage")
    is_master: bool = Field(default=False, alias="isMaster")
    is_master_eligible: bool = Field(default=False, alias="isMasterEligible")
    version: Optional[str] = None

    @property
    def is_data_node(self) -> bool:
        return "data" in self.roles

    @property
    def heap_percent(self) -> float:
        if self.heap_max == 0:
            return 0.0
        return self.heap_used / self.heap_max * 100

    @property
    def disk_percent(self) -> float:
        if self.disk_total == 0:
            return 0.0
        return self.disk_used / self.disk_total * 100

    def matches(self, reference: Optional[str]) -> bool:
        """Check whether a node reference (id, name or ip) points at this node."""
        if not reference:
            return False
        return reference in (self.id, self.name) or (self.ip is not None and reference == self.ip)


class IndexInfo(BaseModel):
    """Index metadata as reported by the cluster."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    health: str = "yellow"
    status: str = "open"
    primary_shards: int = Field(default=0, alias="primaryShards")
    replica_shards: int = Field(default=0, alias="replicaShards")
    docs_count: int = Field(default=0, alias="docsCount")
    store_size: int = Field(default=0, alias="storeSize")


class IndexMetadata(IndexInfo):
    """Index metadata enriched for the grid."""
    shard_count: int = Field(default=0, alias="shardCount")


PROBLEM_STATES = (ShardState.UNASSIGNED, ShardState.RELOCATING, ShardState.INITIALIZING)


def index_has_problems(index: str, shards: Iterable[ShardInfo]) -> bool:
    """True if any copy of the index is unassigned, relocating or initializing."""
    return any(s.state in PROBLEM_STATES for s in shards if s.index == index)


def count_shards_by_state(shards: Iterable[ShardInfo]) -> Dict[ShardState, int]:
    counts: Dict[ShardState, int] = {}
    for shard in shards:
        counts[shard.state] = counts.get(shard.state, 0) + 1
    return counts


class Topology(NamedTuple):
    """Raw topology returned by one fetch from the cluster."""
    nodes: List[NodeInfo]
    indices: List[IndexInfo]
    shards: List[ShardInfo]


@dataclass(frozen=True)
class NodeWithShards:
    """A node together with the shard copies it hosts, grouped by index."""
    node: NodeInfo
    shards: Mapping[str, Tuple[ShardInfo, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @property
    def id(self) -> str:
        return self.node.id

    @property
    def name(self) -> str:
        return self.node.name

    @property
    def roles(self) -> List[str]:
        return self.node.roles

    def shards_for(self, index: str) -> Tuple[ShardInfo, ...]:
        return self.shards.get(index, ())

    def hosts_shard(self, index: str, shard: int) -> bool:
        """True if any copy (primary or replica) of index[shard] is on this node."""
        return any(s.shard == shard for s in self.shards_for(index))

    @property
    def shard_total(self) -> int:
        return sum(len(copies) for copies in self.shards.values())


@dataclass(frozen=True)
class GridSnapshot:
    """
    One complete, immutable parse of cluster topology.

    Attributes:
        nodes: Nodes with their per-index shard mapping
        indices: Index metadata
        unassigned_shards: Shard copies without a host
        shards: Every shard record of the parse pass
        diagnostics: Non-fatal resolution messages
        created_at: When the snapshot was produced
    """
    nodes: Tuple[NodeWithShards, ...] = ()
    indices: Tuple[IndexMetadata, ...] = ()
    unassigned_shards: Tuple[ShardInfo, ...] = ()
    shards: Tuple[ShardInfo, ...] = ()
    diagnostics: Tuple[str, ...] = ()
    created_at: datetime = field(default_factory=datetime.utcnow)

    def find_node(self, reference: Optional[str]) -> Optional[NodeWithShards]:
        """Find a node by id, name or ip."""
        for node in self.nodes:
            if node.node.matches(reference):
                return node
        return None

    def get_index(self, name: str) -> Optional[IndexMetadata]:
        for index in self.indices:
            if index.name == name:
                return index
        return None

    def shards_for(self, node: Optional[str], index: str) -> Tuple[ShardInfo, ...]:
        """Shards at one grid cell."""
        host = self.find_node(node)
        return host.shards_for(index) if host is not None else ()

    def copies_of(self, key: ShardKey) -> List[ShardInfo]:
        """All shard records sharing an identity triple."""
        return [s for s in self.shards if s.key == key]

    def group_by_index(self) -> Dict[str, List[ShardInfo]]:
        grouped: Dict[str, List[ShardInfo]] = {}
        for shard in self.shards:
            grouped.setdefault(shard.index, []).append(shard)
        return grouped

    def has_problems(self, index: str) -> bool:
        return index_has_problems(index, self.shards)

    def count_by_state(self) -> Dict[str, int]:
        return {state.value: count for state, count in count_shards_by_state(self.shards).items()}

    def to_summary(self) -> Dict:
        """Plain-data summary of the snapshot."""
        return {
            "created_at": self.created_at.isoformat(),
            "nodes": [
                {
                    "id": n.id,
                    "name": n.name,
                    "roles": list(n.roles),
                    "heap_percent": round(n.node.heap_percent, 1),
                    "disk_percent": round(n.node.disk_percent, 1),
                    "shards": {
                        index: [f"{s.key} {s.state.value}" for s in copies]
                        for index, copies in n.shards.items()
                    },
                }
                for n in self.nodes
            ],
            "indices": [
                {
                    "name": i.name,
                    "health": i.health,
                    "shard_count": i.shard_count,
                    "docs_count": i.docs_count,
                    "store_size": i.store_size,
                    "has_problems": self.has_problems(i.name),
                }
                for i in self.indices
            ],
            "unassigned": [str(s.key) for s in self.unassigned_shards],
            "states": self.count_by_state(),
            "diagnostics": list(self.diagnostics),
        }


@dataclass(frozen=True)
class RelocationIntent:
    """A confirmed request to move one shard copy between two nodes."""
    shard: ShardInfo
    source: NodeInfo
    destination: NodeInfo

    def describe(self) -> str:
        return (
            f"shard {self.shard.shard} of index '{self.shard.index}' "
            f"from {self.source.name} to {self.destination.name}"
        )
