"""
ShardGrid - cluster topology and shard relocation engine.

Normalizes cluster topology into a node x index shard grid, computes valid
relocation destinations, drives the relocation workflow and tracks
relocations until the cluster converges.
"""

from .cache import SnapshotCache
from .client import ClusterClient, RelocateShardRequest
from .config import Settings, get_settings
from .engine import ShardGridEngine, TopologySource
from .events import EngineEvent, EventBus, EventType
from .models import (
    GridSnapshot,
    IndexInfo,
    IndexMetadata,
    NodeInfo,
    NodeWithShards,
    RelocationIntent,
    ShardInfo,
    ShardKey,
    ShardState,
    Topology,
)
from .relocation import (
    ProgressTracker,
    RelocationPhase,
    RelocationResult,
    RelocationStateMachine,
    calculate_valid_destinations,
)
from .topology import parse

__version__ = "1.0.0"

__all__ = [
    "ShardGridEngine",
    "TopologySource",
    "ClusterClient",
    "RelocateShardRequest",
    "Settings",
    "get_settings",
    "SnapshotCache",
    "EngineEvent",
    "EventBus",
    "EventType",
    "GridSnapshot",
    "IndexInfo",
    "IndexMetadata",
    "NodeInfo",
    "NodeWithShards",
    "RelocationIntent",
    "ShardInfo",
    "ShardKey",
    "ShardState",
    "Topology",
    "ProgressTracker",
    "RelocationPhase",
    "RelocationResult",
    "RelocationStateMachine",
    "calculate_valid_destinations",
    "parse",
]
