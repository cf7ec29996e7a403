"""
Topology Parser - builds the shard grid from raw cluster topology.

Transforms node, index and shard records into a GridSnapshot:
- every shard copy is placed on the node that hosts it
- unassigned shards are collected separately
- relocating shards also appear on their target node as INITIALIZING

Cluster APIs reference nodes inconsistently (id, name or ip), so all node
lookups go through NodeIdentifierResolver. A reference that resolves to no
known node drops the shard from node placement and records a diagnostic;
the rest of the grid is still built.
"""

import logging
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from ..models import (
    GridSnapshot,
    IndexInfo,
    IndexMetadata,
    NodeInfo,
    NodeWithShards,
    ShardInfo,
    ShardState,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
Record = Union[BaseModel, Mapping[str, Any]]

# node id -> index name -> shard copies, mutable while parsing
_Placement = Dict[str, Dict[str, List[ShardInfo]]]


class NodeIdentifierResolver:
    """
    Resolves node references (id, name or ip) to a stable node id.

    Ids are registered first so a name or ip that happens to equal another
    node's id never shadows it.
    """

    def __init__(self, nodes: Iterable[NodeInfo]):
        self._ids: Dict[str, str] = {}
        nodes = list(nodes)

        for node in nodes:
            self._ids[node.id] = node.id
        for node in nodes:
            self._ids.setdefault(node.name, node.id)
            if node.ip:
                self._ids.setdefault(node.ip, node.id)

    def resolve(self, reference: Optional[str]) -> Optional[str]:
        """Return the node id for a reference, or None when nothing matches."""
        if not reference:
            return None
        return self._ids.get(reference)

    def __contains__(self, reference: str) -> bool:
        return reference in self._ids

    def __len__(self) -> int:
        return len(self._ids)


def _coerce(records: Iterable[Record], model: Type[ModelT], diagnostics: List[str]) -> List[ModelT]:
    """Validate plain mappings into models, skipping records that do not validate."""
    result: List[ModelT] = []
    for record in records:
        if isinstance(record, model):
            result.append(record)
            continue
        try:
            if isinstance(record, BaseModel):
                record = record.model_dump()
            result.append(model.model_validate(record))
        except ValidationError as e:
            message = f"Skipping invalid {model.__name__} record: {e.errors()[0]['msg']}"
            logger.warning(message)
            diagnostics.append(message)
    return result


def _place(placement: _Placement, node_id: str, shard: ShardInfo) -> None:
    placement[node_id].setdefault(shard.index, []).append(shard)


def assign_shards(
    placement: _Placement,
    shards: Iterable[ShardInfo],
    resolver: NodeIdentifierResolver,
    diagnostics: List[str],
) -> Tuple[List[ShardInfo], List[ShardInfo]]:
    """
    Place each shard copy on its hosting node.

    Returns:
        (unassigned shards, relocating shards that were placed)
    """
    unassigned: List[ShardInfo] = []
    relocating: List[ShardInfo] = []

    for shard in shards:
        if shard.state == ShardState.UNASSIGNED or not shard.node:
            unassigned.append(shard)
            continue

        node_id = resolver.resolve(shard.node)
        if node_id is None:
            message = f"Could not find node for shard {shard.key} on node {shard.node}"
            logger.warning(message)
            diagnostics.append(message)
            continue

        _place(placement, node_id, shard)
        if shard.state == ShardState.RELOCATING:
            relocating.append(shard)

    return unassigned, relocating


def place_relocation_targets(
    placement: _Placement,
    relocating: Iterable[ShardInfo],
    resolver: NodeIdentifierResolver,
    diagnostics: List[str],
) -> None:
    """
    Add the arriving copy of every relocating shard to its target node.

    The source keeps its RELOCATING copy; the target gets a copy with the
    same identity in state INITIALIZING.
    """
    for shard in relocating:
        if not shard.relocating_node:
            continue

        target_id = resolver.resolve(shard.relocating_node)
        if target_id is None:
            message = (
                f"Could not find relocation target for shard {shard.key}: "
                f"{shard.relocating_node}"
            )
            logger.warning(message)
            diagnostics.append(message)
            continue

        if target_id == resolver.resolve(shard.node):
            continue

        arriving = shard.model_copy(update={
            "node": shard.relocating_node,
            "state": ShardState.INITIALIZING,
        })
        _place(placement, target_id, arriving)


def parse_nodes_with_shards(
    nodes: Iterable[NodeInfo],
    shards: Iterable[ShardInfo],
    diagnostics: Optional[List[str]] = None,
) -> Tuple[List[NodeWithShards], List[ShardInfo]]:
    """
    Organize shards by node and index.

    Returns:
        (nodes with their shard mapping, unassigned shards)
    """
    if diagnostics is None:
        diagnostics = []

    nodes = list(nodes)
    resolver = NodeIdentifierResolver(nodes)
    placement: _Placement = {node.id: {} for node in nodes}

    unassigned, relocating = assign_shards(placement, shards, resolver, diagnostics)
    place_relocation_targets(placement, relocating, resolver, diagnostics)

    nodes_with_shards = [
        NodeWithShards(
            node=node,
            shards=MappingProxyType({
                index: tuple(copies) for index, copies in placement[node.id].items()
            }),
        )
        for node in nodes
    ]
    return nodes_with_shards, unassigned


def parse_index_metadata(indices: Iterable[IndexInfo]) -> List[IndexMetadata]:
    """Attach the total shard count (primaries plus replicas) to each index."""
    return [
        IndexMetadata.model_validate({
            **index.model_dump(),
            "shard_count": index.primary_shards * (index.replica_shards + 1),
        })
        for index in indices
    ]


def parse(
    nodes: Iterable[Record],
    indices: Iterable[Record],
    shards: Iterable[Record],
) -> GridSnapshot:
    """
    Parse complete cluster topology into a grid snapshot.

    Records may be model instances or plain mappings.
    """
    diagnostics: List[str] = []

    node_models = _coerce(nodes, NodeInfo, diagnostics)
    index_models = _coerce(indices, IndexInfo, diagnostics)
    shard_models = _coerce(shards, ShardInfo, diagnostics)

    nodes_with_shards, unassigned = parse_nodes_with_shards(node_models, shard_models, diagnostics)

    snapshot = GridSnapshot(
        nodes=tuple(nodes_with_shards),
        indices=tuple(parse_index_metadata(index_models)),
        unassigned_shards=tuple(unassigned),
        shards=tuple(shard_models),
        diagnostics=tuple(diagnostics),
        created_at=datetime.utcnow(),
    )

    logger.debug(
        f"Parsed topology: {len(snapshot.nodes)} nodes, {len(snapshot.indices)} indices, "
        f"{len(shard_models)} shards ({len(unassigned)} unassigned, "
        f"{len(diagnostics)} diagnostics)"
    )
    return snapshot
