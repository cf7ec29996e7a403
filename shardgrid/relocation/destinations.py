"""
Destination calculation for shard relocation.
"""

from typing import Dict, Iterable

from ..models import NodeWithShards, ShardInfo, ShardState

DATA_ROLE = "data"


def calculate_valid_destinations(
    shard: ShardInfo,
    nodes: Iterable[NodeWithShards],
) -> Dict[str, ShardInfo]:
    """
    Calculate the nodes a shard may be relocated to.

    A valid destination node must:
    - not be the node currently hosting the shard
    - not already hold any copy (primary or replica) of the same shard number
    - carry the "data" role

    Returns:
        node id -> destination indicator shard (same identity, hosted at the
        candidate, state DESTINATION)
    """
    destinations: Dict[str, ShardInfo] = {}

    for node in nodes:
        if node.node.matches(shard.node):
            continue

        if node.hosts_shard(shard.index, shard.shard):
            continue

        if DATA_ROLE not in node.roles:
            continue

        destinations[node.id] = shard.model_copy(update={
            "node": node.id,
            "state": ShardState.DESTINATION,
            "relocating_node": None,
        })

    return destinations
