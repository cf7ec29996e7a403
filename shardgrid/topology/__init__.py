"""
Topology module for ShardGrid.

- parser: raw topology -> GridSnapshot
- transform: cat API rows -> topology records
"""

from ..models import count_shards_by_state, index_has_problems
from .parser import (
    NodeIdentifierResolver,
    parse,
    parse_index_metadata,
    parse_nodes_with_shards,
)
from .transform import (
    transform_indices,
    transform_nodes,
    transform_shards,
)

__all__ = [
    "NodeIdentifierResolver",
    "parse",
    "parse_nodes_with_shards",
    "parse_index_metadata",
    "index_has_problems",
    "count_shards_by_state",
    "transform_nodes",
    "transform_indices",
    "transform_shards",
]
