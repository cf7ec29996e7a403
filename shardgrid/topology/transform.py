"""
Transforms raw cat API rows into topology records.

Expects the JSON variants of the cat APIs, requested with ``bytes=b`` so
sizes arrive as plain byte counts:

- ``_cat/nodes?format=json&full_id=true&h=id,name,ip,node.role,master,...``
- ``_cat/indices?format=json&h=index,health,status,pri,rep,docs.count,store.size``
- ``_cat/shards?format=json&h=index,shard,prirep,state,docs,store,node``

Cat output is stringly typed and uses abbreviations (role letters, ``p``/``r``,
``*`` for the elected master, ``"a -> ip id b"`` for relocations). Rows that
cannot be understood are skipped with a warning.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from ..models import IndexInfo, NodeInfo, ShardInfo

logger = logging.getLogger(__name__)

ROLE_LETTERS: Dict[str, str] = {
    "c": "data_cold",
    "d": "data",
    "f": "data_frozen",
    "h": "data_hot",
    "i": "ingest",
    "l": "ml",
    "m": "master",
    "r": "remote_cluster_client",
    "s": "data_content",
    "t": "transform",
    "v": "voting_only",
    "w": "data_warm",
}

RELOCATION_ARROW = "->"


def _to_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_roles(value: Any) -> List[str]:
    """Expand cat role letters (``dim``) into role names; ``-`` means none."""
    if isinstance(value, list):
        return [str(role) for role in value]
    if not value or value == "-":
        return []
    return [ROLE_LETTERS[letter] for letter in str(value) if letter in ROLE_LETTERS]


def split_relocation(node_field: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Split the cat shards node column into (source, target).

    A relocating shard is reported as ``"node-1 -> 10.0.0.2 Xy12ab node-2"``;
    the target name is the last token after the arrow.
    """
    if not node_field:
        return None, None
    if RELOCATION_ARROW not in node_field:
        return node_field.strip() or None, None

    source, _, target = node_field.partition(RELOCATION_ARROW)
    target_tokens = target.split()
    return source.strip() or None, (target_tokens[-1] if target_tokens else None)


def node_from_cat(row: Mapping[str, Any]) -> NodeInfo:
    roles = parse_roles(row.get("node.role") or row.get("roles"))
    return NodeInfo(
        id=str(row.get("id") or row.get("name")),
        name=str(row.get("name") or row.get("id")),
        ip=row.get("ip") or None,
        roles=roles,
        heap_used=_to_int(row.get("heap.current")),
        heap_max=_to_int(row.get("heap.max")),
        disk_used=_to_int(row.get("disk.used")),
        disk_total=_to_int(row.get("disk.total")),
        cpu_percent=_to_float(row.get("cpu")),
        load_average=_to_float(row.get("load_1m")),
        is_master=row.get("master") == "*",
        is_master_eligible="master" in roles,
        version=row.get("version") or None,
    )


def index_from_cat(row: Mapping[str, Any]) -> IndexInfo:
    return IndexInfo(
        name=str(row.get("index")),
        health=row.get("health") or "yellow",
        status=row.get("status") or "open",
        primary_shards=_to_int(row.get("pri")),
        replica_shards=_to_int(row.get("rep")),
        docs_count=_to_int(row.get("docs.count")),
        store_size=_to_int(row.get("store.size")),
    )


def shard_from_cat(row: Mapping[str, Any]) -> ShardInfo:
    node, relocating_node = split_relocation(row.get("node"))
    return ShardInfo(
        index=str(row.get("index")),
        shard=_to_int(row.get("shard"), default=-1),
        primary=row.get("prirep") == "p",
        state=row.get("state") or "UNASSIGNED",
        node=node,
        relocating_node=relocating_node,
        docs=_to_int(row.get("docs")),
        store=_to_int(row.get("store")),
    )


def _transform_rows(rows: Iterable[Mapping[str, Any]], transform, kind: str) -> list:
    result = []
    for row in rows:
        try:
            result.append(transform(row))
        except ValidationError as e:
            logger.warning(f"Skipping unparseable {kind} row {dict(row)}: {e.errors()[0]['msg']}")
    return result


def transform_nodes(rows: Iterable[Mapping[str, Any]]) -> List[NodeInfo]:
    return _transform_rows(rows, node_from_cat, "node")


def transform_indices(rows: Iterable[Mapping[str, Any]]) -> List[IndexInfo]:
    return _transform_rows(rows, index_from_cat, "index")


def transform_shards(rows: Iterable[Mapping[str, Any]]) -> List[ShardInfo]:
    return _transform_rows(rows, shard_from_cat, "shard")
