"""
Unit tests for the topology parser
"""

from shardgrid.models import IndexInfo, NodeInfo, ShardKey, ShardState
from shardgrid.topology import (
    NodeIdentifierResolver,
    parse,
    parse_index_metadata,
    parse_nodes_with_shards,
)


def _by_id(nodes_with_shards):
    return {n.id: n for n in nodes_with_shards}


# ============================================================================
# Node resolution
# ============================================================================

def test_resolver_matches_id_name_and_ip(nodes):
    resolver = NodeIdentifierResolver(nodes)

    assert resolver.resolve("node-2") == "node-2"
    assert resolver.resolve("es-data-2") == "node-2"
    assert resolver.resolve("10.0.0.2") == "node-2"
    assert resolver.resolve("unknown") is None
    assert resolver.resolve(None) is None
    assert "es-master-1" in resolver


def test_resolver_prefers_ids_over_names():
    nodes = [
        NodeInfo(id="a", name="b", roles=["data"]),
        NodeInfo(id="b", name="c", roles=["data"]),
    ]
    resolver = NodeIdentifierResolver(nodes)

    assert resolver.resolve("b") == "b"
    assert resolver.resolve("c") == "b"


# ============================================================================
# Shard placement
# ============================================================================

def test_every_assigned_shard_is_placed_once(nodes, shards):
    result, unassigned = parse_nodes_with_shards(nodes, shards)
    grid = _by_id(result)

    assert [s.key for s in grid["node-1"].shards_for("logs")] == [ShardKey("logs", 0, True)]
    assert [s.key for s in grid["node-2"].shards_for("logs")] == [ShardKey("logs", 0, False)]
    assert grid["master-1"].shard_total == 0

    placed = sum(n.shard_total for n in result)
    assert placed + len(unassigned) == len(shards)


def test_unassigned_shards_are_collected(nodes, shards, make_shard):
    hostless = make_shard("logs", 1, False, "INITIALIZING", None)
    result, unassigned = parse_nodes_with_shards(nodes, shards + [hostless])

    assert [s.key for s in unassigned] == [ShardKey("metrics", 1, False), ShardKey("logs", 1, False)]
    assert all(s.node is not None for n in result for copies in n.shards.values() for s in copies)


def test_shard_resolved_by_name_and_ip(nodes, make_shard):
    shards = [
        make_shard("logs", 0, True, node="es-data-3"),
        make_shard("logs", 0, False, node="10.0.0.1"),
    ]
    grid = _by_id(parse_nodes_with_shards(nodes, shards)[0])

    assert grid["node-3"].shards_for("logs")[0].primary is True
    assert grid["node-1"].shards_for("logs")[0].primary is False


def test_unknown_node_is_dropped_with_diagnostic(nodes, make_shard):
    diagnostics = []
    shards = [make_shard("logs", 0, True, node="ghost"), make_shard("logs", 0, False, node="node-2")]

    result, unassigned = parse_nodes_with_shards(nodes, shards, diagnostics)

    assert sum(n.shard_total for n in result) == 1
    assert unassigned == []
    assert len(diagnostics) == 1
    assert "ghost" in diagnostics[0]


def test_relocating_shard_appears_on_source_and_target(nodes, make_shard):
    shards = [make_shard("logs", 0, True, "RELOCATING", "node-1", relocating_node="node-2")]

    grid = _by_id(parse_nodes_with_shards(nodes, shards)[0])

    source = grid["node-1"].shards_for("logs")
    target = grid["node-2"].shards_for("logs")
    assert [s.state for s in source] == [ShardState.RELOCATING]
    assert [s.state for s in target] == [ShardState.INITIALIZING]
    assert target[0].node == "node-2"
    assert target[0].key == source[0].key
    assert grid["node-3"].shard_total == 0


def test_relocation_target_resolved_by_name(nodes, make_shard):
    shards = [make_shard("logs", 0, True, "RELOCATING", "node-1", relocating_node="es-data-3")]

    grid = _by_id(parse_nodes_with_shards(nodes, shards)[0])

    assert grid["node-3"].shards_for("logs")[0].state == ShardState.INITIALIZING


def test_unknown_relocation_target_keeps_source(nodes, make_shard):
    diagnostics = []
    shards = [make_shard("logs", 0, True, "RELOCATING", "node-1", relocating_node="ghost")]

    grid = _by_id(parse_nodes_with_shards(nodes, shards, diagnostics)[0])

    assert grid["node-1"].shards_for("logs")[0].state == ShardState.RELOCATING
    assert sum(n.shard_total for n in grid.values()) == 1
    assert "ghost" in diagnostics[0]


def test_input_shards_are_not_mutated(nodes, make_shard):
    relocating = make_shard("logs", 0, True, "RELOCATING", "node-1", relocating_node="node-2")

    parse_nodes_with_shards(nodes, [relocating])

    assert relocating.state == ShardState.RELOCATING
    assert relocating.node == "node-1"


# ============================================================================
# Index metadata and snapshot
# ============================================================================

def test_shard_count_includes_replicas():
    indices = [
        IndexInfo(name="a", primary_shards=3, replica_shards=2),
        IndexInfo(name="b", primary_shards=5, replica_shards=0),
    ]
    result = parse_index_metadata(indices)

    assert [i.shard_count for i in result] == [9, 5]
    assert result[0].name == "a"


def test_parse_builds_snapshot_from_plain_mappings():
    snapshot = parse(
        nodes=[{"id": "n1", "name": "data-1", "roles": ["data"]}],
        indices=[{"name": "logs", "primaryShards": 1, "replicaShards": 1}],
        shards=[
            {"index": "logs", "shard": 0, "primary": True, "state": "started", "node": "data-1"},
            {"index": "logs", "shard": 0, "primary": False, "state": "UNASSIGNED", "node": ""},
            {"index": "logs", "shard": "bad", "primary": True, "state": "STARTED"},
        ],
    )

    assert snapshot.nodes[0].shards_for("logs")[0].state == ShardState.STARTED
    assert len(snapshot.unassigned_shards) == 1
    assert snapshot.get_index("logs").shard_count == 2
    assert len(snapshot.diagnostics) == 1
    assert snapshot.has_problems("logs")


def test_snapshot_queries(nodes, indices, shards):
    snapshot = parse(nodes, indices, shards)

    assert snapshot.find_node("10.0.0.3").id == "node-3"
    assert len(snapshot.copies_of(ShardKey("logs", 0, False))) == 1
    assert snapshot.count_by_state() == {"STARTED": 5, "UNASSIGNED": 1}
    assert [s.primary for s in snapshot.shards_for("es-data-2", "logs")] == [False]
    assert snapshot.shards_for("ghost", "logs") == ()
    assert sorted(snapshot.group_by_index()) == ["logs", "metrics"]
    assert not snapshot.has_problems("logs")
    assert snapshot.has_problems("metrics")

    summary = snapshot.to_summary()
    assert summary["unassigned"] == ["metrics[1]r"]
    assert [n["id"] for n in summary["nodes"]] == ["node-1", "node-2", "node-3", "master-1"]


def test_grid_cell_and_grouping_helpers(nodes, shards):
    snapshot = parse(nodes, [], shards)
    node_3 = snapshot.find_node("node-3")

    assert len(node_3.shards_for("metrics")) == 2
    assert node_3.shards_for("logs") == ()
    assert snapshot.shards_for("node-3", "metrics") == node_3.shards_for("metrics")

    grouped = snapshot.group_by_index()
    assert sorted(grouped) == ["logs", "metrics"]
    assert len(grouped["metrics"]) == 4
