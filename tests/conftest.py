"""
Shared pytest fixtures for ShardGrid tests
"""
import os
import sys
from typing import List, Optional
from unittest.mock import AsyncMock

import pytest

# Add project root to path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from shardgrid.models import IndexInfo, NodeInfo, ShardInfo, Topology  # noqa: E402


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "integration: tests spanning several modules")
    config.addinivalue_line("markers", "slow: tests that take more than a few seconds")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeTopologySource:
    """In-memory topology source whose shards can be swapped between fetches."""

    def __init__(self, nodes: List[NodeInfo], indices: List[IndexInfo], shards: List[ShardInfo]):
        self.nodes = nodes
        self.indices = indices
        self.shards = shards
        self.calls = 0
        self.error: Optional[Exception] = None

    async def fetch_topology(self) -> Topology:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return Topology(nodes=list(self.nodes), indices=list(self.indices), shards=list(self.shards))


def _shard(index="logs", shard=0, primary=True, state="STARTED", node="node-1",
           relocating_node=None, **extra) -> ShardInfo:
    return ShardInfo(
        index=index,
        shard=shard,
        primary=primary,
        state=state,
        node=node,
        relocating_node=relocating_node,
        **extra
    )


@pytest.fixture
def make_shard():
    """Factory for shard records (defaults: logs[0]p STARTED on node-1)"""
    return _shard


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def nodes() -> List[NodeInfo]:
    """Three data nodes and one dedicated master"""
    return [
        NodeInfo(id="node-1", name="es-data-1", ip="10.0.0.1", roles=["data", "ingest"]),
        NodeInfo(id="node-2", name="es-data-2", ip="10.0.0.2", roles=["data"]),
        NodeInfo(id="node-3", name="es-data-3", ip="10.0.0.3", roles=["data", "master"]),
        NodeInfo(id="master-1", name="es-master-1", ip="10.0.0.9", roles=["master"], is_master=True),
    ]


@pytest.fixture
def indices() -> List[IndexInfo]:
    return [
        IndexInfo(name="logs", health="green", primary_shards=1, replica_shards=1),
        IndexInfo(name="metrics", health="yellow", primary_shards=2, replica_shards=1),
    ]


@pytest.fixture
def shards() -> List[ShardInfo]:
    """logs[0]p on node-1, logs[0]r on node-2, metrics spread with one unassigned replica"""
    return [
        _shard("logs", 0, True, "STARTED", "node-1"),
        _shard("logs", 0, False, "STARTED", "node-2"),
        _shard("metrics", 0, True, "STARTED", "node-2"),
        _shard("metrics", 0, False, "STARTED", "node-3"),
        _shard("metrics", 1, True, "STARTED", "node-3"),
        _shard("metrics", 1, False, "UNASSIGNED", None),
    ]


@pytest.fixture
def source(nodes, indices, shards) -> FakeTopologySource:
    return FakeTopologySource(nodes, indices, shards)


@pytest.fixture
def submitter():
    """Relocation submitter that accepts every request"""
    mock = AsyncMock()
    mock.relocate_shard = AsyncMock(return_value={"acknowledged": True})
    return mock
