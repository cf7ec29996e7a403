"""
ShardGrid Engine

Owns one grid view of a cluster: the current snapshot, the snapshot cache,
the relocation workflow and the progress tracker. Topology retrieval and
relocation submission are injected, and consumers observe changes by
subscribing to engine events.
"""

import asyncio
import logging
from typing import Callable, Dict, Optional, Protocol

from .cache import SnapshotCache
from .config import Settings
from .events import EngineEvent, EventBus, EventType
from .exceptions import TopologyFetchError
from .models import GridSnapshot, RelocationIntent, ShardInfo, Topology
from .relocation.state_machine import (
    RelocationPhase,
    RelocationResult,
    RelocationStateMachine,
    RelocationSubmitter,
)
from .relocation.tracker import ProgressTracker
from .topology.parser import parse

logger = logging.getLogger(__name__)


class TopologySource(Protocol):
    """Retrieves raw cluster topology."""

    async def fetch_topology(self) -> Topology:
        ...


class ShardGridEngine:
    """
    Cluster topology and shard relocation engine.

    The snapshot is written only by the publish step; the tracked set only
    by the tracker and the state machine.
    """

    def __init__(
        self,
        source: TopologySource,
        submitter: RelocationSubmitter,
        cluster_id: str = "default",
        refresh_interval: float = 30.0,
        poll_interval: float = 2.0,
        relocation_timeout: float = 300.0,
        cache_ttl: float = 30.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the engine.

        Args:
            source: Topology source (nodes, indices, shards)
            submitter: Relocation request sender
            cluster_id: Identifier of the cluster passed to the submitter
            refresh_interval: Background refresh interval (seconds)
            poll_interval: Relocation progress poll interval (seconds)
            relocation_timeout: Ceiling for relocation tracking (seconds)
            cache_ttl: Snapshot cache TTL (seconds)
            clock: Monotonic time source shared by cache and tracker
        """
        self.cluster_id = cluster_id
        self.refresh_interval = refresh_interval
        self._source = source

        clock_kwargs = {"clock": clock} if clock is not None else {}

        self.events = EventBus()
        self.cache = SnapshotCache(ttl_seconds=cache_ttl, **clock_kwargs)
        self.tracker = ProgressTracker(
            fetch=self._fetch_snapshot,
            publish=self._publish,
            events=self.events,
            poll_interval=poll_interval,
            timeout=relocation_timeout,
            **clock_kwargs,
        )
        self.relocation = RelocationStateMachine(
            cluster_id=cluster_id,
            snapshot_provider=lambda: self._snapshot,
            submitter=submitter,
            tracker=self.tracker,
            cache=self.cache,
            events=self.events,
        )

        self._snapshot: Optional[GridSnapshot] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._refresh_generation = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        source: TopologySource,
        submitter: RelocationSubmitter,
    ) -> "ShardGridEngine":
        return cls(
            source=source,
            submitter=submitter,
            cluster_id=settings.cluster_id,
            refresh_interval=settings.refresh_interval,
            poll_interval=settings.relocation_poll_interval,
            relocation_timeout=settings.relocation_timeout,
            cache_ttl=settings.snapshot_cache_ttl,
        )

    # Subscriptions

    def subscribe(self, listener: Callable[[EngineEvent], None]) -> Callable[[], None]:
        """Register an event listener. Returns a callable that unsubscribes it."""
        return self.events.subscribe(listener)

    @property
    def snapshot(self) -> Optional[GridSnapshot]:
        return self._snapshot

    # Topology

    async def _fetch_snapshot(self) -> Optional[GridSnapshot]:
        """
        Fetch and parse fresh topology, writing it through to the cache.

        Returns None when the cache was invalidated while the fetch was in
        flight; such a result predates the action that invalidated it.
        """
        epoch = self.cache.epoch
        try:
            topology = await self._source.fetch_topology()
        except TopologyFetchError:
            raise
        except Exception as e:
            raise TopologyFetchError(f"Failed to fetch cluster topology: {e}") from e

        if self.cache.epoch != epoch:
            logger.debug("Discarding topology fetched before the last cache invalidation")
            return None

        snapshot = parse(topology.nodes, topology.indices, topology.shards)
        self.cache.put(snapshot)
        return snapshot

    def _publish(self, snapshot: GridSnapshot):
        self._snapshot = snapshot
        self.events.emit(
            EventType.SNAPSHOT_UPDATED,
            nodes=len(snapshot.nodes),
            indices=len(snapshot.indices),
            unassigned=len(snapshot.unassigned_shards),
        )

    async def refresh(self, force: bool = False) -> GridSnapshot:
        """
        Return an up-to-date snapshot.

        Serves the cache unless forced or relocations are being tracked.

        Raises:
            TopologyFetchError: topology could not be retrieved
        """
        if not force and not self.tracker.is_polling:
            cached = self.cache.get()
            if cached is not None:
                if cached is not self._snapshot:
                    self._publish(cached)
                return cached

        snapshot = None
        while snapshot is None:
            snapshot = await self._fetch_snapshot()
        self._publish(snapshot)
        return snapshot

    def start_auto_refresh(self):
        """Start background refresh on the normal refresh interval."""
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_generation += 1
        self._refresh_task = asyncio.create_task(self._refresh_loop(self._refresh_generation))
        logger.info(f"Auto refresh started (every {self.refresh_interval}s)")

    def stop_auto_refresh(self):
        self._refresh_generation += 1
        task, self._refresh_task = self._refresh_task, None
        if task is not None and not task.done():
            task.cancel()
            logger.info("Auto refresh stopped")

    async def _refresh_loop(self, generation: int):
        while generation == self._refresh_generation:
            await asyncio.sleep(self.refresh_interval)
            if generation != self._refresh_generation:
                return
            # The tracker publishes while it polls
            if self.tracker.is_polling:
                continue
            try:
                snapshot = await self._fetch_snapshot()
            except TopologyFetchError as e:
                logger.warning(f"Background refresh failed: {e.message}")
                continue
            if generation != self._refresh_generation:
                logger.debug("Discarding refresh result from a stopped session")
                return
            if snapshot is None or self.tracker.is_polling:
                continue
            self._publish(snapshot)

    # Relocation workflow

    @property
    def phase(self) -> RelocationPhase:
        return self.relocation.phase

    @property
    def destination_indicators(self) -> Dict[str, ShardInfo]:
        return self.relocation.destination_indicators

    def select_for_relocation(self, shard: ShardInfo) -> Dict[str, ShardInfo]:
        """Select a shard and compute its destination indicators."""
        return self.relocation.begin_relocation(shard)

    def choose_destination(self, node_id: str) -> RelocationIntent:
        return self.relocation.choose_destination(node_id)

    async def confirm_relocation(self) -> RelocationResult:
        return await self.relocation.confirm()

    def cancel_relocation(self, reason: str = "cancelled"):
        self.relocation.cancel(reason)

    async def close(self):
        """Stop background refresh and relocation tracking."""
        self.stop_auto_refresh()
        self.relocation.cancel(reason="closed")
        await self.tracker.shutdown()
