"""
Relocation Progress Tracker.

Polls cluster topology while relocations are outstanding and resolves each
tracked shard to completed, failed or removed. All tracked relocations
share one poll loop; the loop stops as soon as nothing is tracked, or when
the global timeout elapses.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from ..events import EventBus, EventType
from ..models import GridSnapshot, ShardInfo, ShardKey, ShardState

logger = logging.getLogger(__name__)

IN_FLIGHT_STATES = (ShardState.RELOCATING, ShardState.INITIALIZING)

# A fetcher returns None when its result is stale and must be skipped
SnapshotFetcher = Callable[[], Awaitable[Optional[GridSnapshot]]]
SnapshotPublisher = Callable[[GridSnapshot], None]


class RelocationOutcome(str, Enum):
    """Result of evaluating one tracked shard against a snapshot."""
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"
    REMOVED = "removed"


def evaluate_copies(copies: List[ShardInfo]) -> RelocationOutcome:
    """
    Classify the copies of one shard identity found in a fresh snapshot.

    A replica key can match several copies; any copy still moving keeps the
    relocation in flight, otherwise any unassigned copy means it failed.
    """
    if not copies:
        return RelocationOutcome.REMOVED
    if any(c.state in IN_FLIGHT_STATES or c.relocating_node for c in copies):
        return RelocationOutcome.IN_FLIGHT
    if any(c.state == ShardState.UNASSIGNED for c in copies):
        return RelocationOutcome.FAILED
    return RelocationOutcome.COMPLETED


@dataclass(frozen=True)
class TrackedRelocation:
    """A submitted move: the shard as selected and the destination node id."""
    shard: ShardInfo
    destination: Optional[str] = None

    @property
    def key(self) -> ShardKey:
        return self.shard.key


def _host_id(snapshot: GridSnapshot, reference: Optional[str]) -> Optional[str]:
    node = snapshot.find_node(reference)
    return node.id if node is not None else None


def evaluate_relocation(snapshot: GridSnapshot, relocation: TrackedRelocation) -> RelocationOutcome:
    """
    Classify one tracked move against a fresh snapshot.

    Only the copy on the destination and the copy still on the source
    decide the outcome, so sibling replicas sharing the key are ignored.
    Without a known destination all copies of the key are considered.
    """
    copies = snapshot.copies_of(relocation.key)
    if relocation.destination is None:
        return evaluate_copies(copies)
    if not copies:
        return RelocationOutcome.REMOVED

    source_id = _host_id(snapshot, relocation.shard.node)
    destination_id = _host_id(snapshot, relocation.destination)

    at_destination = [c for c in copies if destination_id and _host_id(snapshot, c.node) == destination_id]
    if at_destination:
        if any(c.state in IN_FLIGHT_STATES or c.relocating_node for c in at_destination):
            return RelocationOutcome.IN_FLIGHT
        return RelocationOutcome.COMPLETED

    # Still on the source: relocating, or the move is not visible yet
    if any(source_id and _host_id(snapshot, c.node) == source_id for c in copies):
        return RelocationOutcome.IN_FLIGHT

    if any(c.state == ShardState.UNASSIGNED for c in copies):
        return RelocationOutcome.FAILED
    return RelocationOutcome.REMOVED


class ProgressTracker:
    """
    Tracks submitted relocations until the cluster converges.

    Owns the Tracked Relocation Set and the poll task. Every start or stop
    bumps a generation counter; a poll cycle whose generation is no longer
    current discards its result.
    """

    def __init__(
        self,
        fetch: SnapshotFetcher,
        publish: SnapshotPublisher,
        events: Optional[EventBus] = None,
        poll_interval: float = 2.0,
        timeout: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            fetch: Fetches and parses fresh topology, bypassing any cache
            publish: Publishes an evaluated snapshot to readers
            events: Event bus for completion, failure and timeout signals
            poll_interval: Seconds between polls
            timeout: Seconds after which tracking is abandoned
            clock: Monotonic time source
        """
        self._fetch = fetch
        self._publish = publish
        self._events = events if events is not None else EventBus()
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._clock = clock

        self._tracked: Dict[ShardKey, TrackedRelocation] = {}
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._started_at: Optional[float] = None

    @property
    def tracked_keys(self) -> List[ShardKey]:
        return list(self._tracked)

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def started_at(self) -> Optional[float]:
        return self._started_at

    def is_tracking(self, shard: ShardInfo) -> bool:
        return shard.key in self._tracked

    def track(self, shard: ShardInfo, destination: Optional[str] = None):
        """
        Add a relocated shard to the tracked set and make sure polling runs.

        Args:
            shard: The shard as selected, hosted on the source node
            destination: Id of the node the shard is moving to
        """
        self._tracked[shard.key] = TrackedRelocation(shard, destination)
        logger.info(f"Tracking relocation of {shard.key} ({len(self._tracked)} in flight)")
        if not self.is_polling:
            self._start()

    def untrack(self, key: ShardKey) -> bool:
        removed = self._tracked.pop(key, None) is not None
        if not self._tracked and self.is_polling:
            self.stop()
        return removed

    def _start(self):
        self._generation += 1
        self._started_at = self._clock()
        self._task = asyncio.create_task(self._poll_loop(self._generation))
        logger.info(f"Relocation polling started (every {self.poll_interval}s)")

    def stop(self):
        """Stop polling immediately; results of any in-flight poll are discarded."""
        self._generation += 1
        self._started_at = None
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            logger.info("Relocation polling stopped")

    async def shutdown(self):
        """Stop polling and wait for the poll task to finish."""
        task = self._task
        self.stop()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def timed_out(self) -> bool:
        if self._started_at is None:
            return False
        return self._clock() - self._started_at > self.timeout

    async def _poll_loop(self, generation: int):
        try:
            while self._tracked and generation == self._generation:
                await asyncio.sleep(self.poll_interval)
                if generation != self._generation:
                    return

                if self.timed_out():
                    self._expire()
                    return

                try:
                    snapshot = await self._fetch()
                except Exception as e:
                    logger.warning(f"Relocation poll failed, will retry: {e}")
                    continue

                if generation != self._generation:
                    logger.debug("Discarding poll result from a stopped session")
                    return
                if snapshot is None:
                    continue

                self.evaluate(snapshot)
                self._publish(snapshot)

                if self._tracked and self.timed_out():
                    self._expire()
                    return
        finally:
            if generation == self._generation:
                self._task = None
                self._started_at = None
                logger.info("Relocation polling finished")

    def evaluate(self, snapshot: GridSnapshot) -> Dict[ShardKey, RelocationOutcome]:
        """Evaluate every tracked shard against a fresh snapshot."""
        outcomes: Dict[ShardKey, RelocationOutcome] = {}

        for key, relocation in list(self._tracked.items()):
            outcome = evaluate_relocation(snapshot, relocation)
            outcomes[key] = outcome

            if outcome == RelocationOutcome.IN_FLIGHT:
                continue

            del self._tracked[key]

            if outcome == RelocationOutcome.COMPLETED:
                logger.info(f"Relocation of {key} completed")
                self._events.emit(
                    EventType.RELOCATION_COMPLETED,
                    message=f"Shard {key.shard} of index '{key.index}' relocated successfully",
                    shard=str(key),
                )
            elif outcome == RelocationOutcome.FAILED:
                logger.warning(f"Relocation of {key} failed: shard is UNASSIGNED")
                self._events.emit(
                    EventType.RELOCATION_FAILED,
                    message=f"Shard {key.shard} of index '{key.index}' became unassigned during relocation",
                    shard=str(key),
                )
            else:
                logger.info(f"Relocated shard {key} no longer exists, untracking")
                self._events.emit(EventType.RELOCATION_UNTRACKED, shard=str(key))

        return outcomes

    def _expire(self):
        remaining = len(self._tracked)
        keys = [str(k) for k in self._tracked]
        self._tracked.clear()
        logger.warning(f"Relocation tracking timed out with {remaining} shard(s) unresolved")
        self._events.emit(
            EventType.RELOCATION_TIMED_OUT,
            message=(
                f"Relocation tracking timed out after {self.timeout:.0f}s with "
                f"{remaining} shard(s) still relocating. Refresh to check their status."
            ),
            remaining=remaining,
            shards=keys,
        )
