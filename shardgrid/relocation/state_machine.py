"""
Relocation State Machine - drives the interactive shard relocation workflow.

    IDLE -> SELECTING -> AWAITING_DESTINATION -> CONFIRMING -> IN_FLIGHT -> IDLE

Selection only accepts STARTED shards that have a host. Entering
relocation mode computes destination indicators from the current snapshot.
A destination must be chosen and then explicitly confirmed before the
relocation request is sent. Once submitted, progress is followed by the
ProgressTracker independently of this workflow, so the operator can start
another relocation straight away.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol

from ..cache import SnapshotCache
from ..events import EventBus, EventType
from ..exceptions import (
    InvalidDestinationError,
    RelocationStateError,
    ShardNotRelocatableError,
)
from ..models import GridSnapshot, RelocationIntent, ShardInfo, ShardState
from .destinations import calculate_valid_destinations
from .guidance import describe_relocation_failure
from .tracker import ProgressTracker

logger = logging.getLogger(__name__)


class RelocationPhase(str, Enum):
    """Phase of the interactive relocation workflow."""
    IDLE = "idle"
    SELECTING = "selecting"
    AWAITING_DESTINATION = "awaiting_destination"
    CONFIRMING = "confirming"
    IN_FLIGHT = "in_flight"


class RelocationSubmitter(Protocol):
    """Sends a relocation request to the cluster."""

    async def relocate_shard(
        self,
        cluster_id: str,
        index: str,
        shard: int,
        from_node: str,
        to_node: str,
    ) -> Any:
        ...


@dataclass
class RelocationResult:
    """Result of confirming a relocation."""
    success: bool
    intent: RelocationIntent
    message: str
    error: Optional[str] = None


class RelocationStateMachine:
    """
    Interactive relocation workflow for one grid view.

    Writes only its own selection fields and, on successful submission,
    the tracker's Tracked Relocation Set.
    """

    def __init__(
        self,
        cluster_id: str,
        snapshot_provider: Callable[[], Optional[GridSnapshot]],
        submitter: RelocationSubmitter,
        tracker: ProgressTracker,
        cache: SnapshotCache,
        events: Optional[EventBus] = None,
    ):
        self.cluster_id = cluster_id
        self._snapshot_provider = snapshot_provider
        self._submitter = submitter
        self._tracker = tracker
        self._cache = cache
        self._events = events if events is not None else EventBus()

        self.phase = RelocationPhase.IDLE
        self.selected_shard: Optional[ShardInfo] = None
        self.destination_indicators: Dict[str, ShardInfo] = {}
        self.intent: Optional[RelocationIntent] = None

        # Bumped on every reset so a late submission result cannot clobber
        # a newer selection
        self._session = 0

    @property
    def relocation_mode(self) -> bool:
        return self.phase in (
            RelocationPhase.AWAITING_DESTINATION,
            RelocationPhase.CONFIRMING,
            RelocationPhase.IN_FLIGHT,
        )

    def _require(self, operation: str, *phases: RelocationPhase):
        if self.phase not in phases:
            raise RelocationStateError(operation, self.phase.value)

    def _reset(self):
        self._session += 1
        self.phase = RelocationPhase.IDLE
        self.selected_shard = None
        self.destination_indicators = {}
        self.intent = None

    def select_shard(self, shard: ShardInfo):
        """
        Select a shard as relocation source.

        Raises:
            ShardNotRelocatableError: shard is not STARTED or has no host
        """
        if shard.state != ShardState.STARTED or not shard.node:
            raise ShardNotRelocatableError(str(shard.key), shard.state.value)

        if self.phase != RelocationPhase.IDLE:
            self.cancel(reason="new_selection")

        self.phase = RelocationPhase.SELECTING
        self.selected_shard = shard
        logger.debug(f"Selected {shard} for relocation")

    def enter_relocation_mode(self) -> Dict[str, ShardInfo]:
        """
        Compute destination indicators for the selected shard.

        The mode is entered even when no destination is valid, so the
        operator sees that nothing can be chosen.
        """
        self._require("enter relocation mode", RelocationPhase.SELECTING)

        snapshot = self._snapshot_provider()
        nodes = snapshot.nodes if snapshot is not None else ()
        self.destination_indicators = calculate_valid_destinations(self.selected_shard, nodes)
        self.phase = RelocationPhase.AWAITING_DESTINATION

        logger.info(
            f"Relocation mode for {self.selected_shard.key}: "
            f"{len(self.destination_indicators)} valid destination(s)"
        )
        self._events.emit(
            EventType.RELOCATION_MODE_ENTERED,
            shard=str(self.selected_shard.key),
            destinations=sorted(self.destination_indicators),
        )
        return self.destination_indicators

    def begin_relocation(self, shard: ShardInfo) -> Dict[str, ShardInfo]:
        """Select a shard and enter relocation mode in one step."""
        self.select_shard(shard)
        return self.enter_relocation_mode()

    def choose_destination(self, node_id: str) -> RelocationIntent:
        """
        Activate a destination indicator and prepare the relocation for confirmation.

        Raises:
            InvalidDestinationError: node is not an advertised destination or
                either node is no longer in the snapshot
        """
        self._require("choose a destination", RelocationPhase.AWAITING_DESTINATION)

        if node_id not in self.destination_indicators:
            raise InvalidDestinationError(node_id, "not a valid target for this shard")

        snapshot = self._snapshot_provider()
        if snapshot is None:
            raise InvalidDestinationError(node_id, "no topology snapshot available")

        source = snapshot.find_node(self.selected_shard.node)
        destination = snapshot.find_node(node_id)
        if source is None or destination is None:
            raise InvalidDestinationError(node_id, "node is no longer part of the cluster")

        self.intent = RelocationIntent(
            shard=self.selected_shard,
            source=source.node,
            destination=destination.node,
        )
        self.phase = RelocationPhase.CONFIRMING
        return self.intent

    async def confirm(self) -> RelocationResult:
        """
        Submit the pending relocation.

        Submission failures are reported in the result and as an event; the
        workflow returns to IDLE either way and nothing is retried.
        """
        self._require("confirm a relocation", RelocationPhase.CONFIRMING)

        intent = self.intent
        session = self._session
        self.phase = RelocationPhase.IN_FLIGHT

        logger.info(f"Submitting relocation of {intent.describe()}")
        try:
            await self._submitter.relocate_shard(
                self.cluster_id,
                intent.shard.index,
                intent.shard.shard,
                intent.source.id,
                intent.destination.id,
            )
        except Exception as e:
            reason = getattr(e, "reason", None) or str(e)
            message = describe_relocation_failure(reason)
            logger.warning(f"Relocation of {intent.describe()} failed: {reason}")
            if session == self._session:
                self._reset()
            self._events.emit(
                EventType.RELOCATION_SUBMIT_FAILED,
                message=message,
                shard=str(intent.shard.key),
                reason=reason,
            )
            return RelocationResult(success=False, intent=intent, message=message, error=reason)

        self._cache.invalidate()
        self._tracker.track(intent.shard, destination=intent.destination.id)
        if session == self._session:
            self._reset()

        message = f"Relocation initiated: {intent.describe()}"
        self._events.emit(
            EventType.RELOCATION_SUBMITTED,
            message=message,
            shard=str(intent.shard.key),
            from_node=intent.source.id,
            to_node=intent.destination.id,
        )
        return RelocationResult(success=True, intent=intent, message=message)

    def cancel(self, reason: str = "cancelled"):
        """
        Leave relocation mode and clear the selection.

        Tracked relocations are not affected.
        """
        if self.phase == RelocationPhase.IDLE:
            return

        previous = self.phase
        shard = self.selected_shard
        self._reset()
        logger.debug(f"Relocation workflow cancelled from {previous.value} ({reason})")
        self._events.emit(
            EventType.RELOCATION_MODE_EXITED,
            shard=str(shard.key) if shard else None,
            reason=reason,
        )
