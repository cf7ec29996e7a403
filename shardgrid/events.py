"""
Engine Event Definitions

Events published by the engine to its subscribers about snapshot updates
and the progress of shard relocations.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of engine events."""
    SNAPSHOT_UPDATED = "snapshot_updated"

    # Interactive relocation mode
    RELOCATION_MODE_ENTERED = "relocation_mode_entered"
    RELOCATION_MODE_EXITED = "relocation_mode_exited"

    # Submission
    RELOCATION_SUBMITTED = "relocation_submitted"
    RELOCATION_SUBMIT_FAILED = "relocation_submit_failed"

    # Progress tracking
    RELOCATION_COMPLETED = "relocation_completed"
    RELOCATION_FAILED = "relocation_failed"
    RELOCATION_UNTRACKED = "relocation_untracked"
    RELOCATION_TIMED_OUT = "relocation_timed_out"


class EngineEvent(BaseModel):
    """An event delivered to engine subscribers."""
    event_type: EventType
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    message: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


EventListener = Callable[[EngineEvent], None]


class EventBus:
    """Synchronous fan-out of engine events to listeners."""

    def __init__(self):
        self._listeners: List[EventListener] = []

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event_type: EventType, message: Optional[str] = None, **payload: Any) -> EngineEvent:
        event = EngineEvent(event_type=event_type, message=message, payload=payload)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener failed on {event_type.value}: {e}")
        return event

    def __len__(self) -> int:
        return len(self._listeners)
