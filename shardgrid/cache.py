"""
Snapshot cache with TTL.

Holds the last fetched GridSnapshot so repeated reads within the TTL do not
hit the cluster. Mutating actions invalidate it explicitly.
"""

import logging
import time
from typing import Callable, Dict, Optional

from .models import GridSnapshot

logger = logging.getLogger(__name__)


class SnapshotCache:
    """Single-entry cache for the last grid snapshot."""

    def __init__(self, ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            ttl_seconds: Time-to-live in seconds
            clock: Monotonic time source
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: Optional[GridSnapshot] = None
        self._stored_at = 0.0
        self._epoch = 0

        self.hits = 0
        self.misses = 0

    def get(self) -> Optional[GridSnapshot]:
        """Return the cached snapshot if it is younger than the TTL."""
        if self._entry is None:
            self.misses += 1
            return None

        age = self._clock() - self._stored_at
        if age >= self.ttl_seconds:
            logger.debug(f"Snapshot cache expired (age {age:.1f}s)")
            self._entry = None
            self.misses += 1
            return None

        self.hits += 1
        return self._entry

    def put(self, snapshot: GridSnapshot):
        """Replace the cached snapshot and reset its age."""
        self._entry = snapshot
        self._stored_at = self._clock()

    def invalidate(self):
        """Drop the cached snapshot and start a new epoch."""
        if self._entry is not None:
            logger.debug("Snapshot cache invalidated")
        self._entry = None
        self._epoch += 1

    @property
    def epoch(self) -> int:
        """Bumped by every invalidation; fetches started in an older epoch are stale."""
        return self._epoch

    @property
    def age(self) -> Optional[float]:
        if self._entry is None:
            return None
        return self._clock() - self._stored_at

    def stats(self) -> Dict:
        """Cache statistics."""
        return {
            "cached": self._entry is not None,
            "age_seconds": self.age,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
        }
