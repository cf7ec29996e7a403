"""
Relocation module for ShardGrid.

- destinations: valid relocation targets for a shard
- state_machine: interactive relocation workflow
- tracker: polling for relocation completion
- guidance: operator hints for failed requests
"""

from .destinations import calculate_valid_destinations
from .guidance import describe_relocation_failure
from .state_machine import (
    RelocationPhase,
    RelocationResult,
    RelocationStateMachine,
    RelocationSubmitter,
)
from .tracker import (
    ProgressTracker,
    RelocationOutcome,
    TrackedRelocation,
    evaluate_copies,
    evaluate_relocation,
)

__all__ = [
    "calculate_valid_destinations",
    "describe_relocation_failure",
    "RelocationPhase",
    "RelocationResult",
    "RelocationStateMachine",
    "RelocationSubmitter",
    "ProgressTracker",
    "RelocationOutcome",
    "TrackedRelocation",
    "evaluate_copies",
    "evaluate_relocation",
]
