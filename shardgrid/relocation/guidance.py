"""
Operator guidance for failed relocation requests.

The remote error text is kept verbatim; a hint chosen by substring match
is appended. The first matching rule wins.
"""

from typing import Optional, Sequence, Tuple

GUIDANCE_RULES: Sequence[Tuple[Tuple[str, ...], str]] = (
    (("timeout", "timed out"),
     "The cluster may be slow or unreachable. Please check cluster health and try again."),
    (("connection", "connect"),
     "Cannot connect to cluster. Please verify the cluster is running and accessible."),
    (("unauthorized", "401"),
     "Authentication failed. Please check your cluster credentials."),
    (("forbidden", "403"),
     "Permission denied. You may not have the required permissions to relocate shards."),
    (("no such shard", "shard not found"),
     "The shard may have been deleted or the index may not exist."),
    (("node not found", "unknown node"),
     "One of the nodes may have left the cluster."),
    (("already relocating",),
     "Please wait for the current relocation to complete."),
    (("same node",),
     "Please select a different destination node."),
    (("allocation",),
     "Check cluster allocation settings and node capacity."),
)

DEFAULT_GUIDANCE = "Check cluster logs for more details."


def guidance_for(reason: str) -> Optional[str]:
    lowered = reason.lower()
    for needles, hint in GUIDANCE_RULES:
        if any(needle in lowered for needle in needles):
            return hint
    return None


def describe_relocation_failure(reason: Optional[str]) -> str:
    """Build the operator-facing message for a failed relocation."""
    reason = (reason or "Unknown error occurred").strip()
    hint = guidance_for(reason) or DEFAULT_GUIDANCE
    return f"Failed to relocate shard: {reason.rstrip('.')}. {hint}"
