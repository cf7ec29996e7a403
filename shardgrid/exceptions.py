"""
Custom Exceptions
Exception classes for ShardGrid error handling
"""

from typing import Any, Dict, List, Optional


class ShardGridError(Exception):
    """
    Base exception for all ShardGrid errors.
    """

    def __init__(
        self,
        message: str,
        code: str = "SHARDGRID_ERROR",
        details: Optional[List[Dict[str, Any]]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or []
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for reporting"""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


# Topology Exceptions

class TopologyFetchError(ShardGridError):
    """Raised when cluster topology cannot be retrieved"""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        details = [{"endpoint": endpoint}] if endpoint else []
        super().__init__(
            message=message,
            code="TOPOLOGY_FETCH_FAILED",
            details=details
        )


class ClusterNotFoundError(ShardGridError):
    """Raised when a request targets a cluster this client does not serve"""

    def __init__(self, cluster_id: str):
        super().__init__(
            message=f"Cluster '{cluster_id}' not found. Please verify the cluster ID.",
            code="CLUSTER_NOT_FOUND",
            details=[{"field": "cluster_id", "value": cluster_id}]
        )


# Relocation Exceptions

class RelocationError(ShardGridError):
    """Base exception for relocation workflow errors"""

    def __init__(self, message: str, code: str = "RELOCATION_ERROR",
                 details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message=message, code=code, details=details)


class ShardNotRelocatableError(RelocationError):
    """Raised when an operator selects a shard that cannot be moved"""

    def __init__(self, shard_key: str, state: str):
        super().__init__(
            message=f"Shard {shard_key} is {state}; only STARTED shards can be relocated",
            code="SHARD_NOT_RELOCATABLE",
            details=[{"shard": shard_key, "state": state}]
        )


class InvalidDestinationError(RelocationError):
    """Raised when a destination is not one of the advertised targets"""

    def __init__(self, node_id: str, reason: Optional[str] = None):
        super().__init__(
            message=f"Node {node_id} is not a valid destination" + (f": {reason}" if reason else ""),
            code="INVALID_DESTINATION",
            details=[{"field": "node_id", "value": node_id}]
        )


class RelocationStateError(RelocationError):
    """Raised when a workflow step is attempted from the wrong phase"""

    def __init__(self, operation: str, phase: str):
        super().__init__(
            message=f"Cannot {operation} while relocation workflow is {phase}",
            code="INVALID_RELOCATION_STATE",
            details=[{"operation": operation, "phase": phase}]
        )


class RelocationValidationError(RelocationError):
    """Raised when relocation request parameters are invalid"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = []
        if field:
            details.append({"field": field, "message": message})

        super().__init__(
            message=message,
            code="VALIDATION_FAILED",
            details=details
        )


class RelocationSubmissionError(RelocationError):
    """Raised when the cluster rejects or fails a relocation request"""

    def __init__(self, reason: str, status: Optional[int] = None):
        self.reason = reason
        self.status = status
        details = [{"status": status}] if status is not None else []
        super().__init__(
            message=reason,
            code="RELOCATION_FAILED",
            details=details
        )
