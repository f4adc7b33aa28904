"""
Exception hierarchy for marksync.

All core failures are contained within the sync cycle that produced them.
These types exist so callers can classify what went wrong; only the
interactive path ever surfaces them to the user.
"""
from typing import Optional


class MarksyncError(Exception):
    """Base exception for marksync errors."""
    pass


class ConfigurationIncomplete(MarksyncError):
    """Raised when the endpoint URL is unset or nothing is selected."""
    pass


class NodeResolutionFailure(MarksyncError):
    """Raised when a single node identifier cannot be resolved."""

    def __init__(self, node_id: str, message: Optional[str] = None):
        self.node_id = node_id
        super().__init__(message or f"Could not resolve bookmark {node_id}")


class NodeNotFound(NodeResolutionFailure):
    """Raised when a node does not exist in the tree."""

    def __init__(self, node_id: str):
        super().__init__(node_id, f"Bookmark not found: {node_id}")


class TransmissionFailure(MarksyncError):
    """Raised for a non-success HTTP status or a network-level failure."""
    pass


class StoreAccessFailure(MarksyncError):
    """Raised when the durable configuration store cannot be read or written."""
    pass
