"""
marksync - keep a remote endpoint informed of selected bookmarks.

A user picks a subset of their browser bookmark tree; marksync watches the
tree for edits and, once edits go quiet for a coalescing window, POSTs a
full snapshot of the selected bookmarks to a configured endpoint.

Example Usage:
    >>> from marksync import SyncEngine, MemoryConfigStore, BookmarkTree
    >>> engine = SyncEngine(MemoryConfigStore(), BookmarkTree())
    >>> await engine.start()
    >>> await engine.send_now()
"""

__version__ = "0.1.0"
__author__ = "marksync Contributors"

# Models
from marksync.models import BookmarkNode, NodeDescriptor, SyncRecord

# Errors
from marksync.errors import (
    MarksyncError,
    ConfigurationIncomplete,
    NodeResolutionFailure,
    NodeNotFound,
    TransmissionFailure,
    StoreAccessFailure,
)

# Core
from marksync.tree import BookmarkTree, TreeEvent, TreeEventKind, load_chromium_bookmarks
from marksync.store import ConfigStore, MemoryConfigStore, JsonFileConfigStore
from marksync.selection import SelectionSet
from marksync.snapshot import SnapshotBuilder
from marksync.coalescer import ChangeCoalescer, CoalescerState
from marksync.transmit import Transmitter, TransmitResult, SendObserver, RequestBridge
from marksync.engine import SyncEngine

# Configuration
from marksync.config import MarksyncConfig, get_config, init_config

__all__ = [
    # Models
    "BookmarkNode",
    "NodeDescriptor",
    "SyncRecord",
    # Errors
    "MarksyncError",
    "ConfigurationIncomplete",
    "NodeResolutionFailure",
    "NodeNotFound",
    "TransmissionFailure",
    "StoreAccessFailure",
    # Core
    "BookmarkTree",
    "TreeEvent",
    "TreeEventKind",
    "load_chromium_bookmarks",
    "ConfigStore",
    "MemoryConfigStore",
    "JsonFileConfigStore",
    "SelectionSet",
    "SnapshotBuilder",
    "ChangeCoalescer",
    "CoalescerState",
    "Transmitter",
    "TransmitResult",
    "SendObserver",
    "RequestBridge",
    "SyncEngine",
    # Config
    "MarksyncConfig",
    "get_config",
    "init_config",
]
