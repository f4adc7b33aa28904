"""
In-memory bookmark tree and its change events.

The tree stands in for the browser's bookmark store: it answers per-node
lookups and notifies listeners of every mutation. It can be loaded from a
Chromium ``Bookmarks`` file, and two loaded snapshots can be diffed into the
events a live browser would have emitted.
"""
import json
import logging
import os
import platform
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from marksync.errors import NodeNotFound
from marksync.models import BookmarkNode

logger = logging.getLogger(__name__)

# Chromium timestamps count microseconds from 1601-01-01
CHROMIUM_EPOCH_DELTA_US = 11644473600000000

ROOT_ID = "0"


class TreeEventKind(Enum):
    """Mutation classes reported by the tree."""
    CREATED = "created"
    CHANGED = "changed"
    MOVED = "moved"
    CHILDREN_REORDERED = "children_reordered"
    REMOVED = "removed"


@dataclass
class TreeEvent:
    """A single tree mutation notification."""
    kind: TreeEventKind
    node_id: str


TreeListener = Callable[[TreeEvent], Any]


class BookmarkTree:
    """
    Hierarchical bookmark store with change notification.

    Listeners are called synchronously with a TreeEvent after each mutation.
    A listener may return an awaitable; collecting it is the listener's
    business.
    """

    def __init__(self, root: Optional[BookmarkNode] = None):
        self.root = root or BookmarkNode(id=ROOT_ID, children=[])
        self._index: Dict[str, BookmarkNode] = {}
        self._listeners: List[TreeListener] = []
        self._reindex()

    def _reindex(self):
        self._index = {node.id: node for node in self.root.walk()}

    def subscribe(self, listener: TreeListener):
        self._listeners.append(listener)

    def unsubscribe(self, listener: TreeListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, kind: TreeEventKind, node_id: str):
        event = TreeEvent(kind, node_id)
        logger.debug(f"Tree event: {kind.value} {node_id}")
        for listener in list(self._listeners):
            listener(event)

    # Lookups

    def find(self, node_id: str) -> Optional[BookmarkNode]:
        return self._index.get(node_id)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._index

    def __len__(self) -> int:
        return len(self._index)

    async def get(self, node_id: str) -> BookmarkNode:
        """
        Resolve a single node.

        Raises:
            NodeNotFound: If no node has this identifier
        """
        node = self._index.get(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        return node

    # Mutations

    def _folder(self, folder_id: str) -> BookmarkNode:
        folder = self._index.get(folder_id)
        if folder is None:
            raise NodeNotFound(folder_id)
        if not folder.is_folder:
            raise ValueError(f"Bookmark {folder_id} is not a folder")
        return folder

    @staticmethod
    def _renumber(folder: BookmarkNode):
        for position, child in enumerate(folder.children):
            child.index = position

    def create(self, parent_id: str, node: BookmarkNode, index: Optional[int] = None) -> BookmarkNode:
        """Insert a node (and any children it carries) under a folder."""
        if node.id in self._index:
            raise ValueError(f"Bookmark {node.id} already exists")
        parent = self._folder(parent_id)
        position = len(parent.children) if index is None else index
        node.parent_id = parent_id
        parent.children.insert(position, node)
        self._renumber(parent)
        for child in node.walk():
            self._index[child.id] = child
        self._emit(TreeEventKind.CREATED, node.id)
        return node

    def update(self, node_id: str, title: Optional[str] = None, url: Optional[str] = None) -> BookmarkNode:
        node = self._index.get(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        if title is not None:
            node.title = title
        if url is not None and not node.is_folder:
            node.url = url
        self._emit(TreeEventKind.CHANGED, node_id)
        return node

    def move(self, node_id: str, parent_id: str, index: Optional[int] = None) -> BookmarkNode:
        node = self._index.get(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        new_parent = self._folder(parent_id)
        if new_parent.id in {n.id for n in node.walk()}:
            raise ValueError("Cannot move a folder into itself")
        old_parent = self._index[node.parent_id]
        old_parent.children.remove(node)
        self._renumber(old_parent)
        position = len(new_parent.children) if index is None else index
        new_parent.children.insert(position, node)
        node.parent_id = parent_id
        self._renumber(new_parent)
        self._emit(TreeEventKind.MOVED, node_id)
        return node

    def reorder(self, folder_id: str, child_ids: List[str]):
        folder = self._folder(folder_id)
        by_id = {child.id: child for child in folder.children}
        if set(child_ids) != set(by_id):
            raise ValueError("Reorder must list exactly the folder's children")
        folder.children = [by_id[i] for i in child_ids]
        self._renumber(folder)
        self._emit(TreeEventKind.CHILDREN_REORDERED, folder_id)

    def remove(self, node_id: str):
        """
        Remove a node and its subtree.

        A REMOVED event is emitted for every descendant (deepest first) and
        then for the node itself.
        """
        node = self._index.get(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        if node.parent_id is None:
            raise ValueError("Cannot remove the root folder")
        parent = self._index[node.parent_id]
        parent.children.remove(node)
        self._renumber(parent)

        removed = list(node.walk())
        for child in reversed(removed):
            del self._index[child.id]
        for child in reversed(removed):
            self._emit(TreeEventKind.REMOVED, child.id)

    def replace_root(self, root: BookmarkNode) -> List[TreeEvent]:
        """
        Swap in a freshly loaded snapshot and emit the differences.

        Returns:
            The events emitted, in order
        """
        events = diff_trees(self.root, root)
        self.root = root
        self._reindex()
        for event in events:
            self._emit(event.kind, event.node_id)
        return events


# ============================================================================
# Chromium bookmark files
# ============================================================================

def chromium_timestamp_to_ms(value: Any) -> Optional[int]:
    """Convert a Chromium timestamp (µs since 1601) to ms since the Unix epoch."""
    if not value:
        return None
    try:
        return (int(value) - CHROMIUM_EPOCH_DELTA_US) // 1000
    except (TypeError, ValueError):
        return None


def _convert_chromium_node(item: Dict[str, Any], parent_id: str, index: int) -> BookmarkNode:
    node = BookmarkNode(
        id=str(item.get('id')),
        title=item.get('name', ''),
        parent_id=parent_id,
        index=index,
        date_added=chromium_timestamp_to_ms(item.get('date_added')),
    )
    if item.get('type') == 'folder' or 'children' in item:
        node.date_group_modified = chromium_timestamp_to_ms(item.get('date_modified'))
        node.children = [
            _convert_chromium_node(child, node.id, position)
            for position, child in enumerate(item.get('children', []))
        ]
    else:
        node.url = item.get('url')
    return node


def parse_chromium_bookmarks(data: Dict[str, Any]) -> BookmarkNode:
    """Build a tree root from parsed Chromium ``Bookmarks`` JSON."""
    root = BookmarkNode(id=ROOT_ID, children=[])
    roots = data.get('roots', {})
    for root_name in ('bookmark_bar', 'other', 'synced'):
        root_data = roots.get(root_name)
        if isinstance(root_data, dict) and 'children' in root_data:
            root.children.append(
                _convert_chromium_node(root_data, ROOT_ID, len(root.children))
            )
    return root


def read_chromium_bookmarks(path: Path) -> BookmarkNode:
    """Read a Chromium ``Bookmarks`` file into a tree root."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return parse_chromium_bookmarks(data)


def load_chromium_bookmarks(path: Path) -> BookmarkTree:
    """Load a Chromium ``Bookmarks`` file into a BookmarkTree."""
    return BookmarkTree(read_chromium_bookmarks(path))


def find_chromium_bookmarks_file(profile: str = "Default") -> Optional[Path]:
    """Locate the default Chromium-family bookmarks file on this system."""
    home = Path.home()
    system = platform.system()
    if system == "Darwin":
        candidates = [
            home / "Library/Application Support/Google/Chrome",
            home / "Library/Application Support/Chromium",
            home / "Library/Application Support/Microsoft Edge",
            home / "Library/Application Support/BraveSoftware/Brave-Browser",
        ]
    elif system == "Windows":
        appdata = Path(os.environ.get('LOCALAPPDATA', ''))
        candidates = [
            appdata / "Google/Chrome/User Data",
            appdata / "Chromium/User Data",
            appdata / "Microsoft/Edge/User Data",
            appdata / "BraveSoftware/Brave-Browser/User Data",
        ]
    else:
        candidates = [
            home / ".config/google-chrome",
            home / ".config/chromium",
            home / ".config/microsoft-edge",
            home / ".config/BraveSoftware/Brave-Browser",
        ]

    for browser_dir in candidates:
        path = browser_dir / profile / "Bookmarks"
        if path.exists():
            return path

    logger.warning("Could not find a Chromium bookmarks file")
    return None


def diff_trees(old: BookmarkNode, new: BookmarkNode) -> List[TreeEvent]:
    """
    Compute the events that turn one tree snapshot into another.

    Removals are reported for every vanished node, deepest first, matching
    the cascade a live tree emits.
    """
    old_nodes = {node.id: node for node in old.walk()}
    new_nodes = {node.id: node for node in new.walk()}
    events = []

    for node in new.walk():
        before = old_nodes.get(node.id)
        if before is None:
            # Children of a new folder are covered by its CREATED event
            if node.parent_id is not None and node.parent_id not in old_nodes:
                continue
            events.append(TreeEvent(TreeEventKind.CREATED, node.id))
            continue
        if before.title != node.title or before.url != node.url:
            events.append(TreeEvent(TreeEventKind.CHANGED, node.id))
        if before.parent_id != node.parent_id:
            events.append(TreeEvent(TreeEventKind.MOVED, node.id))
        if node.is_folder and before.is_folder:
            old_order = [c.id for c in before.children if c.id in new_nodes]
            new_order = [c.id for c in node.children if c.id in old_nodes]
            if old_order != new_order and set(old_order) == set(new_order):
                events.append(TreeEvent(TreeEventKind.CHILDREN_REORDERED, node.id))

    vanished = [node for node in old.walk() if node.id not in new_nodes]
    for node in reversed(vanished):
        events.append(TreeEvent(TreeEventKind.REMOVED, node.id))

    return events
