"""
Data model for marksync.

Nodes mirror the browser's bookmark tree. Descriptors are the flat export
unit sent to the remote endpoint, and the sync record is the durable
configuration shared by every execution context.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional


@dataclass
class BookmarkNode:
    """
    An entry in the bookmark tree.

    A node is a folder when it has a children list (possibly empty) and a
    link when it has a URL.

    Attributes:
        id: Browser-assigned identifier
        title: Display title
        url: Target URL (None for folders)
        parent_id: Identifier of the containing folder (None for the root)
        index: Position within the parent folder
        date_added: Creation time in milliseconds since the Unix epoch
        date_group_modified: Last change to a folder's contents, in ms
        children: Child nodes for folders, None for links
    """
    id: str
    title: str = ""
    url: Optional[str] = None
    parent_id: Optional[str] = None
    index: Optional[int] = None
    date_added: Optional[int] = None
    date_group_modified: Optional[int] = None
    children: Optional[List["BookmarkNode"]] = None

    @property
    def is_folder(self) -> bool:
        return self.children is not None

    def walk(self) -> Iterator["BookmarkNode"]:
        """Yield this node and every descendant, depth first."""
        yield self
        for child in self.children or []:
            yield from child.walk()

    def descendant_ids(self) -> List[str]:
        """Identifiers of every descendant, excluding this node."""
        ids = []
        for child in self.children or []:
            ids.append(child.id)
            if child.is_folder:
                ids.extend(child.descendant_ids())
        return ids


@dataclass
class NodeDescriptor:
    """A resolved, serializable snapshot of one selected node."""
    id: str
    name: str
    url: Optional[str]
    parent_id: Optional[str]
    index: int
    date_added: Optional[int]
    date_group_modified: Optional[int]

    @property
    def is_folder(self) -> bool:
        return not self.url

    @classmethod
    def from_node(cls, node: BookmarkNode) -> "NodeDescriptor":
        return cls(
            id=node.id,
            name=node.title or "",
            url=node.url or None,
            parent_id=node.parent_id or None,
            index=node.index or 0,
            date_added=node.date_added or None,
            date_group_modified=node.date_group_modified or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire representation."""
        return {
            'id': self.id,
            'name': self.name,
            'url': self.url,
            'parentId': self.parent_id,
            'index': self.index,
            'dateAdded': self.date_added,
            'dateGroupModified': self.date_group_modified,
            'isFolder': self.is_folder,
        }


@dataclass
class SyncRecord:
    """
    The durable configuration record.

    Writers always persist all three keys together so that a store's change
    notification never observes a half-written record.
    """
    endpoint_url: str = ""
    shared_secret: str = ""
    selected_ids: List[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        """Whether a sync cycle has everything it needs to run."""
        return bool(self.endpoint_url) and bool(self.selected_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'endpointUrl': self.endpoint_url,
            'selectedIds': list(self.selected_ids),
            'sharedSecret': self.shared_secret,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncRecord":
        return cls(
            endpoint_url=data.get('endpointUrl') or "",
            shared_secret=data.get('sharedSecret') or "",
            selected_ids=[str(i) for i in data.get('selectedIds') or []],
        )
