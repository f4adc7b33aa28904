"""
Snapshot building: resolve selected identifiers into node descriptors.
"""
import logging
from typing import Iterable, List

from marksync.models import NodeDescriptor
from marksync.tree import BookmarkTree

logger = logging.getLogger(__name__)


class SnapshotBuilder:
    """Resolves a selection against the live tree."""

    def __init__(self, tree: BookmarkTree):
        self.tree = tree

    async def build(self, ids: Iterable[str]) -> List[NodeDescriptor]:
        """
        Build descriptors for the given identifiers, in iteration order.

        An identifier that fails to resolve is logged and skipped. It is not
        removed from the selection: a transient lookup error must not shrink
        what the user chose to export. Pruning happens only on removal
        notifications.

        Args:
            ids: Selected node identifiers

        Returns:
            One descriptor per identifier that resolved
        """
        descriptors = []
        for node_id in list(ids):
            try:
                node = await self.tree.get(node_id)
            except Exception as e:
                logger.warning(f"Failed to resolve bookmark {node_id}: {e}")
                continue
            descriptors.append(NodeDescriptor.from_node(node))
        logger.debug(f"Snapshot resolved {len(descriptors)} bookmarks")
        return descriptors
