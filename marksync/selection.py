"""
The set of bookmark identifiers selected for export.

SelectionSet is an in-memory cache of the store's ``selectedIds``. Every
mutation persists the full set; a failed write leaves the cache as it was.
"""
import logging
from typing import Dict, Iterable, Iterator, List

from marksync.errors import StoreAccessFailure
from marksync.models import BookmarkNode
from marksync.store import ConfigStore, StoreChanges

logger = logging.getLogger(__name__)


class SelectionSet:
    """
    Selected node identifiers, bound to a ConfigStore.

    Iteration follows insertion order so snapshots are deterministic within
    a process; the order carries no meaning for the remote side.
    """

    def __init__(self, store: ConfigStore):
        self.store = store
        # dict as an insertion-ordered set
        self._ids: Dict[str, None] = {}

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._ids))

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def ids(self) -> List[str]:
        return list(self._ids)

    async def load(self):
        """Replace the cache with the stored selection."""
        record = await self.store.read()
        self._ids = dict.fromkeys(record.selected_ids)
        logger.debug(f"Loaded selection: {len(self._ids)} bookmarks")

    def on_store_changed(self, changes: StoreChanges):
        """Store subscription callback; picks up edits from other contexts."""
        if 'selectedIds' in changes:
            _, new_ids = changes['selectedIds']
            self._ids = dict.fromkeys(new_ids or [])

    async def _commit(self, ids: Dict[str, None]):
        """
        Persist a candidate selection, then adopt it.

        Raises:
            StoreAccessFailure: If the store cannot be read or written; the
                cache is left untouched
        """
        record = await self.store.read()
        record.selected_ids = list(ids)
        await self.store.write(record)
        self._ids = ids

    async def add(self, node_id: str):
        ids = dict(self._ids)
        ids[node_id] = None
        await self._commit(ids)

    async def remove(self, node_id: str):
        ids = dict(self._ids)
        ids.pop(node_id, None)
        await self._commit(ids)

    async def update(self, add: Iterable[str] = (), remove: Iterable[str] = ()):
        """Apply several additions and removals with a single write."""
        ids = dict(self._ids)
        for node_id in add:
            ids[node_id] = None
        for node_id in remove:
            ids.pop(node_id, None)
        await self._commit(ids)

    async def select_subtree(self, folder: BookmarkNode):
        """Select a folder and, recursively, everything beneath it."""
        await self.update(add=[folder.id] + folder.descendant_ids())

    async def deselect_subtree(self, folder: BookmarkNode):
        """Deselect a folder and, recursively, everything beneath it."""
        await self.update(remove=[folder.id] + folder.descendant_ids())

    async def on_node_removed(self, node_id: str) -> bool:
        """
        Prune a removed node from the selection.

        Descendants of a removed folder arrive as their own notifications,
        so this never recurses.

        Returns:
            True if the identifier was selected and the pruned set was saved
        """
        if node_id not in self._ids:
            return False
        ids = dict(self._ids)
        del ids[node_id]
        try:
            await self._commit(ids)
        except StoreAccessFailure as e:
            logger.error(f"Failed to prune removed bookmark {node_id}: {e}")
            return False
        logger.info(f"Bookmark {node_id} was removed and dropped from the selection")
        return True
