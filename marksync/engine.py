"""
Sync engine: wires the tree, store, selection, snapshot builder,
coalescer and transmitter together.

Two paths share the same transmission contract:

- the automatic path, driven by tree events through the coalescer, which
  only ever logs its outcome;
- the interactive "send now" path, which bypasses the coalescer and reports
  success or failure back to its caller.
"""
import asyncio
import logging
import time
from typing import Callable, List, Optional

from marksync.coalescer import ChangeCoalescer, DEFAULT_WINDOW_SECONDS
from marksync.errors import ConfigurationIncomplete, StoreAccessFailure
from marksync.models import SyncRecord
from marksync.selection import SelectionSet
from marksync.snapshot import SnapshotBuilder
from marksync.store import ConfigStore
from marksync.transmit import (
    AUTO_SYNC_SOURCE, SEND_ACTION, RequestBridge, SendObserver,
    TransmitResult, Transmitter, build_envelope, build_request_url,
)
from marksync.tree import BookmarkTree, TreeEvent, TreeEventKind

logger = logging.getLogger(__name__)

INCOMPLETE_MESSAGE = "Endpoint URL and at least one selected bookmark are required"


class SyncEngine:
    """
    Keeps a remote endpoint informed of the selected bookmarks.

    Args:
        store: Durable configuration store
        tree: Live bookmark tree
        transmitter: Outbound HTTP transmitter
        window: Coalescing window in seconds
        clock: Monotonic time source for the coalescer
    """

    def __init__(self, store: ConfigStore, tree: BookmarkTree,
                 transmitter: Optional[Transmitter] = None,
                 window: float = DEFAULT_WINDOW_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.store = store
        self.tree = tree
        self.transmitter = transmitter or Transmitter()
        self.selection = SelectionSet(store)
        self.snapshots = SnapshotBuilder(tree)
        self.bridge = RequestBridge(self.transmitter)
        self.coalescer = ChangeCoalescer(self.run_auto_cycle, window=window, clock=clock)
        self._pending_prunes: List[str] = []
        self._prune_task: Optional[asyncio.Future] = None

    async def start(self):
        """Load the selection and subscribe to store and tree changes."""
        try:
            await self.selection.load()
        except StoreAccessFailure as e:
            logger.error(f"Failed to load selection: {e}")
        self.store.subscribe(self.selection.on_store_changed)
        self.tree.subscribe(self.on_tree_event)

    def stop(self):
        self.tree.unsubscribe(self.on_tree_event)
        self.store.unsubscribe(self.selection.on_store_changed)
        self.coalescer.stop()

    def on_tree_event(self, event: TreeEvent):
        """
        Tree listener; must be called from within the running event loop.

        Every removal prunes the selection, whether or not a snapshot was
        ever taken, since removed nodes cannot be looked up later. Pruning
        waits on the store, so removals are queued and drained in order by a
        background task. Every event kind then reschedules the coalesced
        sync.
        """
        if event.kind == TreeEventKind.REMOVED:
            self._pending_prunes.append(event.node_id)
            if self._prune_task is None or self._prune_task.done():
                self._prune_task = asyncio.ensure_future(self._drain_prunes())
        self.coalescer.signal()

    async def _drain_prunes(self):
        while self._pending_prunes:
            node_id = self._pending_prunes.pop(0)
            await self.selection.on_node_removed(node_id)

    async def flush(self):
        """Wait until queued removal pruning has been persisted."""
        if self._prune_task is not None:
            await self._prune_task

    async def _read_complete_record(self) -> SyncRecord:
        """
        Re-read the record and check it can drive a transmission.

        Raises:
            ConfigurationIncomplete: If the endpoint or selection is empty
            StoreAccessFailure: If the store cannot be read
        """
        record = await self.store.read()
        if not record.is_complete:
            raise ConfigurationIncomplete(INCOMPLETE_MESSAGE)
        return record

    async def run_auto_cycle(self) -> Optional[TransmitResult]:
        """
        One coalesced sync cycle. Failures are logged, never raised.

        Returns:
            The transmission outcome, or None if the cycle was skipped
        """
        try:
            record = await self._read_complete_record()
        except ConfigurationIncomplete:
            logger.info("No endpoint URL configured or no bookmarks selected, skipping sync")
            return None
        except StoreAccessFailure as e:
            logger.error(f"Failed to read configuration, skipping sync: {e}")
            return None

        descriptors = await self.snapshots.build(record.selected_ids)
        result = await self.transmitter.send(descriptors, record, source=AUTO_SYNC_SOURCE)
        if result.success:
            logger.info(f"Auto-sync succeeded: {result.data}")
        else:
            logger.error(f"Auto-sync failed: {result.error}")
        return result

    async def send_now(self, observer: Optional[SendObserver] = None) -> TransmitResult:
        """
        Interactive send that bypasses the coalescer.

        The request is prepared here and handed to the request bridge, the
        way a short-lived UI context delegates the network call to the
        long-lived one.
        """
        observer = observer or SendObserver()
        try:
            record = await self._read_complete_record()
        except (ConfigurationIncomplete, StoreAccessFailure) as e:
            observer.on_failure(str(e))
            return TransmitResult.fail(str(e))

        observer.on_begin()
        try:
            descriptors = await self.snapshots.build(record.selected_ids)
            response = await self.bridge.handle({
                'action': SEND_ACTION,
                'url': build_request_url(record.endpoint_url, record.shared_secret),
                'data': build_envelope(descriptors),
            })
            result = TransmitResult.from_message(response)
        except Exception as e:
            logger.error(f"Send failed: {e}")
            result = TransmitResult.fail(str(e))

        if result.success:
            logger.info(f"Send succeeded: {result.data}")
            observer.on_success(result.data)
        else:
            observer.on_failure(result.error)
        return result
