"""
Durable configuration store.

The store holds the sync record (endpoint URL, shared secret and selected
identifiers) for every execution context. Consumers re-read it rather than
trusting a cached copy across a suspension point, and subscribe to change
notifications to keep their caches fresh.
"""
import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from marksync.errors import StoreAccessFailure
from marksync.models import SyncRecord

logger = logging.getLogger(__name__)

# key -> (old value, new value)
StoreChanges = Dict[str, Tuple[Any, Any]]
StoreListener = Callable[[StoreChanges], Any]


def diff_records(old: SyncRecord, new: SyncRecord) -> StoreChanges:
    """Keys whose values differ between two records."""
    before = old.to_dict()
    after = new.to_dict()
    changes = {}
    for key, value in after.items():
        if key == 'selectedIds':
            if set(before[key]) != set(value):
                changes[key] = (before[key], value)
        elif before[key] != value:
            changes[key] = (before[key], value)
    return changes


class ConfigStore(ABC):
    """
    Read/write contract for the durable sync record.

    Writers always pass the full record. Subscribers receive the changed
    keys after every write that altered something, including writes made
    by another execution context once the store observes them.
    """

    def __init__(self):
        self._listeners: List[StoreListener] = []

    @abstractmethod
    async def read(self) -> SyncRecord:
        """Return a fresh copy of the stored record."""
        pass

    @abstractmethod
    async def write(self, record: SyncRecord) -> None:
        """Persist the full record."""
        pass

    def subscribe(self, listener: StoreListener):
        self._listeners.append(listener)

    def unsubscribe(self, listener: StoreListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _notify(self, changes: StoreChanges):
        if not changes:
            return
        for listener in list(self._listeners):
            try:
                result = listener(changes)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Store listener failed: {e}")


class MemoryConfigStore(ConfigStore):
    """Process-local store, used by tests and one-shot invocations."""

    def __init__(self, record: Optional[SyncRecord] = None):
        super().__init__()
        self._data = (record or SyncRecord()).to_dict()

    async def read(self) -> SyncRecord:
        return SyncRecord.from_dict(self._data)

    async def write(self, record: SyncRecord) -> None:
        old = SyncRecord.from_dict(self._data)
        self._data = record.to_dict()
        await self._notify(diff_records(old, record))


class JsonFileConfigStore(ConfigStore):
    """
    Store backed by a JSON file shared between processes.

    The background ``watch`` process and interactive CLI invocations both
    open the same file. Edits made by another process become visible when
    ``refresh()`` notices the file changed.
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self._last_seen: Optional[SyncRecord] = None

    def _load(self) -> SyncRecord:
        if not self.path.exists():
            return SyncRecord()
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreAccessFailure(f"Failed to read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StoreAccessFailure(f"Malformed sync record in {self.path}")
        return SyncRecord.from_dict(data)

    async def read(self) -> SyncRecord:
        record = self._load()
        if self._last_seen is None:
            self._last_seen = record
        return record

    async def write(self, record: SyncRecord) -> None:
        old = self._last_seen if self._last_seen is not None else self._load()
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(record.to_dict(), f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path.exists():
                tmp_path.unlink()
            raise StoreAccessFailure(f"Failed to write {self.path}: {e}") from e
        self._last_seen = SyncRecord.from_dict(record.to_dict())
        await self._notify(diff_records(old, record))

    async def refresh(self) -> StoreChanges:
        """
        Re-read the file and notify subscribers of external changes.

        Returns:
            The changed keys (empty if nothing changed)
        """
        record = self._load()
        old = self._last_seen or SyncRecord()
        self._last_seen = record
        changes = diff_records(old, record)
        if changes:
            logger.debug(f"Store changed externally: {', '.join(changes)}")
            await self._notify(changes)
        return changes
