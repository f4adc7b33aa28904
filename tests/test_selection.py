"""Tests for marksync/selection.py."""
import pytest
from unittest.mock import AsyncMock

from marksync.errors import StoreAccessFailure
from marksync.models import SyncRecord
from marksync.selection import SelectionSet


class TestSelectionMutations:
    """Test add/remove and their persistence."""

    @pytest.mark.asyncio
    async def test_load(self, configured_store):
        selection = SelectionSet(configured_store)
        await selection.load()
        assert selection.ids == ["10", "12"]
        assert "10" in selection
        assert len(selection) == 2

    @pytest.mark.asyncio
    async def test_add_persists(self, memory_store):
        selection = SelectionSet(memory_store)
        await selection.add("10")
        assert (await memory_store.read()).selected_ids == ["10"]

    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, memory_store):
        selection = SelectionSet(memory_store)
        await selection.add("10")
        await selection.add("10")
        assert selection.ids == ["10"]
        assert (await memory_store.read()).selected_ids == ["10"]

    @pytest.mark.asyncio
    async def test_add_then_remove_restores_set(self, configured_store):
        selection = SelectionSet(configured_store)
        await selection.load()
        before = set(selection)

        await selection.add("20")
        await selection.remove("20")

        assert set(selection) == before
        assert set((await configured_store.read()).selected_ids) == before

    @pytest.mark.asyncio
    async def test_remove_missing_is_noop(self, configured_store):
        selection = SelectionSet(configured_store)
        await selection.load()
        await selection.remove("99")
        assert selection.ids == ["10", "12"]

    @pytest.mark.asyncio
    async def test_persist_keeps_other_fields(self, configured_store):
        selection = SelectionSet(configured_store)
        await selection.load()
        await selection.add("20")

        record = await configured_store.read()
        assert record.endpoint_url == "https://example.com/api/bookmarks"
        assert record.shared_secret == "s3cret"

    @pytest.mark.asyncio
    async def test_failed_write_leaves_cache_unchanged(self, configured_store):
        selection = SelectionSet(configured_store)
        await selection.load()
        configured_store.write = AsyncMock(side_effect=StoreAccessFailure("disk full"))

        with pytest.raises(StoreAccessFailure):
            await selection.add("20")

        assert selection.ids == ["10", "12"]


class TestSubtreeSelection:
    """Test recursive folder selection."""

    @pytest.mark.asyncio
    async def test_select_subtree(self, memory_store, sample_tree):
        selection = SelectionSet(memory_store)
        await selection.select_subtree(sample_tree.find("11"))
        assert set(selection) == {"11", "12", "13", "14"}

    @pytest.mark.asyncio
    async def test_select_subtree_single_write(self, memory_store, sample_tree):
        selection = SelectionSet(memory_store)
        memory_store.write = AsyncMock(wraps=memory_store.write)
        await selection.select_subtree(sample_tree.find("11"))
        assert memory_store.write.await_count == 1

    @pytest.mark.asyncio
    async def test_select_subtree_is_idempotent(self, memory_store, sample_tree):
        """Selecting a folder twice gives the same set as selecting it once."""
        selection = SelectionSet(memory_store)
        folder = sample_tree.find("11")

        await selection.select_subtree(folder)
        once = set(selection)
        await selection.select_subtree(folder)

        assert set(selection) == once
        assert len(selection) == 4
        assert set((await memory_store.read()).selected_ids) == once

    @pytest.mark.asyncio
    async def test_deselect_subtree_undoes_select_subtree(self, memory_store, sample_tree):
        """Deselecting a folder after selecting it leaves nothing selected."""
        selection = SelectionSet(memory_store)
        folder = sample_tree.find("11")

        await selection.select_subtree(folder)
        await selection.deselect_subtree(folder)

        assert selection.ids == []
        assert (await memory_store.read()).selected_ids == []

    @pytest.mark.asyncio
    async def test_deselect_subtree(self, memory_store, sample_tree):
        selection = SelectionSet(memory_store)
        await selection.update(add=["10", "11", "12", "13", "14"])
        await selection.deselect_subtree(sample_tree.find("11"))
        assert selection.ids == ["10"]


class TestPruning:
    """Test pruning on node removal."""

    @pytest.mark.asyncio
    async def test_prune_selected_node(self, configured_store):
        selection = SelectionSet(configured_store)
        await selection.load()

        assert await selection.on_node_removed("10") is True

        assert selection.ids == ["12"]
        assert (await configured_store.read()).selected_ids == ["12"]

    @pytest.mark.asyncio
    async def test_prune_unselected_node_does_not_write(self, configured_store):
        selection = SelectionSet(configured_store)
        await selection.load()
        configured_store.write = AsyncMock()

        assert await selection.on_node_removed("20") is False

        configured_store.write.assert_not_awaited()
        assert selection.ids == ["10", "12"]

    @pytest.mark.asyncio
    async def test_prune_write_failure_is_logged(self, configured_store, caplog):
        selection = SelectionSet(configured_store)
        await selection.load()
        configured_store.write = AsyncMock(side_effect=StoreAccessFailure("locked"))

        assert await selection.on_node_removed("10") is False

        assert selection.ids == ["10", "12"]
        assert "Failed to prune removed bookmark 10" in caplog.text


class TestStoreSubscription:
    """Test picking up edits from other contexts."""

    @pytest.mark.asyncio
    async def test_external_change_updates_cache(self, configured_store):
        selection = SelectionSet(configured_store)
        await selection.load()
        configured_store.subscribe(selection.on_store_changed)

        await configured_store.write(SyncRecord(
            endpoint_url="https://example.com/api/bookmarks",
            selected_ids=["20"],
        ))

        assert selection.ids == ["20"]

    def test_unrelated_change_ignored(self, memory_store):
        selection = SelectionSet(memory_store)
        selection.on_store_changed({'endpointUrl': ("", "https://x/y")})
        assert selection.ids == []
