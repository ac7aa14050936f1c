"""
Unit tests for the dev store's JSON tree.
"""

import pytest

from scenesync.devstore import JsonStore
from scenesync.devstore.store import key_order


@pytest.fixture
def store():
    """Create an empty JSON store."""
    return JsonStore()


class TestJsonStore:
    """Tests for JsonStore."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, store):
        await store.put("projects/demo/datamodel", {"Timestamp": 1.0})

        assert await store.get("projects/demo/datamodel") == {"Timestamp": 1.0}
        assert await store.get("projects") == {"demo": {"datamodel": {"Timestamp": 1.0}}}
        assert await store.get("projects/other") is None
        assert store.writes == 1

    @pytest.mark.asyncio
    async def test_values_are_copies(self, store):
        value = {"Changes": []}
        await store.put("projects/demo/changes/1", value)
        value["Changes"].append("mutated")

        read = await store.get("projects/demo/changes/1")
        read["Changes"].append("mutated")

        assert await store.get("projects/demo/changes/1") == {"Changes": []}

    @pytest.mark.asyncio
    async def test_null_deletes_and_prunes(self, store):
        await store.put("projects/demo/changes/1", {"a": 1})

        assert await store.put("projects/demo/changes/1", None) is None
        assert await store.get("projects") is None

    @pytest.mark.asyncio
    async def test_root_write_rejected(self, store):
        with pytest.raises(ValueError):
            await store.put("/", {"a": 1})

    @pytest.mark.asyncio
    async def test_last_children(self, store):
        for key in ("1700000000010", "1700000000002", "1700000000100"):
            await store.put(f"projects/demo/changes/{key}", {"k": key})

        last = await store.last_children("projects/demo/changes", 2)

        assert list(last) == ["1700000000010", "1700000000100"]
        assert await store.last_children("projects/demo/missing", 2) is None

    def test_key_order(self):
        assert sorted(["10", "-Nb", "9"], key=key_order) == ["9", "10", "-Nb"]
