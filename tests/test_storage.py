"""Tests for the namespaced, quota-checked storage adapter."""

import pytest

from core.storage import StorageAdapter


class TestProbe:
    @pytest.mark.asyncio
    async def test_probe_leaves_no_keys(self, adapter, store):
        assert adapter.available is True
        assert await store.keys() == []

    @pytest.mark.asyncio
    async def test_failed_probe_degrades_everything(self, store, settings):
        store.fail_all = True
        adapter = StorageAdapter(store, settings)

        assert await adapter.startup() is False
        store.fail_all = False

        assert await adapter.set("dst:1", "{}") is False
        assert await adapter.get("dst:1") is None
        assert await adapter.delete("dst:1") is False
        assert await adapter.list("dst:") == set()
        assert store.writes == []


class TestNamespace:
    @pytest.mark.asyncio
    async def test_keys_are_prefixed_in_store(self, adapter, store):
        assert await adapter.set("dst:1", "value")
        assert await store.get_item("dst_app_dst:1") == "value"

    @pytest.mark.asyncio
    async def test_list_strips_namespace_and_filters_prefix(self, adapter, store):
        await adapter.set("dst:1", "a")
        await adapter.set("dst:2", "b")
        await adapter.set("dsttag:1", "c")
        await store.set_item("unrelated:1", "d")

        assert await adapter.list("dst:") == {"dst:1", "dst:2"}
        assert await adapter.list("dsttag:") == {"dsttag:1"}

    @pytest.mark.asyncio
    async def test_clear_only_touches_namespace(self, adapter, store):
        await adapter.set("dst:1", "a")
        await store.set_item("unrelated:1", "d")

        assert await adapter.clear()
        assert await store.keys() == ["unrelated:1"]


class TestQuota:
    @pytest.mark.asyncio
    async def test_oversized_value_rejected_and_prior_value_kept(self, adapter, settings):
        assert await adapter.set("dst:1", "original")
        oversized = "x" * (settings.storage_quota_bytes + 1)

        assert await adapter.set("dst:1", oversized) is False
        assert await adapter.get("dst:1") == "original"

    @pytest.mark.asyncio
    async def test_value_at_quota_accepted(self, adapter, settings):
        assert await adapter.set("dst:1", "x" * settings.storage_quota_bytes)

    def test_size_counts_utf8_bytes(self):
        assert StorageAdapter.size_of("é") == 2

    @pytest.mark.asyncio
    async def test_empty_value_rejected(self, adapter):
        assert await adapter.set("dst:1", "") is False


class TestFailures:
    @pytest.mark.asyncio
    async def test_store_errors_become_false_or_none(self, adapter, store):
        await adapter.set("dst:1", "a")
        store.fail_keys.add("dst_app_dst:1")

        assert await adapter.get("dst:1") is None
        assert await adapter.set("dst:1", "b") is False
        assert await adapter.delete("dst:1") is False

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, adapter):
        assert await adapter.delete("dst:404")
        assert await adapter.delete("dst:404")


@pytest.mark.asyncio
async def test_storage_info_counts_namespaced_bytes(adapter, store, settings):
    await adapter.set("k", "abc")
    await store.set_item("other", "zzzzzz")

    info = await adapter.get_storage_info()
    assert info.used == len("dst_app_k") + 3
    assert info.available == settings.storage_capacity_bytes
    assert info.percentage == 0
