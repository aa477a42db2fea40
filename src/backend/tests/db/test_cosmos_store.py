"""
Tests for the Cosmos DB document store.

The Cosmos containers are mocked; these tests pin down how store operations
map onto SDK calls and how SDK errors are translated.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from core.exceptions import StorageError
from db.cosmos_store import CosmosDocumentStore, build_query
from db.store import QueryFilter, eq


@pytest.fixture
def container():
    """Create a mock Cosmos container."""
    container = MagicMock()
    container.read_item = AsyncMock()
    container.upsert_item = AsyncMock()
    container.create_item = AsyncMock()
    container.patch_item = AsyncMock()
    container.delete_item = AsyncMock()
    return container


@pytest.fixture
def cosmos_store(container):
    client = MagicMock()
    client.close = AsyncMock()
    client.get_database_client.return_value.get_container_client.return_value = container
    return CosmosDocumentStore(client, "messagepulse")


def _items(*items):
    async def iterate():
        for item in items:
            yield item

    return iterate()


@pytest.mark.unit
class TestBuildQuery:
    """Test filter to SQL translation."""

    def test_no_filters(self) -> None:
        assert build_query([]) == ("SELECT * FROM c", [])

    def test_parameterised_clauses(self) -> None:
        query, params = build_query([eq("message_id", "m1"), QueryFilter("day", "ne", "ALL")])

        assert query == "SELECT * FROM c WHERE c.message_id = @p0 AND c.day != @p1"
        assert params == [{"name": "@p0", "value": "m1"}, {"name": "@p1", "value": "ALL"}]

    def test_in_uses_array_contains(self) -> None:
        query, params = build_query([QueryFilter("value", "in", ("love", "like"))])

        assert query == "SELECT * FROM c WHERE ARRAY_CONTAINS(@p0, c.value)"
        assert params == [{"name": "@p0", "value": ["love", "like"]}]

    def test_rejects_unsafe_field_names(self) -> None:
        with pytest.raises(ValueError):
            build_query([eq("day; DROP", "x")])


@pytest.mark.unit
class TestCosmosDocumentStore:
    """Test store operations against a mocked container."""

    async def test_get_strips_system_properties(self, cosmos_store, container) -> None:
        container.read_item.return_value = {"id": "m1", "slogan": "Hi", "_etag": "x", "_ts": 1, "ttl": 10}

        assert await cosmos_store.get("messages", "m1") == {"id": "m1", "slogan": "Hi"}
        container.read_item.assert_awaited_once_with(item="m1", partition_key="m1")

    async def test_get_missing_returns_none(self, cosmos_store, container) -> None:
        container.read_item.side_effect = CosmosResourceNotFoundError(status_code=404, message="missing")

        assert await cosmos_store.get("messages", "m1") is None

    async def test_put_sets_ttl(self, cosmos_store, container) -> None:
        await cosmos_store.put("idempotency", "k", {"processed_at": "now"}, ttl_seconds=60)

        container.upsert_item.assert_awaited_once_with(body={"processed_at": "now", "id": "k", "ttl": 60})

    async def test_put_if_absent_conflict_returns_false(self, cosmos_store, container) -> None:
        container.create_item.side_effect = CosmosResourceExistsError(status_code=409, message="exists")

        assert await cosmos_store.put_if_absent("vote_dedup", "h", {}) is False

    async def test_put_if_absent_created(self, cosmos_store, container) -> None:
        assert await cosmos_store.put_if_absent("vote_dedup", "h", {"message_id": "m1"}) is True
        container.create_item.assert_awaited_once_with(body={"message_id": "m1", "id": "h"})

    async def test_increment_patches_existing_counter(self, cosmos_store, container) -> None:
        container.patch_item.return_value = {"id": "c", "count": 5}

        assert await cosmos_store.atomic_increment("vote_counters", "c", "count", 1) == 5
        container.patch_item.assert_awaited_once_with(
            item="c",
            partition_key="c",
            patch_operations=[{"op": "incr", "path": "/count", "value": 1}],
        )
        container.create_item.assert_not_awaited()

    async def test_increment_creates_missing_counter(self, cosmos_store, container) -> None:
        container.patch_item.side_effect = CosmosResourceNotFoundError(status_code=404, message="missing")

        count = await cosmos_store.atomic_increment(
            "vote_counters", "c", "count", 1, initial={"message_id": "m1", "count": 0}
        )

        assert count == 1
        container.create_item.assert_awaited_once_with(body={"message_id": "m1", "id": "c", "count": 1})

    async def test_increment_retries_after_create_race(self, cosmos_store, container) -> None:
        container.patch_item.side_effect = [
            CosmosResourceNotFoundError(status_code=404, message="missing"),
            {"id": "c", "count": 2},
        ]
        container.create_item.side_effect = CosmosResourceExistsError(status_code=409, message="exists")

        assert await cosmos_store.atomic_increment("vote_counters", "c", "count", 1) == 2
        assert container.patch_item.await_count == 2

    async def test_http_errors_become_storage_errors(self, cosmos_store, container) -> None:
        container.upsert_item.side_effect = CosmosHttpResponseError(status_code=503, message="unavailable")

        with pytest.raises(StorageError):
            await cosmos_store.put("votes", "v1", {})

    async def test_query_collects_clean_items(self, cosmos_store, container) -> None:
        container.query_items = MagicMock(return_value=_items({"id": "a", "_rid": "r"}, {"id": "b"}))

        records = await cosmos_store.query("vote_counters", [eq("day", "ALL")])

        assert records == [{"id": "a"}, {"id": "b"}]
        container.query_items.assert_called_once_with(
            query="SELECT * FROM c WHERE c.day = @p0",
            parameters=[{"name": "@p0", "value": "ALL"}],
        )

    async def test_delete_missing_returns_false(self, cosmos_store, container) -> None:
        container.delete_item.side_effect = CosmosResourceNotFoundError(status_code=404, message="missing")

        assert await cosmos_store.delete("idempotency", "k") is False

    async def test_close_closes_client(self, cosmos_store) -> None:
        await cosmos_store.close()

        cosmos_store._client.close.assert_awaited_once()
