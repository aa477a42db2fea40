"""
Azure Cosmos DB implementation of the document store.

Uses the async Cosmos DB SDK with DefaultAzureCredential for RBAC
authentication, or a connection string when running against the emulator.

Every container is partitioned on /id so point reads, conditional inserts and
patch increments are single-partition operations. Containers holding expiring
markers (idempotency, vote_dedup) must have TTL enabled (default_ttl=-1) so the
per-item ``ttl`` property is honoured; see scripts/init-cosmos-emulator.py.
"""

import logging
import re
from typing import Any

from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)
from azure.identity.aio import DefaultAzureCredential

from core.config import Settings
from core.exceptions import StorageError
from db.store import QueryFilter

logger = logging.getLogger(__name__)

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_SQL_OPERATORS = {
    "eq": "=",
    "ne": "!=",
    "ge": ">=",
    "le": "<=",
}

# Patch-then-create can race with another writer creating the same counter
MAX_INCREMENT_ATTEMPTS = 3


def _clean(item: dict[str, Any]) -> dict[str, Any]:
    """Strip Cosmos system properties (_rid, _etag, _ts, ...) and ttl."""
    return {k: v for k, v in item.items() if not k.startswith("_") and k != "ttl"}


def build_query(filters: list[QueryFilter]) -> tuple[str, list[dict[str, Any]]]:
    """Translate store filters into a parameterised Cosmos SQL query."""
    clauses: list[str] = []
    parameters: list[dict[str, Any]] = []

    for index, query_filter in enumerate(filters):
        if not _FIELD_NAME.match(query_filter.field):
            raise ValueError(f"Invalid field name: {query_filter.field}")
        param = f"@p{index}"
        if query_filter.op == "in":
            clauses.append(f"ARRAY_CONTAINS({param}, c.{query_filter.field})")
            parameters.append({"name": param, "value": list(query_filter.value)})
        else:
            clauses.append(f"c.{query_filter.field} {_SQL_OPERATORS[query_filter.op]} {param}")
            parameters.append({"name": param, "value": query_filter.value})

    query = "SELECT * FROM c"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    return query, parameters


class CosmosDocumentStore:
    """``DocumentStore`` backed by Azure Cosmos DB containers."""

    def __init__(
        self,
        client: CosmosClient,
        database_name: str,
        credential: DefaultAzureCredential | None = None,
    ):
        self._client = client
        self._credential = credential
        self._database: DatabaseProxy = client.get_database_client(database_name)
        self._containers: dict[str, ContainerProxy] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "CosmosDocumentStore":
        """
        Build a store from application settings.

        Supports two authentication modes:
        1. Connection string (for local development with Cosmos DB Emulator)
        2. DefaultAzureCredential/RBAC (for Azure deployment)
        """
        if settings.AZURE_COSMOS_CONNECTION_STRING:
            # Format: AccountEndpoint=https://...;AccountKey=...;
            conn_parts = dict(
                part.split("=", 1) for part in settings.AZURE_COSMOS_CONNECTION_STRING.split(";") if "=" in part
            )
            endpoint = conn_parts.get("AccountEndpoint", "")
            key = conn_parts.get("AccountKey", "")

            if not endpoint or not key:
                raise ValueError("AZURE_COSMOS_CONNECTION_STRING must contain AccountEndpoint and AccountKey")

            client = CosmosClient(
                url=endpoint,
                credential=key,
                connection_verify=not settings.AZURE_COSMOS_DISABLE_SSL,
            )
            logger.info(f"Initialized Cosmos DB client for {endpoint} (connection string mode)")
            return cls(client, settings.AZURE_COSMOS_DATABASE)

        if not settings.AZURE_COSMOS_ENDPOINT:
            raise ValueError("Either AZURE_COSMOS_ENDPOINT or AZURE_COSMOS_CONNECTION_STRING must be set")

        credential = DefaultAzureCredential()
        client = CosmosClient(url=settings.AZURE_COSMOS_ENDPOINT, credential=credential)
        logger.info(f"Initialized Cosmos DB client for {settings.AZURE_COSMOS_ENDPOINT} (RBAC mode)")
        return cls(client, settings.AZURE_COSMOS_DATABASE, credential=credential)

    def _container(self, collection: str) -> ContainerProxy:
        container = self._containers.get(collection)
        if container is None:
            container = self._database.get_container_client(collection)
            self._containers[collection] = container
        return container

    @staticmethod
    def _body(key: str, record: dict[str, Any], ttl_seconds: int | None) -> dict[str, Any]:
        body = {**record, "id": key}
        if ttl_seconds is not None:
            body["ttl"] = ttl_seconds
        return body

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        try:
            item = await self._container(collection).read_item(item=key, partition_key=key)
        except CosmosResourceNotFoundError:
            return None
        except CosmosHttpResponseError as e:
            logger.error(f"Cosmos read failed for {collection}/{key}: {e}")
            raise StorageError(f"read from {collection} failed") from e
        return _clean(item)

    async def put(
        self,
        collection: str,
        key: str,
        record: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> None:
        try:
            await self._container(collection).upsert_item(body=self._body(key, record, ttl_seconds))
        except CosmosHttpResponseError as e:
            logger.error(f"Cosmos upsert failed for {collection}/{key}: {e}")
            raise StorageError(f"write to {collection} failed") from e

    async def put_if_absent(
        self,
        collection: str,
        key: str,
        record: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> bool:
        try:
            await self._container(collection).create_item(body=self._body(key, record, ttl_seconds))
            return True
        except CosmosResourceExistsError:
            return False
        except CosmosHttpResponseError as e:
            logger.error(f"Cosmos conditional insert failed for {collection}/{key}: {e}")
            raise StorageError(f"conditional insert into {collection} failed") from e

    async def atomic_increment(
        self,
        collection: str,
        key: str,
        field: str,
        delta: int,
        initial: dict[str, Any] | None = None,
    ) -> int:
        container = self._container(collection)
        operations = [{"op": "incr", "path": f"/{field}", "value": delta}]

        try:
            for _ in range(MAX_INCREMENT_ATTEMPTS):
                try:
                    item = await container.patch_item(
                        item=key,
                        partition_key=key,
                        patch_operations=operations,
                    )
                    return int(item[field])
                except CosmosResourceNotFoundError:
                    pass

                body = {**(initial or {}), "id": key, field: delta}
                try:
                    await container.create_item(body=body)
                    return delta
                except CosmosResourceExistsError:
                    # Another writer created it first; patch on the next attempt
                    continue
        except CosmosHttpResponseError as e:
            logger.error(f"Cosmos increment failed for {collection}/{key}: {e}")
            raise StorageError(f"increment in {collection} failed") from e

        raise StorageError(f"increment in {collection} did not converge")

    async def query(self, collection: str, filters: list[QueryFilter]) -> list[dict[str, Any]]:
        query, parameters = build_query(filters)
        items: list[dict[str, Any]] = []
        try:
            async for item in self._container(collection).query_items(query=query, parameters=parameters):
                items.append(_clean(item))
        except CosmosHttpResponseError as e:
            logger.error(f"Cosmos query failed for {collection}: {e}")
            raise StorageError(f"query on {collection} failed") from e
        return items

    async def delete(self, collection: str, key: str) -> bool:
        try:
            await self._container(collection).delete_item(item=key, partition_key=key)
            return True
        except CosmosResourceNotFoundError:
            return False
        except CosmosHttpResponseError as e:
            logger.error(f"Cosmos delete failed for {collection}/{key}: {e}")
            raise StorageError(f"delete from {collection} failed") from e

    async def close(self) -> None:
        """
        Close Cosmos DB connections.

        Should be called during application shutdown.
        """
        await self._client.close()
        logger.info("Closed Cosmos DB client")

        if self._credential is not None:
            await self._credential.close()
            self._credential = None
