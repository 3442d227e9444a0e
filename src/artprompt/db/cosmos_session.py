"""
Azure Cosmos DB session management for document storage.

Uses async Cosmos DB SDK with DefaultAzureCredential for RBAC authentication.
This module provides a unified client for all Cosmos DB operations and
translates SDK failures into the contest error taxonomy, so nothing above
this layer imports azure exceptions.
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from azure.core import MatchConditions
from azure.core.exceptions import AzureError
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)
from azure.identity.aio import DefaultAzureCredential

from artprompt.core.config import settings
from artprompt.core.errors import ConcurrencyConflict, PermissionDenied, TransientIOError

logger = logging.getLogger(__name__)

# Container names
PROMPTS_CONTAINER = "prompts"
SUBMISSIONS_CONTAINER = "submissions"
REGISTRY_CONTAINER = "registry"
DEVICE_SETTINGS_CONTAINER = "device-settings"

# Global client instances (lazy-initialized)
_cosmos_client: CosmosClient | None = None
_database: DatabaseProxy | None = None
_credential: DefaultAzureCredential | None = None


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """
    Translate Cosmos SDK failures raised inside the block.

    403 becomes PermissionDenied; every other HTTP or transport failure
    becomes TransientIOError. Callers handle 404/409/412 before this sees them.
    """
    try:
        yield
    except CosmosHttpResponseError as e:
        if e.status_code == 403:
            logger.warning(f"Cosmos DB permission denied during {operation}")
            raise PermissionDenied(f"Permission denied during {operation}") from e
        logger.error(f"Cosmos DB {operation} failed: {e}")
        raise TransientIOError(f"Store failure during {operation}") from e
    except AzureError as e:
        logger.error(f"Cosmos DB {operation} failed: {e}")
        raise TransientIOError(f"Store failure during {operation}") from e


async def get_cosmos_client() -> CosmosClient:
    """
    Get or create the Cosmos DB client.

    Supports two authentication modes:
    1. Connection string (for local development with Cosmos DB Emulator)
    2. DefaultAzureCredential/RBAC (for Azure deployment)

    Returns:
        CosmosClient: Async Cosmos DB client
    """
    global _cosmos_client, _credential

    if _cosmos_client is None:
        if settings.AZURE_COSMOS_CONNECTION_STRING:
            # Format: AccountEndpoint=https://...;AccountKey=...;
            conn_parts = dict(
                part.split("=", 1) for part in settings.AZURE_COSMOS_CONNECTION_STRING.split(";") if "=" in part
            )
            endpoint = conn_parts.get("AccountEndpoint", "")
            key = conn_parts.get("AccountKey", "")

            if not endpoint or not key:
                raise ValueError("AZURE_COSMOS_CONNECTION_STRING must contain AccountEndpoint and AccountKey")

            # Emulator uses a self-signed cert
            _cosmos_client = CosmosClient(
                url=endpoint,
                credential=key,
                connection_verify=not settings.AZURE_COSMOS_DISABLE_SSL,
            )
            logger.info(f"Initialized Cosmos DB client for {endpoint} (connection string mode)")
        else:
            if not settings.AZURE_COSMOS_ENDPOINT:
                raise ValueError("Either AZURE_COSMOS_ENDPOINT or AZURE_COSMOS_CONNECTION_STRING must be set")

            _credential = DefaultAzureCredential()
            _cosmos_client = CosmosClient(
                url=settings.AZURE_COSMOS_ENDPOINT,
                credential=_credential,
            )
            logger.info(f"Initialized Cosmos DB client for {settings.AZURE_COSMOS_ENDPOINT} (RBAC mode)")

    return _cosmos_client


async def get_database() -> DatabaseProxy:
    """Get the Cosmos DB database proxy."""
    global _database

    if _database is None:
        client = await get_cosmos_client()
        _database = client.get_database_client(settings.AZURE_COSMOS_DATABASE)
        logger.info(f"Connected to database: {settings.AZURE_COSMOS_DATABASE}")

    return _database


async def get_container(container_name: str) -> ContainerProxy:
    """Get a container proxy for the specified container."""
    database = await get_database()
    return database.get_container_client(container_name)


async def close_cosmos() -> None:
    """
    Close Cosmos DB connections.

    Should be called during session teardown.
    """
    global _cosmos_client, _database, _credential

    if _cosmos_client is not None:
        await _cosmos_client.close()
        _cosmos_client = None
        _database = None
        logger.info("Closed Cosmos DB client")

    if _credential is not None:
        await _credential.close()
        _credential = None


# ============================================================================
# Utility Functions for Common Operations
# ============================================================================


async def create_item(container_name: str, item: dict[str, Any]) -> Optional[dict[str, Any]]:
    """
    Create a new item, failing softly when the id is already taken.

    Returns:
        Created item with system properties, or None if it already existed
    """
    container = await get_container(container_name)
    with store_errors(f"create in {container_name}"):
        try:
            return await container.create_item(body=item)
        except CosmosResourceExistsError:
            return None


async def read_item(
    container_name: str,
    item_id: str,
    partition_key: str,
) -> dict[str, Any] | None:
    """
    Read an item by ID and partition key.

    Returns:
        Item data (including _etag) or None if not found
    """
    container = await get_container(container_name)
    with store_errors(f"read from {container_name}"):
        try:
            return await container.read_item(item=item_id, partition_key=partition_key)
        except CosmosResourceNotFoundError:
            return None


async def upsert_item(container_name: str, item: dict[str, Any]) -> dict[str, Any]:
    """Create or update an item in the specified container."""
    container = await get_container(container_name)
    with store_errors(f"upsert in {container_name}"):
        return await container.upsert_item(body=item)


async def replace_item_if_unchanged(
    container_name: str,
    item: dict[str, Any],
    etag: str,
) -> Optional[dict[str, Any]]:
    """
    Compare-and-swap: replace an item only if its etag still matches.

    Returns:
        The replaced item, or None if another writer got there first
        (or the item was deleted meanwhile)
    """
    container = await get_container(container_name)
    with store_errors(f"conditional replace in {container_name}"):
        try:
            return await container.replace_item(
                item=item["id"],
                body=item,
                etag=etag,
                match_condition=MatchConditions.IfNotModified,
            )
        except (CosmosAccessConditionFailedError, CosmosResourceNotFoundError):
            return None


async def delete_item(
    container_name: str,
    item_id: str,
    partition_key: str,
) -> bool:
    """
    Delete an item by ID and partition key.

    Returns:
        False if the item did not exist
    """
    container = await get_container(container_name)
    with store_errors(f"delete from {container_name}"):
        try:
            await container.delete_item(item=item_id, partition_key=partition_key)
            return True
        except CosmosResourceNotFoundError:
            return False


async def patch_item(
    container_name: str,
    item_id: str,
    partition_key: str,
    operations: list[dict[str, Any]],
) -> Optional[dict[str, Any]]:
    """
    Apply server-side patch operations (incr, set, add, remove) atomically.

    Example:
        await patch_item('submissions', art_id, art_id, [{'op': 'incr', 'path': '/votes', 'value': 1}])

    Returns:
        Patched item, or None if the item does not exist
    """
    container = await get_container(container_name)
    with store_errors(f"patch in {container_name}"):
        try:
            return await container.patch_item(
                item=item_id,
                partition_key=partition_key,
                patch_operations=operations,
            )
        except CosmosResourceNotFoundError:
            return None


async def update_item_optimistic(
    container_name: str,
    item_id: str,
    partition_key: str,
    mutate: Callable[[Optional[dict[str, Any]]], Optional[dict[str, Any]]],
    max_retries: int | None = None,
) -> tuple[Optional[dict[str, Any]], bool]:
    """
    Read-modify-write guarded by the item's etag.

    ``mutate`` receives the current document (None if missing) and returns the
    new document body, or None to leave the store untouched. Exceptions raised
    by ``mutate`` abort without writing, so checks performed inside it hold for
    exactly the version being replaced.

    Returns:
        (document, changed) - the document as stored after the call
    """
    attempts = max_retries or settings.CAS_MAX_RETRIES

    for attempt in range(attempts):
        current = await read_item(container_name, item_id, partition_key)
        updated = mutate(current)

        if updated is None:
            return current, False

        if current is None:
            written = await create_item(container_name, updated)
        else:
            written = await replace_item_if_unchanged(container_name, updated, current["_etag"])

        if written is not None:
            return written, True

        logger.warning(f"Write conflict on {container_name}/{item_id} (attempt {attempt + 1}/{attempts})")

    raise ConcurrencyConflict(f"Gave up updating {container_name}/{item_id} after {attempts} attempts")


async def query_items(
    container_name: str,
    query: str,
    parameters: list[dict[str, Any]] | None = None,
    partition_key: str | None = None,
    max_items: int | None = None,
) -> list[dict[str, Any]]:
    """
    Query items using SQL-like syntax.

    Example:
        results = await query_items(
            'prompts',
            'SELECT * FROM c WHERE c.app_id = @app_id',
            parameters=[{'name': '@app_id', 'value': 'astro-arts-challenge'}]
        )
    """
    container = await get_container(container_name)

    query_kwargs: dict[str, Any] = {
        "query": query,
    }

    if parameters:
        query_kwargs["parameters"] = parameters

    if partition_key:
        query_kwargs["partition_key"] = partition_key

    if max_items:
        query_kwargs["max_item_count"] = max_items

    items: list[dict[str, Any]] = []
    with store_errors(f"query on {container_name}"):
        async for item in container.query_items(**query_kwargs):
            items.append(item)
            if max_items and len(items) >= max_items:
                break

    return items
