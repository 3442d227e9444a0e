"""
Tests for Cosmos DB session helpers.

Covers SDK error translation and the etag-guarded read-modify-write loop.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from azure.core.exceptions import ServiceRequestError
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from artprompt.core.errors import ConcurrencyConflict, PermissionDenied, SecretMismatch, TransientIOError
from artprompt.db.cosmos_session import (
    create_item,
    delete_item,
    patch_item,
    read_item,
    replace_item_if_unchanged,
    store_errors,
    update_item_optimistic,
)


@pytest.fixture
def container() -> MagicMock:
    container = MagicMock()
    container.create_item = AsyncMock()
    container.read_item = AsyncMock()
    container.replace_item = AsyncMock()
    container.delete_item = AsyncMock()
    container.patch_item = AsyncMock()
    return container


@pytest.fixture
def patched_container(container):
    with patch("artprompt.db.cosmos_session.get_container", AsyncMock(return_value=container)):
        yield container


@pytest.mark.unit
class TestStoreErrors:
    """SDK failures map onto the store error family."""

    def test_forbidden_becomes_permission_denied(self) -> None:
        with pytest.raises(PermissionDenied):
            with store_errors("read"):
                raise CosmosHttpResponseError(status_code=403, message="Forbidden")

    def test_server_error_becomes_transient(self) -> None:
        with pytest.raises(TransientIOError):
            with store_errors("read"):
                raise CosmosHttpResponseError(status_code=503, message="Unavailable")

    def test_transport_error_becomes_transient(self) -> None:
        with pytest.raises(TransientIOError):
            with store_errors("read"):
                raise ServiceRequestError("connection reset")

    def test_domain_errors_pass_through(self) -> None:
        with pytest.raises(SecretMismatch):
            with store_errors("merge"):
                raise SecretMismatch("nope")


@pytest.mark.unit
class TestItemHelpers:
    """Soft-failing point operations."""

    async def test_create_existing_returns_none(self, patched_container) -> None:
        patched_container.create_item.side_effect = CosmosResourceExistsError(status_code=409, message="Conflict")

        assert await create_item("registry", {"id": "x"}) is None

    async def test_read_missing_returns_none(self, patched_container) -> None:
        patched_container.read_item.side_effect = CosmosResourceNotFoundError(status_code=404, message="Not found")

        assert await read_item("registry", "x", "x") is None

    async def test_read_forbidden_raises(self, patched_container) -> None:
        patched_container.read_item.side_effect = CosmosHttpResponseError(status_code=403, message="Forbidden")

        with pytest.raises(PermissionDenied):
            await read_item("registry", "x", "x")

    async def test_replace_etag_mismatch_returns_none(self, patched_container) -> None:
        patched_container.replace_item.side_effect = CosmosAccessConditionFailedError(
            status_code=412, message="Precondition failed"
        )

        assert await replace_item_if_unchanged("registry", {"id": "x"}, "etag-1") is None

    async def test_replace_passes_etag_condition(self, patched_container) -> None:
        patched_container.replace_item.return_value = {"id": "x", "_etag": "etag-2"}

        result = await replace_item_if_unchanged("registry", {"id": "x"}, "etag-1")

        assert result["_etag"] == "etag-2"
        kwargs = patched_container.replace_item.call_args.kwargs
        assert kwargs["etag"] == "etag-1"
        assert kwargs["item"] == "x"

    async def test_delete_missing_returns_false(self, patched_container) -> None:
        patched_container.delete_item.side_effect = CosmosResourceNotFoundError(status_code=404, message="Not found")

        assert await delete_item("prompts", "x", "x") is False

    async def test_patch_missing_returns_none(self, patched_container) -> None:
        patched_container.patch_item.side_effect = CosmosResourceNotFoundError(status_code=404, message="Not found")

        assert await patch_item("submissions", "x", "x", [{"op": "incr", "path": "/votes", "value": 1}]) is None


@pytest.mark.unit
class TestUpdateItemOptimistic:
    """Read-modify-write guarded by etag."""

    async def test_creates_missing_document(self) -> None:
        with (
            patch("artprompt.db.cosmos_session.read_item", return_value=None),
            patch("artprompt.db.cosmos_session.create_item", return_value={"id": "x", "voted_for": ["a"]}) as mock_create,
        ):
            doc, changed = await update_item_optimistic("device-settings", "x", "x", lambda cur: {"id": "x", "voted_for": ["a"]})

        assert changed is True
        assert doc["voted_for"] == ["a"]
        mock_create.assert_awaited_once()

    async def test_no_change_skips_write(self) -> None:
        current = {"id": "x", "_etag": "e1", "voted_for": ["a"]}
        with (
            patch("artprompt.db.cosmos_session.read_item", return_value=current),
            patch("artprompt.db.cosmos_session.replace_item_if_unchanged") as mock_replace,
        ):
            doc, changed = await update_item_optimistic("registry", "x", "x", lambda cur: None)

        assert changed is False
        assert doc is current
        mock_replace.assert_not_called()

    async def test_retries_after_etag_conflict(self) -> None:
        versions = [
            {"id": "x", "_etag": "e1", "voted_for": []},
            {"id": "x", "_etag": "e2", "voted_for": ["b"]},
        ]
        with (
            patch("artprompt.db.cosmos_session.read_item", side_effect=versions),
            patch(
                "artprompt.db.cosmos_session.replace_item_if_unchanged",
                side_effect=[None, {"id": "x", "_etag": "e3", "voted_for": ["b", "a"]}],
            ) as mock_replace,
        ):
            doc, changed = await update_item_optimistic(
                "registry", "x", "x", lambda cur: {**cur, "voted_for": cur["voted_for"] + ["a"]}
            )

        assert changed is True
        assert doc["voted_for"] == ["b", "a"]
        assert [c.args[2] for c in mock_replace.call_args_list] == ["e1", "e2"]

    async def test_gives_up_after_retry_budget(self) -> None:
        current = {"id": "x", "_etag": "e1", "voted_for": []}
        with (
            patch("artprompt.db.cosmos_session.read_item", return_value=current),
            patch("artprompt.db.cosmos_session.replace_item_if_unchanged", return_value=None) as mock_replace,
        ):
            with pytest.raises(ConcurrencyConflict):
                await update_item_optimistic("registry", "x", "x", lambda cur: dict(cur), max_retries=3)

        assert mock_replace.await_count == 3

    async def test_mutate_error_aborts_without_write(self) -> None:
        def mutate(cur):
            raise SecretMismatch("nope")

        with (
            patch("artprompt.db.cosmos_session.read_item", return_value={"id": "x", "_etag": "e1"}),
            patch("artprompt.db.cosmos_session.replace_item_if_unchanged") as mock_replace,
        ):
            with pytest.raises(SecretMismatch):
                await update_item_optimistic("registry", "x", "x", mutate)

        mock_replace.assert_not_called()
