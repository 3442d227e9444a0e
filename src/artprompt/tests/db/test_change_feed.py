"""
Tests for polling change subscriptions.

The scheduler is replaced with a mock so each poll can be driven by hand.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.jobstores.base import JobLookupError

from artprompt.core.errors import PermissionDenied
from artprompt.db import change_feed
from artprompt.db.change_feed import subscribe_item, subscribe_query


@pytest.fixture
def scheduler():
    scheduler = MagicMock()
    with (
        patch("artprompt.db.change_feed.get_scheduler", return_value=scheduler),
        patch.object(change_feed, "_scheduler", scheduler),
    ):
        yield scheduler


def scheduled_poll(scheduler):
    return scheduler.add_job.call_args.args[0]


@pytest.mark.unit
class TestSubscribeQuery:
    """Query subscriptions."""

    async def test_job_scheduled_with_interval(self, scheduler) -> None:
        sub = subscribe_query("prompts", "SELECT * FROM c", MagicMock(), interval=5)

        kwargs = scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == sub.job_id
        assert kwargs["max_instances"] == 1
        assert kwargs["next_run_time"] is not None

    async def test_delivers_only_on_change(self, scheduler) -> None:
        on_snapshot = MagicMock()
        subscribe_query("prompts", "SELECT * FROM c", on_snapshot)
        poll = scheduled_poll(scheduler)
        first = [{"id": "a", "_etag": "1"}]

        with patch("artprompt.db.change_feed.query_items", AsyncMock(side_effect=[first, first, []])):
            await poll()
            await poll()
            await poll()

        assert [c.args[0] for c in on_snapshot.call_args_list] == [first, []]

    async def test_async_callback_is_awaited(self, scheduler) -> None:
        on_snapshot = AsyncMock()
        subscribe_query("prompts", "SELECT * FROM c", on_snapshot)

        with patch("artprompt.db.change_feed.query_items", AsyncMock(return_value=[{"id": "a", "_etag": "1"}])):
            await scheduled_poll(scheduler)()

        on_snapshot.assert_awaited_once()

    async def test_errors_go_to_error_callback(self, scheduler) -> None:
        on_snapshot, on_error = MagicMock(), MagicMock()
        subscribe_query("prompts", "SELECT * FROM c", on_snapshot, on_error=on_error)
        error = PermissionDenied("forbidden")

        with patch("artprompt.db.change_feed.query_items", AsyncMock(side_effect=error)):
            await scheduled_poll(scheduler)()

        on_snapshot.assert_not_called()
        on_error.assert_called_once_with(error)

    async def test_no_delivery_after_unsubscribe(self, scheduler) -> None:
        on_snapshot = MagicMock()
        sub = subscribe_query("prompts", "SELECT * FROM c", on_snapshot)
        poll = scheduled_poll(scheduler)

        sub.unsubscribe()
        with patch("artprompt.db.change_feed.query_items", AsyncMock(return_value=[{"id": "a"}])):
            await poll()

        on_snapshot.assert_not_called()
        scheduler.remove_job.assert_called_once_with(sub.job_id)

    async def test_unsubscribe_is_idempotent(self, scheduler) -> None:
        sub = subscribe_query("prompts", "SELECT * FROM c", MagicMock())
        scheduler.remove_job.side_effect = JobLookupError(sub.job_id)

        sub.unsubscribe()
        sub.unsubscribe()

        assert not sub.active
        assert scheduler.remove_job.call_count == 1


@pytest.mark.unit
class TestSubscribeItem:
    """Single document subscriptions."""

    async def test_missing_then_created(self, scheduler) -> None:
        on_snapshot = MagicMock()
        subscribe_item("device-settings", "x", "x", on_snapshot)
        poll = scheduled_poll(scheduler)
        doc = {"id": "x", "_etag": "1", "voted_for": ["a"]}

        with patch("artprompt.db.change_feed.read_item", AsyncMock(side_effect=[None, None, doc])):
            await poll()
            await poll()
            await poll()

        assert [c.args[0] for c in on_snapshot.call_args_list] == [None, doc]
