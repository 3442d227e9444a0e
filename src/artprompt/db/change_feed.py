"""
Change subscriptions over Cosmos DB containers.

Each subscription is an APScheduler interval job that re-runs its query and
pushes a fresh snapshot to the callback whenever the set of (id, _etag)
pairs differs from the last delivered one. Deletes are therefore observed
too, which the latest-version change feed does not report.

The first snapshot is delivered as soon as the scheduler picks the job up.
Callbacks may be plain functions or coroutines; a coroutine is awaited
before the next poll of the same subscription runs.
"""

import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.interval import IntervalTrigger

from artprompt.core.config import settings
from artprompt.core.errors import StoreError
from artprompt.db.cosmos_session import query_items, read_item

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[dict[str, Any]]], Union[None, Awaitable[None]]]
ItemCallback = Callable[[Optional[dict[str, Any]]], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[StoreError], None]

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


def get_scheduler() -> AsyncIOScheduler:
    """Get the global scheduler instance, starting it on first use."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone=timezone.utc)
    if not _scheduler.running:
        _scheduler.start()
        logger.info("Change subscription scheduler started")
    return _scheduler


async def stop_scheduler() -> None:
    """Stop the scheduler and drop every subscription job."""
    global _scheduler

    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Change subscription scheduler stopped")

    _scheduler = None


class Subscription:
    """
    Handle for one live change subscription.

    ``unsubscribe`` is idempotent; once it returns no further callbacks fire,
    even from a poll that was already in flight.
    """

    def __init__(self, name: str):
        self.name = name
        self.job_id = f"{name}:{uuid4()}"
        self.active = True
        self._fingerprint: Optional[tuple] = None

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        if _scheduler is not None:
            try:
                _scheduler.remove_job(self.job_id)
            except JobLookupError:
                pass
        logger.debug(f"Unsubscribed {self.name}")

    def _changed(self, fingerprint: tuple) -> bool:
        if fingerprint == self._fingerprint:
            return False
        self._fingerprint = fingerprint
        return True


def _schedule(subscription: Subscription, poll: Callable, interval: float | None) -> Subscription:
    scheduler = get_scheduler()
    scheduler.add_job(
        poll,
        trigger=IntervalTrigger(seconds=interval or settings.SYNC_POLL_INTERVAL_SECONDS),
        id=subscription.job_id,
        name=subscription.name,
        next_run_time=datetime.now(timezone.utc),
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.debug(f"Subscribed {subscription.name}")
    return subscription


async def _invoke(callback: Callable, payload: Any) -> None:
    result = callback(payload)
    if inspect.isawaitable(result):
        await result


def _deliver_error(subscription: Subscription, on_error: Optional[ErrorCallback], error: StoreError) -> None:
    if not subscription.active:
        return
    if on_error is not None:
        on_error(error)
    else:
        logger.warning(f"Subscription {subscription.name} poll failed: {error}")


def subscribe_query(
    container_name: str,
    query: str,
    on_snapshot: SnapshotCallback,
    parameters: list[dict[str, Any]] | None = None,
    on_error: Optional[ErrorCallback] = None,
    interval: float | None = None,
) -> Subscription:
    """
    Push every changed result set of ``query`` to ``on_snapshot``.

    Usage:
        sub = subscribe_query('prompts', 'SELECT * FROM c', handle_prompts)
        ...
        sub.unsubscribe()
    """
    subscription = Subscription(f"query:{container_name}")

    async def poll() -> None:
        try:
            items = await query_items(container_name, query, parameters=parameters)
        except StoreError as e:
            _deliver_error(subscription, on_error, e)
            return

        fingerprint = tuple(sorted((item.get("id"), item.get("_etag")) for item in items))
        if subscription.active and subscription._changed(fingerprint):
            await _invoke(on_snapshot, items)

    return _schedule(subscription, poll, interval)


def subscribe_item(
    container_name: str,
    item_id: str,
    partition_key: str,
    on_snapshot: ItemCallback,
    on_error: Optional[ErrorCallback] = None,
    interval: float | None = None,
) -> Subscription:
    """Push every change of a single document (None while it does not exist)."""
    subscription = Subscription(f"item:{container_name}/{item_id}")

    async def poll() -> None:
        try:
            item = await read_item(container_name, item_id, partition_key)
        except StoreError as e:
            _deliver_error(subscription, on_error, e)
            return

        fingerprint = (item.get("_etag"),) if item else (None,)
        if subscription.active and subscription._changed(fingerprint):
            await _invoke(on_snapshot, item)

    return _schedule(subscription, poll, interval)
