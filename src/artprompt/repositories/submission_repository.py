"""
Cosmos DB Submission repository.

Vote counters and comment lists are only modified through server-side patch
operations, so concurrent voters and commenters never lose each other's
updates.
"""

import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError

from artprompt.core.config import settings
from artprompt.db.change_feed import ErrorCallback, Subscription, subscribe_query
from artprompt.db.cosmos_session import (
    SUBMISSIONS_CONTAINER,
    create_item,
    delete_item,
    patch_item,
    query_items,
    read_item,
)
from artprompt.models.documents import CommentDocument, SubmissionDocument

logger = logging.getLogger(__name__)

ALL_SUBMISSIONS_QUERY = "SELECT * FROM c WHERE c.app_id = @app_id"


def parse_submissions(items: list[dict[str, Any]]) -> list[SubmissionDocument]:
    """Parse raw items in store order, skipping malformed documents."""
    submissions: list[SubmissionDocument] = []
    for item in items:
        try:
            submissions.append(SubmissionDocument(**item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed submission {item.get('id')}: {e.error_count()} errors")
    return submissions


class CosmosSubmissionRepository:
    """Repository for submission operations using Cosmos DB."""

    # ========================================================================
    # Read Operations
    # ========================================================================

    async def get_by_id(self, submission_id: str) -> Optional[SubmissionDocument]:
        data = await read_item(SUBMISSIONS_CONTAINER, submission_id, partition_key=submission_id)
        if data is None:
            return None
        return SubmissionDocument(**data)

    async def list_all(self) -> list[SubmissionDocument]:
        """Get every submission of this contest, orphans included."""
        results = await query_items(
            SUBMISSIONS_CONTAINER,
            ALL_SUBMISSIONS_QUERY,
            parameters=[{"name": "@app_id", "value": settings.APP_ID}],
        )
        return parse_submissions(results)

    # ========================================================================
    # Write Operations
    # ========================================================================

    async def create(self, submission: SubmissionDocument) -> SubmissionDocument:
        await create_item(SUBMISSIONS_CONTAINER, submission.to_item())
        logger.info(f"Created submission {submission.id} for prompt {submission.prompt_id}")
        return submission

    async def delete(self, submission_id: str) -> bool:
        deleted = await delete_item(SUBMISSIONS_CONTAINER, submission_id, partition_key=submission_id)
        if deleted:
            logger.info(f"Deleted submission {submission_id}")
        return deleted

    async def adjust_votes(self, submission_id: str, delta: int) -> bool:
        """
        Atomically add ``delta`` to the vote counter.

        Returns:
            False if the submission no longer exists
        """
        data = await patch_item(
            SUBMISSIONS_CONTAINER,
            submission_id,
            submission_id,
            [{"op": "incr", "path": "/votes", "value": delta}],
        )
        if data is None:
            logger.warning(f"Vote counter update skipped, submission {submission_id} is gone")
            return False
        logger.debug(f"Adjusted votes on {submission_id} by {delta}")
        return True

    async def add_comment(self, submission_id: str, comment: CommentDocument) -> bool:
        """Append a comment atomically. Returns False if the submission is gone."""
        data = await patch_item(
            SUBMISSIONS_CONTAINER,
            submission_id,
            submission_id,
            [{"op": "add", "path": "/comments/-", "value": comment.model_dump(mode="json")}],
        )
        return data is not None

    # ========================================================================
    # Subscriptions
    # ========================================================================

    def subscribe(
        self,
        on_submissions: Callable[[list[SubmissionDocument]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Stream the raw submission list (orphans included) on every change."""
        return subscribe_query(
            SUBMISSIONS_CONTAINER,
            ALL_SUBMISSIONS_QUERY,
            lambda items: on_submissions(parse_submissions(items)),
            parameters=[{"name": "@app_id", "value": settings.APP_ID}],
            on_error=on_error,
        )
