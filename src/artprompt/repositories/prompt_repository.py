"""
Cosmos DB Prompt repository.

Prompts are small documents partitioned by id; the whole contest's prompt
list is read (and subscribed to) with a single namespace-scoped query.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from pydantic import ValidationError

from artprompt.core.config import settings
from artprompt.db.change_feed import ErrorCallback, Subscription, subscribe_query
from artprompt.db.cosmos_session import (
    PROMPTS_CONTAINER,
    create_item,
    delete_item,
    patch_item,
    query_items,
    read_item,
)
from artprompt.models.documents import PromptDocument

logger = logging.getLogger(__name__)

ALL_PROMPTS_QUERY = "SELECT * FROM c WHERE c.app_id = @app_id"


def parse_prompts(items: list[dict[str, Any]]) -> list[PromptDocument]:
    """Parse raw items newest first, skipping malformed documents."""
    prompts: list[PromptDocument] = []
    for item in items:
        try:
            prompts.append(PromptDocument(**item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed prompt {item.get('id')}: {e.error_count()} errors")
    prompts.sort(key=lambda p: p.created_at.timestamp() if p.created_at else 0, reverse=True)
    return prompts


class CosmosPromptRepository:
    """Repository for prompt operations using Cosmos DB."""

    # ========================================================================
    # Read Operations
    # ========================================================================

    async def get_by_id(self, prompt_id: str) -> Optional[PromptDocument]:
        """Get a prompt by ID (direct point read)."""
        data = await read_item(PROMPTS_CONTAINER, prompt_id, partition_key=prompt_id)
        if data is None:
            return None
        return PromptDocument(**data)

    async def list_all(self) -> list[PromptDocument]:
        """Get every prompt of this contest, newest first."""
        results = await query_items(
            PROMPTS_CONTAINER,
            ALL_PROMPTS_QUERY,
            parameters=[{"name": "@app_id", "value": settings.APP_ID}],
        )
        return parse_prompts(results)

    # ========================================================================
    # Write Operations
    # ========================================================================

    async def create(self, prompt: PromptDocument) -> PromptDocument:
        """Create a prompt document."""
        await create_item(PROMPTS_CONTAINER, prompt.to_item())
        logger.info(f"Created prompt {prompt.id}")
        return prompt

    async def update_settings(
        self,
        prompt_id: str,
        deadline: Optional[datetime],
        max_votes: int,
    ) -> Optional[PromptDocument]:
        """Change deadline and vote cap in place. The password is never touched."""
        data = await patch_item(
            PROMPTS_CONTAINER,
            prompt_id,
            prompt_id,
            [
                {"op": "set", "path": "/deadline", "value": deadline.isoformat() if deadline else None},
                {"op": "set", "path": "/max_votes", "value": max_votes},
            ],
        )
        if data is None:
            return None
        logger.info(f"Updated prompt {prompt_id} settings")
        return PromptDocument(**data)

    async def delete(self, prompt_id: str) -> bool:
        """Delete a prompt. Its submissions stay behind as orphans."""
        deleted = await delete_item(PROMPTS_CONTAINER, prompt_id, partition_key=prompt_id)
        if deleted:
            logger.info(f"Deleted prompt {prompt_id}")
        return deleted

    # ========================================================================
    # Subscriptions
    # ========================================================================

    def subscribe(
        self,
        on_prompts: Callable[[list[PromptDocument]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Stream the full prompt list (newest first) on every change."""
        return subscribe_query(
            PROMPTS_CONTAINER,
            ALL_PROMPTS_QUERY,
            lambda items: on_prompts(parse_prompts(items)),
            parameters=[{"name": "@app_id", "value": settings.APP_ID}],
            on_error=on_error,
        )
