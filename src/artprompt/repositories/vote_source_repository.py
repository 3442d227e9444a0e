"""
Cosmos DB repository for vote ownership sets.

Guest records and registry entries both hold a ``voted_for`` list; this
repository mutates either through the VoteSource they are addressed by, so
callers never branch on which kind of identity is voting.

Set-union and set-remove are read-modify-write cycles guarded by the
document etag, so two devices editing the same registry entry cannot drop
each other's votes.
"""

import logging
from typing import Any, Callable, Optional

from artprompt.db.change_feed import ErrorCallback, Subscription, subscribe_item
from artprompt.db.cosmos_session import read_item, update_item_optimistic
from artprompt.models.identity import VoteSource

logger = logging.getLogger(__name__)


def strip_system_properties(item: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in item.items() if not k.startswith("_")}


def voted_for_of(item: Optional[dict[str, Any]]) -> list[str]:
    if not item:
        return []
    return list(item.get("voted_for") or [])


class CosmosVoteSourceRepository:
    """Reads and mutates the ``voted_for`` set behind a VoteSource."""

    async def get_voted_for(self, source: VoteSource) -> list[str]:
        item = await read_item(source.container, source.document_id, partition_key=source.document_id)
        return voted_for_of(item)

    async def add_vote(self, source: VoteSource, artwork_id: str) -> bool:
        """
        Set-union ``artwork_id`` into the source's votes.

        Creates a missing guest record. Registry entries are never created here.

        Returns:
            True if the set changed
        """

        def mutate(current: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
            doc = current if current is not None else source.new_document()
            if doc is None:
                logger.warning(f"Vote target {source.document_id} does not exist")
                return None
            voted = voted_for_of(doc)
            if artwork_id in voted:
                return None
            return {**strip_system_properties(doc), "voted_for": voted + [artwork_id]}

        _, changed = await update_item_optimistic(
            source.container, source.document_id, source.document_id, mutate
        )
        return changed

    async def remove_vote(self, source: VoteSource, artwork_id: str) -> bool:
        """
        Set-remove ``artwork_id`` from the source's votes.

        Returns:
            True if the set changed
        """

        def mutate(current: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
            voted = voted_for_of(current)
            if artwork_id not in voted:
                return None
            return {
                **strip_system_properties(current),
                "voted_for": [v for v in voted if v != artwork_id],
            }

        _, changed = await update_item_optimistic(
            source.container, source.document_id, source.document_id, mutate
        )
        return changed

    def subscribe(
        self,
        source: VoteSource,
        on_votes: Callable[[list[str]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Stream the source's ``voted_for`` list (empty while the document is missing)."""
        return subscribe_item(
            source.container,
            source.document_id,
            source.document_id,
            lambda item: on_votes(voted_for_of(item)),
            on_error=on_error,
        )
