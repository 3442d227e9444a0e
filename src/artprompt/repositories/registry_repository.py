"""
Cosmos DB username registry repository.

One document per lowercase username. Creation is a create-if-absent write,
so two devices racing for a fresh name cannot both believe they created it;
merges are etag-conditional and re-check the secret against the exact
version being replaced.
"""

import logging
from typing import Any, Iterable, Optional

from artprompt.core.errors import SecretMismatch
from artprompt.db.cosmos_session import (
    REGISTRY_CONTAINER,
    create_item,
    read_item,
    update_item_optimistic,
)
from artprompt.models.documents import RegistryDocument
from artprompt.repositories.vote_source_repository import strip_system_properties, voted_for_of

logger = logging.getLogger(__name__)


def merge_votes(existing: Iterable[str], incoming: Iterable[str]) -> list[str]:
    """Deduplicated union keeping existing order first."""
    merged = list(dict.fromkeys(existing))
    seen = set(merged)
    for vote in incoming:
        if vote not in seen:
            merged.append(vote)
            seen.add(vote)
    return merged


class CosmosRegistryRepository:
    """Repository for username registry entries using Cosmos DB."""

    async def get(self, key: str) -> Optional[RegistryDocument]:
        doc_id = RegistryDocument.document_id(key)
        data = await read_item(REGISTRY_CONTAINER, doc_id, partition_key=doc_id)
        if data is None:
            return None
        return RegistryDocument(**data)

    async def create(
        self,
        key: str,
        secret_phrase: str,
        device_id: str,
        voted_for: Iterable[str] = (),
    ) -> Optional[RegistryDocument]:
        """
        Create the entry only if the name is still free.

        Returns:
            The new entry, or None if someone else already holds the name
        """
        entry = RegistryDocument(
            id=RegistryDocument.document_id(key),
            secret_phrase=secret_phrase,
            created_by=device_id,
            voted_for=merge_votes([], voted_for),
        )
        data = await create_item(REGISTRY_CONTAINER, entry.to_item())
        if data is None:
            logger.debug(f"Registry entry {key} already exists")
            return None
        logger.info(f"Registered username {key}")
        return RegistryDocument(**data)

    async def merge_votes(
        self,
        key: str,
        secret_phrase: str,
        voted_for: Iterable[str],
    ) -> Optional[RegistryDocument]:
        """
        Union ``voted_for`` into an existing entry after checking its secret.

        Raises:
            SecretMismatch: secret differs from the stored one (nothing written)

        Returns:
            The entry after the merge, or None if it does not exist
        """
        incoming = list(voted_for)
        doc_id = RegistryDocument.document_id(key)

        def mutate(current: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
            if current is None:
                return None
            if current.get("secret_phrase") != secret_phrase:
                raise SecretMismatch("Username taken. Incorrect secret phrase.")
            existing = voted_for_of(current)
            merged = merge_votes(existing, incoming)
            if merged == existing:
                return None
            return {**strip_system_properties(current), "voted_for": merged}

        data, changed = await update_item_optimistic(REGISTRY_CONTAINER, doc_id, doc_id, mutate)
        if data is None:
            return None
        if changed:
            logger.info(f"Merged {len(incoming)} guest votes into {key}")
        return RegistryDocument(**data)
