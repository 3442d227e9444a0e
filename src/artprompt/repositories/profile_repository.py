"""
Cosmos DB device profile repository.

Persists which username (if any) a device is bound to, so a reload resumes
the Named identity without re-entering the secret.
"""

import logging
from typing import Callable, Optional

from artprompt.db.change_feed import ErrorCallback, Subscription, subscribe_item
from artprompt.db.cosmos_session import DEVICE_SETTINGS_CONTAINER, read_item, upsert_item
from artprompt.models.documents import DeviceProfileDocument

logger = logging.getLogger(__name__)


class CosmosProfileRepository:
    """Repository for device profiles using Cosmos DB."""

    async def get_username(self, device_id: str) -> Optional[str]:
        doc_id = DeviceProfileDocument.document_id(device_id)
        data = await read_item(DEVICE_SETTINGS_CONTAINER, doc_id, partition_key=doc_id)
        if data is None:
            return None
        return data.get("username") or None

    async def set_username(self, device_id: str, username: str) -> None:
        profile = DeviceProfileDocument(
            id=DeviceProfileDocument.document_id(device_id),
            device_id=device_id,
            username=username,
        )
        await upsert_item(DEVICE_SETTINGS_CONTAINER, profile.to_item())
        logger.debug(f"Bound device {device_id} to a username")

    async def clear(self, device_id: str) -> None:
        await self.set_username(device_id, "")

    def subscribe(
        self,
        device_id: str,
        on_username: Callable[[Optional[str]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        doc_id = DeviceProfileDocument.document_id(device_id)
        return subscribe_item(
            DEVICE_SETTINGS_CONTAINER,
            doc_id,
            doc_id,
            lambda item: on_username((item or {}).get("username") or None),
            on_error=on_error,
        )
