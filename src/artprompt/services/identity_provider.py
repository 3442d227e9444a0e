"""
Anonymous device identity provider.

Supplies the durable per-device principal the contest core keys guest votes
and authorship on. Listeners are awaited in registration order on every
signed-in / signed-out transition, so state changes are observed in a fixed
order.
"""

from typing import Awaitable, Callable, Optional, Protocol, runtime_checkable
from uuid import uuid4

import structlog

logger = structlog.get_logger(__name__)

AuthStateCallback = Callable[[Optional[str]], Awaitable[None]]


@runtime_checkable
class IdentityProvider(Protocol):
    """What the sync layer needs from an identity provider."""

    @property
    def current_device_id(self) -> Optional[str]: ...

    async def sign_in_anonymously(self) -> str: ...

    async def sign_out(self) -> None: ...

    def on_auth_state_changed(self, callback: AuthStateCallback) -> Callable[[], None]: ...


class AnonymousIdentityProvider:
    """
    In-process anonymous principal.

    Args:
        device_id: Previously issued device ID to resume with (e.g. from
            local storage); a fresh one is minted on the next sign-in otherwise
    """

    def __init__(self, device_id: Optional[str] = None):
        self._device_id = device_id
        self._listeners: list[AuthStateCallback] = []

    @property
    def current_device_id(self) -> Optional[str]:
        return self._device_id

    async def sign_in_anonymously(self) -> str:
        if self._device_id is None:
            self._device_id = str(uuid4())
            logger.info("device_signed_in", device_id=self._device_id)
        await self._notify(self._device_id)
        return self._device_id

    async def sign_out(self) -> None:
        if self._device_id is None:
            return
        logger.info("device_signed_out", device_id=self._device_id)
        self._device_id = None
        await self._notify(None)

    def on_auth_state_changed(self, callback: AuthStateCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def _notify(self, device_id: Optional[str]) -> None:
        for listener in list(self._listeners):
            await listener(device_id)
