"""
Identity resolver service.

Binds a device to a durable username (creating or reclaiming the registry
entry) and folds the device's guest votes into it.

Claim protocol:
1. Fresh name: create-if-absent with the guest votes as the initial set.
   The reserved admin name additionally requires the out-of-band passphrase.
2. Taken name (or the create lost a race): etag-conditional merge that
   re-checks the secret against the exact version it replaces, so a wrong
   secret never writes and two claims never both see "name is free".
3. Only after the registry write succeeds is the device profile bound.

Guest records are left untouched; once the device is Named they are never
read again for it.
"""

from collections.abc import Iterable
from typing import Optional

import structlog

from artprompt.core.config import settings
from artprompt.core.errors import (
    AlreadyClaimed,
    ConcurrencyConflict,
    InvalidUsername,
    NotAuthorized,
    SecretMismatch,
)
from artprompt.models.identity import DeviceSession, GuestVoteSource, display_username, username_key
from artprompt.repositories.provider import (
    ProfileRepositoryProtocol,
    RegistryRepositoryProtocol,
    VoteSourceRepositoryProtocol,
)
from artprompt.schemas.views import ClaimOutcome

logger = structlog.get_logger(__name__)


class IdentityResolver:
    """Owns the Guest -> Named transition of a device."""

    def __init__(
        self,
        registry: RegistryRepositoryProtocol,
        profiles: ProfileRepositoryProtocol,
        votes: VoteSourceRepositoryProtocol,
    ):
        self.registry = registry
        self.profiles = profiles
        self.votes = votes

    async def resume(self, device_id: str) -> DeviceSession:
        """Rebuild a device's session from its persisted profile."""
        username = await self.profiles.get_username(device_id)
        return DeviceSession(device_id=device_id, username=username)

    def _is_admin_passphrase(self, secret: str) -> bool:
        return bool(settings.ADMIN_PASSPHRASE) and secret == settings.ADMIN_PASSPHRASE

    async def claim(
        self,
        session: DeviceSession,
        candidate_name: str,
        secret: str,
        guest_votes: Optional[Iterable[str]] = None,
    ) -> ClaimOutcome:
        """
        Claim ``candidate_name`` for this device and merge its guest votes.

        Args:
            session: The device's live session; updated in place on success
            candidate_name: Username as typed (case kept for display)
            secret: Secret phrase guarding the registry entry
            guest_votes: Guest ``voted_for`` to merge; read from the store if omitted

        Raises:
            AlreadyClaimed: device already Named this session
            InvalidUsername: name empty after trimming
            NotAuthorized: reserved admin name without the passphrase
            SecretMismatch: name taken and secret differs

        Returns:
            ClaimOutcome with the registry's merged votes
        """
        if session.is_named:
            raise AlreadyClaimed("Username is locked.")

        name = candidate_name.strip()
        secret = secret.strip()
        if not name:
            raise InvalidUsername("Please enter a username.")

        key = username_key(name)
        display = display_username(name)

        if guest_votes is None:
            guest_votes = await self.votes.get_voted_for(GuestVoteSource(session.device_id))
        guest = list(guest_votes)

        try:
            if key == settings.admin_key and not self._is_admin_passphrase(secret):
                # Existing admin entry can still be reclaimed with its stored secret
                entry = await self.registry.merge_votes(key, secret, guest)
                if entry is None:
                    raise NotAuthorized("You are not the Admin.")
                created = False
            else:
                entry = await self.registry.create(key, secret, session.device_id, guest)
                created = entry is not None
                if entry is None:
                    entry = await self.registry.merge_votes(key, secret, guest)
                if entry is None:
                    raise ConcurrencyConflict(f"Registry entry {key} vanished during claim")
        except (SecretMismatch, NotAuthorized) as e:
            logger.info("claim_rejected", key=key, reason=type(e).__name__)
            raise

        await self.profiles.set_username(session.device_id, display)
        session.username = display

        logger.info(
            "username_claimed",
            key=key,
            created=created,
            guest_votes=len(guest),
            total_votes=len(entry.voted_for),
        )
        return ClaimOutcome(username=display, key=key, created=created, voted_for=list(entry.voted_for))

    async def detach(self, session: DeviceSession) -> None:
        """
        Drop the device's username binding.

        The registry entry is untouched; re-attaching needs the secret again.
        """
        if not session.is_named:
            return
        await self.profiles.clear(session.device_id)
        logger.info("username_detached", key=username_key(session.username or ""))
        session.username = None
