"""
Sync coordinator.

Keeps one device's view of the contest current:

    Unauthenticated -> Authenticated(Guest) -> Authenticated(Named)

On sign-in it subscribes to prompts, submissions, the device profile and the
active identity's vote source. Claiming a username swaps the guest vote
stream for the registry stream; detaching signs the device out, which tears
everything down and (with ``auto_sign_in``) starts over on a fresh device
whose guest record is empty.

Every subscribe is paired with an unsubscribe on the matching state exit.
Vote-stream swaps subscribe the new source before dropping the old one and
keep the last known ``voted_for`` until the new stream reports, so consumers
never observe an empty set caused by the swap itself.
"""

from enum import Enum
from typing import Callable, Optional

import structlog

from artprompt.core.errors import NotAuthorized, PermissionDenied, StoreError
from artprompt.db.change_feed import Subscription
from artprompt.models.documents import PromptDocument, SubmissionDocument
from artprompt.models.identity import DeviceSession, VoteSource
from artprompt.repositories.provider import Repositories
from artprompt.schemas.views import ClaimOutcome, VoteDelta
from artprompt.services.derived_views import DerivedViewEngine
from artprompt.services.identity_provider import IdentityProvider
from artprompt.services.identity_resolver import IdentityResolver
from artprompt.services.vote_ledger import VoteLedger

logger = structlog.get_logger(__name__)

ViewsCallback = Callable[[DerivedViewEngine], None]
ErrorCallback = Callable[[StoreError], None]


class SyncState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    GUEST = "guest"
    NAMED = "named"


class SyncCoordinator:
    """
    Wires store change streams to derived views for one device.

    Args:
        repos: Record stores
        provider: Identity provider driving sign-in / sign-out
        on_change: Receives a fresh DerivedViewEngine after every snapshot
        on_error: Receives store errors from the streams
        auto_sign_in: Request a new anonymous principal whenever signed out
    """

    def __init__(
        self,
        repos: Repositories,
        provider: IdentityProvider,
        on_change: Optional[ViewsCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        auto_sign_in: bool = True,
    ):
        self.repos = repos
        self.provider = provider
        self.resolver = IdentityResolver(repos.registry, repos.profiles, repos.votes)
        self.ledger = VoteLedger(repos.votes, repos.submissions)
        self.on_change = on_change
        self.on_error = on_error
        self.auto_sign_in = auto_sign_in

        self.state = SyncState.UNAUTHENTICATED
        self.session: Optional[DeviceSession] = None
        self.prompts: list[PromptDocument] = []
        self.submissions: list[SubmissionDocument] = []
        self.voted_for: list[str] = []
        self.permission_denied = False

        self._session_subs: list[Subscription] = []
        self._vote_sub: Optional[Subscription] = None
        self._vote_generation = 0
        self._unlisten: Optional[Callable[[], None]] = None
        self._running = False

    @property
    def views(self) -> DerivedViewEngine:
        """Derived views over the latest snapshot."""
        return DerivedViewEngine(self.prompts, self.submissions, self.voted_for)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._unlisten = self.provider.on_auth_state_changed(self._on_auth_state)

        device_id = self.provider.current_device_id
        if device_id:
            await self._enter(device_id)
        elif self.auto_sign_in:
            await self.provider.sign_in_anonymously()

    async def stop(self) -> None:
        self._running = False
        if self._unlisten is not None:
            self._unlisten()
            self._unlisten = None
        self._teardown()
        self._set_state(SyncState.UNAUTHENTICATED)

    async def _on_auth_state(self, device_id: Optional[str]) -> None:
        if device_id is None:
            self._teardown()
            self.session = None
            self.voted_for = []
            self._set_state(SyncState.UNAUTHENTICATED)
            self._publish()
            if self._running and self.auto_sign_in:
                await self.provider.sign_in_anonymously()
            return

        if self.session is not None and self.session.device_id == device_id:
            return
        await self._enter(device_id)

    async def _enter(self, device_id: str) -> None:
        self._teardown()
        session = await self.resolver.resume(device_id)
        self.session = session

        self._session_subs = [
            self.repos.prompts.subscribe(self._on_prompts, self._on_store_error),
            self.repos.submissions.subscribe(self._on_submissions, self._on_store_error),
            self.repos.profiles.subscribe(device_id, self._on_profile, self._on_store_error),
        ]
        self._switch_votes(session.vote_source)
        self._set_state(SyncState.NAMED if session.is_named else SyncState.GUEST)

    def _teardown(self) -> None:
        for subscription in self._session_subs:
            subscription.unsubscribe()
        self._session_subs = []
        if self._vote_sub is not None:
            self._vote_sub.unsubscribe()
            self._vote_sub = None
        self._vote_generation += 1

    def _set_state(self, state: SyncState) -> None:
        if state != self.state:
            logger.info("sync_state_changed", previous=self.state.value, current=state.value)
        self.state = state

    # ========================================================================
    # Vote stream switching
    # ========================================================================

    def _switch_votes(self, source: VoteSource, seed: Optional[list[str]] = None) -> None:
        self._vote_generation += 1
        generation = self._vote_generation

        previous = self._vote_sub
        self._vote_sub = self.repos.votes.subscribe(
            source,
            lambda votes: self._on_votes(generation, votes),
            self._on_store_error,
        )
        if previous is not None:
            previous.unsubscribe()

        if seed is not None:
            self.voted_for = list(seed)
            self._publish()

    def _on_votes(self, generation: int, votes: list[str]) -> None:
        # Late delivery from a stream that has since been swapped out
        if generation != self._vote_generation:
            return
        self.voted_for = votes
        self._publish()

    # ========================================================================
    # Stream handlers
    # ========================================================================

    def _on_prompts(self, prompts: list[PromptDocument]) -> None:
        self.prompts = prompts
        self.permission_denied = False
        self._publish()

    def _on_submissions(self, submissions: list[SubmissionDocument]) -> None:
        self.submissions = submissions
        self._publish()

    async def _on_profile(self, username: Optional[str]) -> None:
        session = self.session
        if session is None or username == session.username:
            return

        if username:
            # Claimed from another tab of this device
            session.username = username
            self._switch_votes(session.vote_source)
            self._set_state(SyncState.NAMED)
        else:
            # Detached elsewhere; the guest record stays abandoned
            await self.provider.sign_out()

    def _on_store_error(self, error: StoreError) -> None:
        if isinstance(error, PermissionDenied):
            self.permission_denied = True
            logger.warning("store_permission_denied", error=str(error))
        else:
            logger.warning("sync_error", error=str(error))
        if self.on_error is not None:
            self.on_error(error)

    def _publish(self) -> None:
        if self.on_change is not None:
            self.on_change(self.views)

    # ========================================================================
    # Operations
    # ========================================================================

    def _require_session(self) -> DeviceSession:
        if self.session is None:
            raise NotAuthorized("Not signed in.")
        return self.session

    async def vote(self, artwork_id: str) -> VoteDelta:
        """Toggle a vote for the active identity."""
        session = self._require_session()
        generation = self._vote_generation
        delta = await self.ledger.vote(session, artwork_id, self.views)
        # A claim or detach during the write moved the vote stream elsewhere
        if generation == self._vote_generation:
            self.voted_for = delta.voted_for
            self._publish()
        return delta

    async def claim(self, candidate_name: str, secret: str) -> ClaimOutcome:
        """Claim a username and move the vote stream onto its registry entry."""
        session = self._require_session()
        outcome = await self.resolver.claim(session, candidate_name, secret)
        self._switch_votes(session.vote_source, seed=outcome.voted_for)
        self._set_state(SyncState.NAMED)
        return outcome

    async def detach(self) -> None:
        """Log out of the username; the device continues as a fresh guest."""
        session = self._require_session()
        if not session.is_named:
            return

        self._teardown()
        try:
            await self.resolver.detach(session)
        except StoreError:
            await self._enter(session.device_id)
            raise

        await self.provider.sign_out()
