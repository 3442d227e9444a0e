"""
Repository provider for dependency injection.

Services depend on the Protocols below, never on Cosmos classes directly,
so they can run against any store offering point reads, conditional writes,
atomic increments and change subscriptions.

Usage:
    from artprompt.repositories.provider import get_repositories

    repos = get_repositories()
    ledger = VoteLedger(repos.votes, repos.submissions)
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, Protocol, runtime_checkable

from artprompt.core.config import settings
from artprompt.db.change_feed import ErrorCallback, Subscription
from artprompt.models.documents import (
    CommentDocument,
    PromptDocument,
    RegistryDocument,
    SubmissionDocument,
)
from artprompt.models.identity import VoteSource

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================


def is_cosmos_enabled() -> bool:
    """Check if Cosmos DB is configured."""
    return bool(settings.AZURE_COSMOS_ENDPOINT or settings.AZURE_COSMOS_CONNECTION_STRING)


# =============================================================================
# Repository Protocols (Interfaces)
# =============================================================================


@runtime_checkable
class PromptRepositoryProtocol(Protocol):
    async def get_by_id(self, prompt_id: str) -> Optional[PromptDocument]: ...
    async def list_all(self) -> list[PromptDocument]: ...
    async def create(self, prompt: PromptDocument) -> PromptDocument: ...
    async def update_settings(
        self, prompt_id: str, deadline: Optional[datetime], max_votes: int
    ) -> Optional[PromptDocument]: ...
    async def delete(self, prompt_id: str) -> bool: ...
    def subscribe(
        self, on_prompts: Callable[[list[PromptDocument]], None], on_error: Optional[ErrorCallback] = None
    ) -> Subscription: ...


@runtime_checkable
class SubmissionRepositoryProtocol(Protocol):
    async def get_by_id(self, submission_id: str) -> Optional[SubmissionDocument]: ...
    async def list_all(self) -> list[SubmissionDocument]: ...
    async def create(self, submission: SubmissionDocument) -> SubmissionDocument: ...
    async def delete(self, submission_id: str) -> bool: ...
    async def adjust_votes(self, submission_id: str, delta: int) -> bool: ...
    async def add_comment(self, submission_id: str, comment: CommentDocument) -> bool: ...
    def subscribe(
        self,
        on_submissions: Callable[[list[SubmissionDocument]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription: ...


@runtime_checkable
class VoteSourceRepositoryProtocol(Protocol):
    async def get_voted_for(self, source: VoteSource) -> list[str]: ...
    async def add_vote(self, source: VoteSource, artwork_id: str) -> bool: ...
    async def remove_vote(self, source: VoteSource, artwork_id: str) -> bool: ...
    def subscribe(
        self,
        source: VoteSource,
        on_votes: Callable[[list[str]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription: ...


@runtime_checkable
class RegistryRepositoryProtocol(Protocol):
    async def get(self, key: str) -> Optional[RegistryDocument]: ...
    async def create(
        self, key: str, secret_phrase: str, device_id: str, voted_for: Iterable[str] = ()
    ) -> Optional[RegistryDocument]: ...
    async def merge_votes(
        self, key: str, secret_phrase: str, voted_for: Iterable[str]
    ) -> Optional[RegistryDocument]: ...


@runtime_checkable
class ProfileRepositoryProtocol(Protocol):
    async def get_username(self, device_id: str) -> Optional[str]: ...
    async def set_username(self, device_id: str, username: str) -> None: ...
    async def clear(self, device_id: str) -> None: ...
    def subscribe(
        self,
        device_id: str,
        on_username: Callable[[Optional[str]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription: ...


@dataclass
class Repositories:
    """Bundle of every record store the core talks to."""

    prompts: PromptRepositoryProtocol
    submissions: SubmissionRepositoryProtocol
    votes: VoteSourceRepositoryProtocol
    registry: RegistryRepositoryProtocol
    profiles: ProfileRepositoryProtocol


# =============================================================================
# Repository Factory Functions
# =============================================================================


def get_repositories() -> Repositories:
    """Build the Cosmos-backed repositories."""
    if not is_cosmos_enabled():
        raise RuntimeError(
            "Cosmos DB is not configured. Set AZURE_COSMOS_ENDPOINT or AZURE_COSMOS_CONNECTION_STRING."
        )

    from artprompt.repositories.profile_repository import CosmosProfileRepository
    from artprompt.repositories.prompt_repository import CosmosPromptRepository
    from artprompt.repositories.registry_repository import CosmosRegistryRepository
    from artprompt.repositories.submission_repository import CosmosSubmissionRepository
    from artprompt.repositories.vote_source_repository import CosmosVoteSourceRepository

    return Repositories(
        prompts=CosmosPromptRepository(),
        submissions=CosmosSubmissionRepository(),
        votes=CosmosVoteSourceRepository(),
        registry=CosmosRegistryRepository(),
        profiles=CosmosProfileRepository(),
    )
