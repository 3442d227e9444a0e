"""
Pytest fixtures for the contest core tests.

Service-level tests run against in-memory fakes of the repository Protocols;
store-level tests patch the Cosmos helpers directly.
"""

import inspect
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional

import pytest

# Set test environment variables before importing the package
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("APP_ID", "test-contest")
os.environ.setdefault("ADMIN_USERNAME", "Tourist")
os.environ.setdefault("ADMIN_PASSPHRASE", "I am tourist")
os.environ.setdefault("DEFAULT_MAX_VOTES", "2")

from artprompt.core.errors import SecretMismatch  # noqa: E402
from artprompt.db.cosmos_session import REGISTRY_CONTAINER  # noqa: E402
from artprompt.models.documents import (  # noqa: E402
    CommentDocument,
    PromptDocument,
    RegistryDocument,
    SubmissionDocument,
)
from artprompt.models.identity import DeviceSession, VoteSource  # noqa: E402
from artprompt.repositories.provider import Repositories  # noqa: E402
from artprompt.repositories.registry_repository import merge_votes  # noqa: E402

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Fake subscriptions
# =============================================================================


class FakeSubscription:
    """Subscription handle whose snapshots are pushed by the test."""

    def __init__(self, name: str, callback: Callable, on_error: Optional[Callable] = None, target: Any = None):
        self.name = name
        self.callback = callback
        self.on_error = on_error
        self.target = target
        self.active = True
        self.unsubscribe_calls = 0

    def unsubscribe(self) -> None:
        self.unsubscribe_calls += 1
        self.active = False

    async def emit(self, payload: Any) -> None:
        """Deliver a snapshot, ignoring it once unsubscribed like the real handle."""
        if not self.active:
            return
        result = self.callback(payload)
        if inspect.isawaitable(result):
            await result

    def fail(self, error: Exception) -> None:
        if self.active and self.on_error is not None:
            self.on_error(error)


class SubscriptionLog:
    def __init__(self):
        self.all: list[FakeSubscription] = []

    def add(self, subscription: FakeSubscription) -> FakeSubscription:
        self.all.append(subscription)
        return subscription

    def active(self, name: Optional[str] = None) -> list[FakeSubscription]:
        return [s for s in self.all if s.active and (name is None or s.name == name)]


# =============================================================================
# In-memory repositories
# =============================================================================


class InMemoryStore:
    """Documents keyed by (container, id), shared by the fakes below."""

    def __init__(self):
        self.documents: dict[tuple[str, str], dict[str, Any]] = {}
        self.prompts: dict[str, PromptDocument] = {}
        self.submissions: dict[str, SubmissionDocument] = {}
        self.profiles: dict[str, str] = {}
        self.subscriptions = SubscriptionLog()


class FakePromptRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_by_id(self, prompt_id: str) -> Optional[PromptDocument]:
        return self.store.prompts.get(prompt_id)

    async def list_all(self) -> list[PromptDocument]:
        return list(self.store.prompts.values())

    async def create(self, prompt: PromptDocument) -> PromptDocument:
        self.store.prompts[prompt.id] = prompt
        return prompt

    async def update_settings(
        self, prompt_id: str, deadline: Optional[datetime], max_votes: int
    ) -> Optional[PromptDocument]:
        prompt = self.store.prompts.get(prompt_id)
        if prompt is None:
            return None
        updated = prompt.model_copy(update={"deadline": deadline, "max_votes": max_votes})
        self.store.prompts[prompt_id] = updated
        return updated

    async def delete(self, prompt_id: str) -> bool:
        return self.store.prompts.pop(prompt_id, None) is not None

    def subscribe(self, on_prompts, on_error=None) -> FakeSubscription:
        return self.store.subscriptions.add(FakeSubscription("prompts", on_prompts, on_error))


class FakeSubmissionRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store
        self.adjustments: list[tuple[str, int]] = []

    async def get_by_id(self, submission_id: str) -> Optional[SubmissionDocument]:
        return self.store.submissions.get(submission_id)

    async def list_all(self) -> list[SubmissionDocument]:
        return list(self.store.submissions.values())

    async def create(self, submission: SubmissionDocument) -> SubmissionDocument:
        self.store.submissions[submission.id] = submission
        return submission

    async def delete(self, submission_id: str) -> bool:
        return self.store.submissions.pop(submission_id, None) is not None

    async def adjust_votes(self, submission_id: str, delta: int) -> bool:
        submission = self.store.submissions.get(submission_id)
        if submission is None:
            return False
        submission.votes += delta
        self.adjustments.append((submission_id, delta))
        return True

    async def add_comment(self, submission_id: str, comment: CommentDocument) -> bool:
        submission = self.store.submissions.get(submission_id)
        if submission is None:
            return False
        submission.comments.append(comment)
        return True

    def subscribe(self, on_submissions, on_error=None) -> FakeSubscription:
        return self.store.subscriptions.add(FakeSubscription("submissions", on_submissions, on_error))


class FakeVoteSourceRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    def _key(self, source: VoteSource) -> tuple[str, str]:
        return (source.container, source.document_id)

    async def get_voted_for(self, source: VoteSource) -> list[str]:
        doc = self.store.documents.get(self._key(source))
        return list(doc.get("voted_for", [])) if doc else []

    async def add_vote(self, source: VoteSource, artwork_id: str) -> bool:
        doc = self.store.documents.get(self._key(source))
        if doc is None:
            doc = source.new_document()
            if doc is None:
                return False
            self.store.documents[self._key(source)] = doc
        if artwork_id in doc["voted_for"]:
            return False
        doc["voted_for"] = doc["voted_for"] + [artwork_id]
        return True

    async def remove_vote(self, source: VoteSource, artwork_id: str) -> bool:
        doc = self.store.documents.get(self._key(source))
        if doc is None or artwork_id not in doc["voted_for"]:
            return False
        doc["voted_for"] = [v for v in doc["voted_for"] if v != artwork_id]
        return True

    def subscribe(self, source: VoteSource, on_votes, on_error=None) -> FakeSubscription:
        return self.store.subscriptions.add(FakeSubscription("votes", on_votes, on_error, target=source))


class FakeRegistryRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    def _key(self, key: str) -> tuple[str, str]:
        return (REGISTRY_CONTAINER, RegistryDocument.document_id(key))

    async def get(self, key: str) -> Optional[RegistryDocument]:
        doc = self.store.documents.get(self._key(key))
        return RegistryDocument(**doc) if doc else None

    async def create(
        self, key: str, secret_phrase: str, device_id: str, voted_for: Iterable[str] = ()
    ) -> Optional[RegistryDocument]:
        if self._key(key) in self.store.documents:
            return None
        entry = RegistryDocument(
            id=RegistryDocument.document_id(key),
            secret_phrase=secret_phrase,
            created_by=device_id,
            voted_for=merge_votes([], voted_for),
        )
        self.store.documents[self._key(key)] = entry.to_item()
        return entry

    async def merge_votes(
        self, key: str, secret_phrase: str, voted_for: Iterable[str]
    ) -> Optional[RegistryDocument]:
        doc = self.store.documents.get(self._key(key))
        if doc is None:
            return None
        if doc["secret_phrase"] != secret_phrase:
            raise SecretMismatch("Username taken. Incorrect secret phrase.")
        doc["voted_for"] = merge_votes(doc["voted_for"], voted_for)
        return RegistryDocument(**doc)

    def seed(self, key: str, secret_phrase: str, voted_for: Iterable[str], created_by: str = "other-device") -> None:
        entry = RegistryDocument(
            id=RegistryDocument.document_id(key),
            secret_phrase=secret_phrase,
            created_by=created_by,
            voted_for=list(voted_for),
        )
        self.store.documents[self._key(key)] = entry.to_item()


class FakeProfileRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_username(self, device_id: str) -> Optional[str]:
        return self.store.profiles.get(device_id) or None

    async def set_username(self, device_id: str, username: str) -> None:
        self.store.profiles[device_id] = username

    async def clear(self, device_id: str) -> None:
        self.store.profiles[device_id] = ""

    def subscribe(self, device_id: str, on_username, on_error=None) -> FakeSubscription:
        return self.store.subscriptions.add(FakeSubscription("profile", on_username, on_error, target=device_id))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def repos(store: InMemoryStore) -> Repositories:
    return Repositories(
        prompts=FakePromptRepository(store),
        submissions=FakeSubmissionRepository(store),
        votes=FakeVoteSourceRepository(store),
        registry=FakeRegistryRepository(store),
        profiles=FakeProfileRepository(store),
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def guest_session() -> DeviceSession:
    return DeviceSession(device_id="device-1")


@pytest.fixture
def make_prompt() -> Callable[..., PromptDocument]:
    """Factory for prompts; open for a day after NOW unless told otherwise."""

    def _make(prompt_id: str = "P", **overrides: Any) -> PromptDocument:
        data: dict[str, Any] = {
            "id": prompt_id,
            "title": f"Prompt {prompt_id}",
            "image_url": f"https://img.example/{prompt_id}.png",
            "password": "moon",
            "deadline": NOW + timedelta(days=1),
            "max_votes": 2,
            "author_id": "creator-device",
            "created_at": NOW - timedelta(days=1),
        }
        data.update(overrides)
        return PromptDocument(**data)

    return _make


@pytest.fixture
def make_submission() -> Callable[..., SubmissionDocument]:
    def _make(submission_id: str, prompt_id: str = "P", **overrides: Any) -> SubmissionDocument:
        data: dict[str, Any] = {
            "id": submission_id,
            "prompt_id": prompt_id,
            "title": f"Art {submission_id}",
            "image_url": f"https://img.example/{submission_id}.png",
            "artist_name": "Vega",
            "votes": 0,
            "author_id": "artist-device",
            "created_at": NOW - timedelta(hours=1),
        }
        data.update(overrides)
        return SubmissionDocument(**data)

    return _make
