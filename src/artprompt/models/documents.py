"""
Cosmos DB document models for the contest store.

These Pydantic models define the document structure stored in Cosmos DB.
Every document carries ``app_id`` so several contests can share containers;
keyed documents (registry entries, device settings) also embed it in their id.

Container Strategy:
- prompts: Prompt definitions (partition: /id)
- submissions: Artwork with embedded comments and vote counter (partition: /id)
- registry: Username claims keyed by lowercase name (partition: /id)
- device-settings: Guest vote records and device profiles (partition: /id)
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from artprompt.core.config import settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. datetime-local form input) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============================================================================
# Base Document Model
# ============================================================================


class CosmosDocument(BaseModel):
    """
    Base class for Cosmos DB documents.

    All documents have:
    - id: Unique identifier (also the partition key)
    - app_id: Contest namespace
    - _ts / _etag: managed by Cosmos DB, kept as extra fields
    """

    # Allow extra fields for Cosmos DB system properties (_ts, _etag, etc.)
    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=lambda: str(uuid4()))
    app_id: str = Field(default_factory=lambda: settings.APP_ID)

    @property
    def etag(self) -> Optional[str]:
        return (self.model_extra or {}).get("_etag")

    def to_item(self) -> dict:
        """Serialize for the store, without Cosmos system properties."""
        data = self.model_dump(mode="json")
        return {k: v for k, v in data.items() if not k.startswith("_")}


def coerce_max_votes(value) -> int:
    """Missing, zero or garbage caps fall back to the default."""
    try:
        cap = int(value)
    except (TypeError, ValueError):
        return settings.DEFAULT_MAX_VOTES
    return cap if cap >= 1 else settings.DEFAULT_MAX_VOTES


def scoped_id(*parts: str) -> str:
    """Build a document id inside the configured contest namespace."""
    return ":".join((settings.APP_ID, *parts))


# ============================================================================
# Prompt & Submission Documents
# ============================================================================


class PromptDocument(CosmosDocument):
    """
    Prompt document stored in the 'prompts' container.

    ``password`` is fixed at creation; only ``deadline`` and ``max_votes``
    may change afterwards, and only by the author or the admin.
    """

    title: str
    image_url: str
    password: str = ""
    deadline: Optional[datetime] = None
    max_votes: int = Field(default_factory=lambda: settings.DEFAULT_MAX_VOTES)
    creator_name: str = ""
    author_id: str
    created_at: Optional[datetime] = None

    @field_validator("max_votes", mode="before")
    @classmethod
    def validate_max_votes(cls, v):
        return coerce_max_votes(v)

    def is_closed(self, now: Optional[datetime] = None) -> bool:
        """A prompt closes strictly after its deadline; no deadline means open."""
        if self.deadline is None:
            return False
        return (now or utc_now()) > as_utc(self.deadline)


class CommentDocument(BaseModel):
    """Comment embedded in a submission."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    text: str
    author_id: str
    author_name: str
    created_at: datetime = Field(default_factory=utc_now)


class SubmissionDocument(CosmosDocument):
    """
    Submission document stored in the 'submissions' container.

    ``votes`` is only ever changed through atomic patch increments.
    """

    prompt_id: str
    title: str = ""
    image_url: str
    artist_name: str = ""
    votes: int = 0
    comments: list[CommentDocument] = Field(default_factory=list)
    author_id: str
    created_at: Optional[datetime] = None

    @field_validator("votes", mode="before")
    @classmethod
    def coerce_votes(cls, v):
        return v or 0


# ============================================================================
# Vote Ownership Documents
# ============================================================================


class RegistryDocument(CosmosDocument):
    """
    Username claim stored in the 'registry' container.

    Document id: scoped_id(<lowercase username>). Public read, so the secret is
    the only gate on attaching another device.
    """

    secret_phrase: str
    created_by: str
    voted_for: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def document_id(cls, username_key: str) -> str:
        return scoped_id(username_key)


class GuestVoteDocument(CosmosDocument):
    """Device-scoped vote record stored in the 'device-settings' container."""

    device_id: str
    voted_for: list[str] = Field(default_factory=list)

    @classmethod
    def document_id(cls, device_id: str) -> str:
        return scoped_id(device_id, "votes")


class DeviceProfileDocument(CosmosDocument):
    """Persisted username binding of one device ('device-settings' container)."""

    device_id: str
    username: str = ""

    @classmethod
    def document_id(cls, device_id: str) -> str:
        return scoped_id(device_id, "profile")
