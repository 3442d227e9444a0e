"""
Identity and vote-source types.

A device always has exactly one live identity: ``Guest`` (device-scoped) or
``Named`` (bound to a registry entry). Vote ownership follows the identity
through the ``VoteSource`` tagged union, whose variants know which document
holds their ``voted_for`` set.
"""

from dataclasses import dataclass
from typing import Optional, Union

from artprompt.core.config import settings
from artprompt.db.cosmos_session import DEVICE_SETTINGS_CONTAINER, REGISTRY_CONTAINER
from artprompt.models.documents import GuestVoteDocument, RegistryDocument


def username_key(username: str) -> str:
    """Registry key for a username: trimmed and lowercased."""
    return username.strip().lower()


def display_username(username: str) -> str:
    """Display form as typed, except the reserved admin name which is canonicalized."""
    name = username.strip()
    if name.lower() == settings.admin_key:
        return settings.ADMIN_USERNAME
    return name


@dataclass(frozen=True)
class Guest:
    device_id: str


@dataclass(frozen=True)
class Named:
    device_id: str
    username: str

    @property
    def key(self) -> str:
        return username_key(self.username)


Identity = Union[Guest, Named]


@dataclass(frozen=True)
class GuestVoteSource:
    """Votes owned by one device."""

    device_id: str

    container = DEVICE_SETTINGS_CONTAINER

    @property
    def document_id(self) -> str:
        return GuestVoteDocument.document_id(self.device_id)

    def new_document(self) -> dict:
        return GuestVoteDocument(id=self.document_id, device_id=self.device_id).to_item()


@dataclass(frozen=True)
class NamedVoteSource:
    """Votes owned by a registry entry, shared by every device that claimed it."""

    key: str

    container = REGISTRY_CONTAINER

    @property
    def document_id(self) -> str:
        return RegistryDocument.document_id(self.key)

    def new_document(self) -> None:
        # Registry entries only come into existence through a claim
        return None


VoteSource = Union[GuestVoteSource, NamedVoteSource]


def vote_source_for(identity: Identity) -> VoteSource:
    if isinstance(identity, Named):
        return NamedVoteSource(identity.key)
    return GuestVoteSource(identity.device_id)


def is_admin(identity: Optional[Identity]) -> bool:
    return isinstance(identity, Named) and identity.username == settings.ADMIN_USERNAME


@dataclass
class DeviceSession:
    """
    The live binding of one device for the current session.

    Passed explicitly to every ledger, view and contest call instead of being
    read from ambient state.
    """

    device_id: str
    username: Optional[str] = None

    @property
    def identity(self) -> Identity:
        if self.username:
            return Named(device_id=self.device_id, username=self.username)
        return Guest(device_id=self.device_id)

    @property
    def vote_source(self) -> VoteSource:
        return vote_source_for(self.identity)

    @property
    def is_named(self) -> bool:
        return bool(self.username)

    @property
    def is_admin(self) -> bool:
        return is_admin(self.identity)
