"""Store documents and identity types."""

from artprompt.models.documents import (
    CommentDocument,
    DeviceProfileDocument,
    GuestVoteDocument,
    PromptDocument,
    RegistryDocument,
    SubmissionDocument,
)
from artprompt.models.identity import (
    DeviceSession,
    Guest,
    GuestVoteSource,
    Identity,
    Named,
    NamedVoteSource,
    VoteSource,
)

__all__ = [
    "CommentDocument",
    "DeviceProfileDocument",
    "GuestVoteDocument",
    "PromptDocument",
    "RegistryDocument",
    "SubmissionDocument",
    "DeviceSession",
    "Guest",
    "GuestVoteSource",
    "Identity",
    "Named",
    "NamedVoteSource",
    "VoteSource",
]
