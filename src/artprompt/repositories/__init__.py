"""Repository modules for document store access."""

from artprompt.repositories.profile_repository import CosmosProfileRepository
from artprompt.repositories.prompt_repository import CosmosPromptRepository
from artprompt.repositories.registry_repository import CosmosRegistryRepository
from artprompt.repositories.submission_repository import CosmosSubmissionRepository
from artprompt.repositories.vote_source_repository import CosmosVoteSourceRepository

__all__ = [
    "CosmosProfileRepository",
    "CosmosPromptRepository",
    "CosmosRegistryRepository",
    "CosmosSubmissionRepository",
    "CosmosVoteSourceRepository",
]
