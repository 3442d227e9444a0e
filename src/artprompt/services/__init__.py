"""Contest services: voting, identity, derived views and sync."""

from artprompt.services.contest_service import ContestService
from artprompt.services.derived_views import DerivedViewEngine, rank
from artprompt.services.identity_provider import AnonymousIdentityProvider, IdentityProvider
from artprompt.services.identity_resolver import IdentityResolver
from artprompt.services.sync_coordinator import SyncCoordinator, SyncState
from artprompt.services.vote_ledger import VoteLedger

__all__ = [
    "AnonymousIdentityProvider",
    "ContestService",
    "DerivedViewEngine",
    "IdentityProvider",
    "IdentityResolver",
    "SyncCoordinator",
    "SyncState",
    "VoteLedger",
    "rank",
]
