"""
Error taxonomy for the contest core.

Validation errors (caps, secrets, passwords) are raised before any write and
leave no partial state. Store errors abort the in-flight operation; every
mutation is idempotent or monotonic, so callers may simply re-issue it.
"""


class ArtPromptError(Exception):
    """Base exception for all contest core failures."""

    pass


# ============================================================================
# Store errors
# ============================================================================


class StoreError(ArtPromptError):
    """The document store rejected or failed an operation."""

    pass


class PermissionDenied(StoreError):
    """Store access policy rejected the request. Configuration problem, never retried."""

    pass


class TransientIOError(StoreError):
    """Network or store failure. Safe to re-issue."""

    pass


class ConcurrencyConflict(TransientIOError):
    """Optimistic write lost every retry against concurrent writers."""

    pass


class StaleReference(ArtPromptError):
    """
    A vote or submission points at a deleted parent.

    Derived views exclude such records silently; this is never raised by them.
    """

    pass


# ============================================================================
# Voting errors
# ============================================================================


class VoteError(ArtPromptError):
    """Base exception for rejected vote toggles."""

    pass


class VoteCapExceeded(VoteError):
    """The identity already spent every vote allowed on this prompt."""

    def __init__(self, max_votes: int):
        self.max_votes = max_votes
        super().__init__(f"Max {max_votes} votes!")


class PromptClosed(VoteError):
    """The prompt deadline has passed."""

    pass


# ============================================================================
# Claim errors
# ============================================================================


class ClaimError(ArtPromptError):
    """Base exception for rejected username claims."""

    pass


class SecretMismatch(ClaimError):
    """Username taken and the secret phrase does not match."""

    pass


class AlreadyClaimed(ClaimError):
    """The device is already bound to a username for this session."""

    pass


class InvalidUsername(ClaimError):
    """Username is empty after trimming."""

    pass


# ============================================================================
# Contest record errors
# ============================================================================


class ContestError(ArtPromptError):
    """Base exception for prompt and submission operations."""

    pass


class PromptNotFound(ContestError):
    pass


class SubmissionNotFound(ContestError):
    pass


class PromptPasswordMismatch(ContestError):
    """Incorrect prompt password."""

    pass


class ConfirmationMismatch(ContestError):
    """Delete confirmation phrase did not match."""

    pass


class InvalidInput(ContestError):
    """A required field is missing or malformed."""

    pass


class NotAuthorized(ClaimError, ContestError):
    """Caller may not take this action: reserved name, or a prompt they do not own."""

    pass
