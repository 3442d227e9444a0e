"""View schemas for the UI layer."""

from artprompt.schemas.views import (
    ClaimOutcome,
    CommentView,
    LeaderboardEntry,
    Rank,
    SubmissionView,
    VoteDelta,
)

__all__ = [
    "ClaimOutcome",
    "CommentView",
    "LeaderboardEntry",
    "Rank",
    "SubmissionView",
    "VoteDelta",
]
