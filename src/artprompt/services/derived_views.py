"""
Derived views over the latest contest snapshot.

Everything here is a pure function of (prompts, submissions, voted_for, now):
the sync layer builds a fresh DerivedViewEngine for every incoming snapshot
instead of maintaining incremental state.

Only valid submissions, whose prompt is still present in the snapshot, feed
the views. Orphans and vote IDs pointing at deleted submissions are dropped
silently.
"""

from datetime import datetime
from functools import cached_property
from typing import Iterable, Optional

from artprompt.core.config import settings
from artprompt.models.documents import PromptDocument, SubmissionDocument, utc_now
from artprompt.models.identity import DeviceSession, Named
from artprompt.schemas.views import CommentView, LeaderboardEntry, Rank, SubmissionView

# Lower bounds, highest tier first
RANK_THRESHOLDS: list[tuple[int, Rank]] = [
    (50, Rank.UNIVERSE_CREATOR),
    (25, Rank.GALACTIC_MASTER),
    (10, Rank.NEBULA_ARTISAN),
    (1, Rank.MOON_WALKER),
]


def rank(total_votes: int) -> Rank:
    """Map a vote total onto its tier. Lower bounds are inclusive."""
    for threshold, tier in RANK_THRESHOLDS:
        if total_votes >= threshold:
            return tier
    return Rank.SPACE_CADET


def _created_ts(submission: SubmissionDocument) -> float:
    # Pending server timestamps sort as oldest
    return submission.created_at.timestamp() if submission.created_at else 0.0


class DerivedViewEngine:
    """
    Views for one snapshot.

    Args:
        prompts: Current prompts (newest first)
        submissions: Raw submissions, orphans included, in store order
        voted_for: The active identity's voted artwork IDs
        now: Evaluation time for deadlines (defaults to the current UTC time)
    """

    def __init__(
        self,
        prompts: Iterable[PromptDocument],
        submissions: Iterable[SubmissionDocument],
        voted_for: Iterable[str] = (),
        now: Optional[datetime] = None,
    ):
        self.prompts = list(prompts)
        self.submissions = list(submissions)
        self.voted_for = list(voted_for)
        self.now = now or utc_now()

    # ========================================================================
    # Snapshot indexes
    # ========================================================================

    @cached_property
    def prompts_by_id(self) -> dict[str, PromptDocument]:
        return {p.id: p for p in self.prompts}

    @cached_property
    def valid_submissions(self) -> list[SubmissionDocument]:
        return [s for s in self.submissions if s.prompt_id in self.prompts_by_id]

    @cached_property
    def valid_submissions_by_id(self) -> dict[str, SubmissionDocument]:
        return {s.id: s for s in self.valid_submissions}

    def prompt_for(self, submission: SubmissionDocument) -> Optional[PromptDocument]:
        return self.prompts_by_id.get(submission.prompt_id)

    def prompt_submission_ids(self, prompt_id: str) -> set[str]:
        return {s.id for s in self.valid_submissions if s.prompt_id == prompt_id}

    def is_prompt_closed(self, prompt_id: str) -> bool:
        prompt = self.prompts_by_id.get(prompt_id)
        return prompt is not None and prompt.is_closed(self.now)

    # ========================================================================
    # Vote usage
    # ========================================================================

    def votes_used(self, prompt_id: str) -> int:
        """How many of the active identity's votes went to this prompt."""
        ids = self.prompt_submission_ids(prompt_id)
        return sum(1 for vote in set(self.voted_for) if vote in ids)

    def active_vote_count(self) -> int:
        """Votes that still resolve to a valid submission."""
        return sum(1 for vote in set(self.voted_for) if vote in self.valid_submissions_by_id)

    # ========================================================================
    # Contest views
    # ========================================================================

    def active_prompts(self) -> list[PromptDocument]:
        return [p for p in self.prompts if not p.is_closed(self.now)]

    def expired_prompts(self) -> list[PromptDocument]:
        return [p for p in self.prompts if p.is_closed(self.now)]

    def winner(self, prompt_id: str) -> Optional[SubmissionDocument]:
        """
        Highest-voted valid submission of a closed prompt.

        Ties go to the first submission in input order. None while the
        prompt is open, unknown or empty.
        """
        if not self.is_prompt_closed(prompt_id):
            return None
        best: Optional[SubmissionDocument] = None
        for submission in self.valid_submissions:
            if submission.prompt_id != prompt_id:
                continue
            if best is None or submission.votes > best.votes:
                best = submission
        return best

    def banner_artwork(self) -> Optional[SubmissionDocument]:
        """Most recently created valid submission across all prompts."""
        latest: Optional[SubmissionDocument] = None
        for submission in self.valid_submissions:
            if latest is None or _created_ts(submission) > _created_ts(latest):
                latest = submission
        return latest

    def leaderboard(self) -> list[LeaderboardEntry]:
        """Votes and entry counts per artist name, most votes first."""
        stats: dict[str, LeaderboardEntry] = {}
        for submission in self.valid_submissions:
            name = submission.artist_name or settings.ANONYMOUS_NAME
            if name == settings.ANONYMOUS_NAME:
                continue
            entry = stats.setdefault(name, LeaderboardEntry(name=name))
            entry.total_votes += max(0, submission.votes)
            entry.entries += 1

        # sorted() is stable, so ties keep aggregation order
        board = sorted(stats.values(), key=lambda e: e.total_votes, reverse=True)
        for entry in board:
            entry.rank = rank(entry.total_votes)
        return board

    # ========================================================================
    # Viewer-specific views
    # ========================================================================

    def is_author(self, submission: SubmissionDocument, session: DeviceSession) -> bool:
        if submission.author_id == session.device_id:
            return True
        identity = session.identity
        return isinstance(identity, Named) and submission.artist_name == identity.username

    def my_submissions(self, session: DeviceSession) -> list[SubmissionDocument]:
        """
        The viewer's valid submissions, newest first.

        Named viewers own everything under their artist name, across devices;
        guests own what this device uploaded.
        """
        identity = session.identity
        if isinstance(identity, Named):
            mine = [s for s in self.valid_submissions if s.artist_name == identity.username]
        else:
            mine = [s for s in self.valid_submissions if s.author_id == session.device_id]
        return sorted(mine, key=_created_ts, reverse=True)

    def my_total_votes(self, session: DeviceSession) -> int:
        return sum(max(0, s.votes) for s in self.my_submissions(session))

    def my_rank(self, session: DeviceSession) -> Rank:
        return rank(self.my_total_votes(session))

    def is_revealed(self, submission: SubmissionDocument, session: DeviceSession) -> bool:
        """Artist and votes are public once the prompt closes; before that only to author and admin."""
        if self.is_prompt_closed(submission.prompt_id):
            return True
        return session.is_admin or self.is_author(submission, session)

    def present_submission(self, submission: SubmissionDocument, session: DeviceSession) -> SubmissionView:
        """Mask a submission for one viewer."""
        revealed = self.is_revealed(submission, session)
        closed = self.is_prompt_closed(submission.prompt_id)

        comments = [
            CommentView(
                id=c.id,
                text=c.text,
                author_name=c.author_name if closed else settings.ANONYMOUS_NAME,
                author_hidden=not closed,
                created_at=c.created_at,
            )
            for c in submission.comments
        ]

        return SubmissionView(
            id=submission.id,
            prompt_id=submission.prompt_id,
            title=submission.title,
            image_url=submission.image_url,
            artist_name=(submission.artist_name or settings.ANONYMOUS_NAME) if revealed else None,
            artist_hidden=not revealed,
            votes=max(0, submission.votes) if revealed else None,
            votes_hidden=not revealed,
            voted_by_viewer=submission.id in self.voted_for,
            comments=comments,
            created_at=submission.created_at,
        )

    def gallery(self, prompt_id: str, session: DeviceSession) -> list[SubmissionView]:
        """Masked valid submissions of one prompt, in store order."""
        return [
            self.present_submission(s, session)
            for s in self.valid_submissions
            if s.prompt_id == prompt_id
        ]
