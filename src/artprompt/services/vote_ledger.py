"""
Vote ledger service.

Toggles an identity's vote on an artwork with per-prompt cap enforcement.

Consistency model:
- The identity's ``voted_for`` set and the submission's ``votes`` counter are
  two separate writes. The set is changed first, then the counter is moved
  with an atomic increment, and only if the set really changed.
- No transaction spans both records. A crash (or I/O error) between the two
  writes leaves the counter one off from the number of voters until the
  identity toggles again; concurrent devices converge eventually but are
  not linearized.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Optional

import structlog

from artprompt.core.config import settings
from artprompt.core.errors import PromptClosed, VoteCapExceeded
from artprompt.models.documents import as_utc, utc_now
from artprompt.models.identity import DeviceSession, VoteSource
from artprompt.repositories.provider import (
    SubmissionRepositoryProtocol,
    VoteSourceRepositoryProtocol,
)
from artprompt.schemas.views import VoteDelta
from artprompt.services.derived_views import DerivedViewEngine

logger = structlog.get_logger(__name__)


class VoteLedger:
    """Cast and retract votes against whichever VoteSource the caller owns."""

    def __init__(
        self,
        votes: VoteSourceRepositoryProtocol,
        submissions: SubmissionRepositoryProtocol,
    ):
        self.votes = votes
        self.submissions = submissions

    async def toggle_vote(
        self,
        source: VoteSource,
        artwork_id: str,
        max_votes: int,
        prompt_submission_ids: Iterable[str],
        deadline: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> VoteDelta:
        """
        Retract the vote if present, otherwise cast it.

        Args:
            source: The active identity's vote source
            artwork_id: Target submission
            max_votes: Cap of the artwork's prompt
            prompt_submission_ids: Valid submission IDs of that prompt
            deadline: Prompt deadline; voting after it is refused outright

        Raises:
            PromptClosed: deadline has passed (nothing written)
            VoteCapExceeded: cast would exceed ``max_votes`` (nothing written)

        Returns:
            VoteDelta with -1 / +1, or 0 when a concurrent toggle from another
            device already produced the same state or the write was skipped.
            ``voted_for`` is always the set as stored after the toggle.
        """
        if deadline is not None and (now or utc_now()) > as_utc(deadline):
            raise PromptClosed("Voting ended!")

        voted_for = await self.votes.get_voted_for(source)

        if artwork_id in voted_for:
            changed = await self.votes.remove_vote(source, artwork_id)
            if changed:
                await self.submissions.adjust_votes(artwork_id, -1)
                remaining = [v for v in voted_for if v != artwork_id]
            else:
                remaining = await self.votes.get_voted_for(source)
            logger.info("vote_retracted", artwork_id=artwork_id, applied=changed)
            return VoteDelta(artwork_id=artwork_id, delta=-1 if changed else 0, voted_for=remaining)

        ids = set(prompt_submission_ids)
        used = sum(1 for v in set(voted_for) if v in ids)
        if used >= max_votes:
            logger.info("vote_cap_exceeded", artwork_id=artwork_id, used=used, max_votes=max_votes)
            raise VoteCapExceeded(max_votes)

        changed = await self.votes.add_vote(source, artwork_id)
        if changed:
            await self.submissions.adjust_votes(artwork_id, 1)
            voted_for = [*voted_for, artwork_id]
        else:
            # Skipped write: report what is stored, not what was asked for
            voted_for = await self.votes.get_voted_for(source)
        logger.info("vote_cast", artwork_id=artwork_id, used=used + 1, max_votes=max_votes, applied=changed)
        return VoteDelta(artwork_id=artwork_id, delta=1 if changed else 0, voted_for=voted_for)

    async def vote(
        self,
        session: DeviceSession,
        artwork_id: str,
        views: DerivedViewEngine,
    ) -> VoteDelta:
        """
        Toggle a vote using the cap, deadline, sibling IDs and clock of a snapshot.

        Unknown artworks and orphans fall back to the default cap with no
        deadline, matching what the snapshot can tell about them.
        """
        submission = next((s for s in views.submissions if s.id == artwork_id), None)
        prompt = views.prompt_for(submission) if submission else None

        if prompt is None:
            return await self.toggle_vote(
                session.vote_source,
                artwork_id,
                max_votes=settings.DEFAULT_MAX_VOTES,
                prompt_submission_ids=(),
            )

        return await self.toggle_vote(
            session.vote_source,
            artwork_id,
            max_votes=prompt.max_votes,
            prompt_submission_ids=views.prompt_submission_ids(prompt.id),
            deadline=prompt.deadline,
            now=views.now,
        )
