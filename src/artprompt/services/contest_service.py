"""
Contest service.

Prompt and submission lifecycle around the vote core: creating and editing
prompts, uploading artwork, deleting records, and posting comments. Every
operation takes the caller's DeviceSession explicitly.
"""

from datetime import datetime
from typing import Optional

import structlog

from artprompt.core.config import settings
from artprompt.core.errors import (
    ConfirmationMismatch,
    InvalidInput,
    NotAuthorized,
    PromptClosed,
    PromptNotFound,
    PromptPasswordMismatch,
    SubmissionNotFound,
)
from artprompt.models.documents import (
    CommentDocument,
    PromptDocument,
    SubmissionDocument,
    coerce_max_votes,
    utc_now,
)
from artprompt.models.identity import DeviceSession
from artprompt.repositories.provider import Repositories

logger = structlog.get_logger(__name__)


class ContestService:
    """Prompt, submission and comment operations."""

    def __init__(self, repos: Repositories):
        self.prompts = repos.prompts
        self.submissions = repos.submissions

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _get_prompt(self, prompt_id: str) -> PromptDocument:
        prompt = await self.prompts.get_by_id(prompt_id)
        if prompt is None:
            raise PromptNotFound(f"Prompt {prompt_id} not found")
        return prompt

    async def _get_submission(self, submission_id: str) -> SubmissionDocument:
        submission = await self.submissions.get_by_id(submission_id)
        if submission is None:
            raise SubmissionNotFound(f"Submission {submission_id} not found")
        return submission

    @staticmethod
    def _check_confirmation(confirmation: str) -> None:
        if confirmation.strip() != settings.DELETE_CONFIRMATION_PHRASE:
            raise ConfirmationMismatch(f"Type '{settings.DELETE_CONFIRMATION_PHRASE}' to confirm.")

    @staticmethod
    def can_manage_prompt(prompt: PromptDocument, session: DeviceSession) -> bool:
        return session.is_admin or prompt.author_id == session.device_id

    @staticmethod
    def can_manage_submission(submission: SubmissionDocument, session: DeviceSession) -> bool:
        if session.is_admin or submission.author_id == session.device_id:
            return True
        return session.is_named and submission.artist_name == session.username

    # ========================================================================
    # Prompts
    # ========================================================================

    async def create_prompt(
        self,
        session: DeviceSession,
        title: str,
        image_url: str,
        password: str,
        deadline: Optional[datetime],
        max_votes: Optional[int] = None,
    ) -> PromptDocument:
        """
        Create a prompt owned by this device.

        Raises:
            InvalidInput: title, image or deadline missing
        """
        title = title.strip()
        if not title:
            raise InvalidInput("Please enter a title.")
        if not image_url:
            raise InvalidInput("Please select an image.")
        if deadline is None:
            raise InvalidInput("Please set a deadline.")

        prompt = PromptDocument(
            title=title,
            image_url=image_url,
            password=password,
            deadline=deadline,
            max_votes=max_votes,
            creator_name=session.username or "",
            author_id=session.device_id,
            created_at=utc_now(),
        )
        await self.prompts.create(prompt)
        logger.info("prompt_created", prompt_id=prompt.id, max_votes=prompt.max_votes)
        return prompt

    async def update_prompt(
        self,
        session: DeviceSession,
        prompt_id: str,
        deadline: Optional[datetime],
        max_votes: Optional[int],
    ) -> PromptDocument:
        """Change deadline and vote cap. Author or admin only; the deadline is required."""
        prompt = await self._get_prompt(prompt_id)
        if not self.can_manage_prompt(prompt, session):
            raise NotAuthorized("Only the prompt author can edit it.")
        if deadline is None:
            raise InvalidInput("Please set a deadline.")

        cap = coerce_max_votes(max_votes)

        updated = await self.prompts.update_settings(prompt_id, deadline, cap)
        if updated is None:
            raise PromptNotFound(f"Prompt {prompt_id} not found")
        logger.info("prompt_updated", prompt_id=prompt_id, max_votes=cap)
        return updated

    async def delete_prompt(self, session: DeviceSession, prompt_id: str, confirmation: str) -> None:
        """Delete a prompt. Its submissions stay in storage as orphans."""
        prompt = await self._get_prompt(prompt_id)
        if not self.can_manage_prompt(prompt, session):
            raise NotAuthorized("Only the prompt author can delete it.")
        self._check_confirmation(confirmation)

        await self.prompts.delete(prompt_id)
        logger.info("prompt_deleted", prompt_id=prompt_id)

    # ========================================================================
    # Submissions
    # ========================================================================

    async def submit_artwork(
        self,
        session: DeviceSession,
        prompt_id: str,
        title: str,
        image_url: str,
        password_attempt: str,
    ) -> SubmissionDocument:
        """
        Upload artwork to an open prompt.

        Raises:
            PromptNotFound: prompt does not exist
            PromptClosed: deadline has passed
            PromptPasswordMismatch: wrong prompt password
            InvalidInput: no image
        """
        prompt = await self._get_prompt(prompt_id)
        if prompt.is_closed():
            raise PromptClosed("Submissions closed!")
        if password_attempt != prompt.password:
            raise PromptPasswordMismatch("Incorrect password!")
        if not image_url:
            raise InvalidInput("Please select an image.")

        submission = SubmissionDocument(
            prompt_id=prompt_id,
            title=title.strip(),
            image_url=image_url,
            artist_name=session.username or settings.ANONYMOUS_NAME,
            votes=0,
            comments=[],
            author_id=session.device_id,
            created_at=utc_now(),
        )
        await self.submissions.create(submission)
        logger.info("artwork_submitted", prompt_id=prompt_id, submission_id=submission.id)
        return submission

    async def delete_submission(self, session: DeviceSession, submission_id: str, confirmation: str) -> None:
        """Delete a submission of a still-open prompt. Author or admin only."""
        submission = await self._get_submission(submission_id)

        prompt = await self.prompts.get_by_id(submission.prompt_id)
        if prompt is not None and prompt.is_closed():
            raise PromptClosed("Archived submissions cannot be deleted.")
        if not self.can_manage_submission(submission, session):
            raise NotAuthorized("Only the artist can delete this submission.")
        self._check_confirmation(confirmation)

        await self.submissions.delete(submission_id)
        logger.info("submission_deleted", submission_id=submission_id)

    async def post_comment(self, session: DeviceSession, submission_id: str, text: str) -> CommentDocument:
        text = text.strip()
        if not text:
            raise InvalidInput("Comment cannot be empty.")

        comment = CommentDocument(
            text=text,
            author_id=session.device_id,
            author_name=session.username or settings.UNKNOWN_AUTHOR_NAME,
        )
        if not await self.submissions.add_comment(submission_id, comment):
            raise SubmissionNotFound(f"Submission {submission_id} not found")

        logger.info("comment_posted", submission_id=submission_id, comment_id=comment.id)
        return comment
