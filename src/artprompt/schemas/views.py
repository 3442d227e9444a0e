"""
Derived view and operation result schemas.

These are what the UI layer consumes; store documents never leave the core
unmasked.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Rank(str, Enum):
    """Artist tier by total votes received, lowest first."""

    SPACE_CADET = "Space Cadet"
    MOON_WALKER = "Moon Walker"
    NEBULA_ARTISAN = "Nebula Artisan"
    GALACTIC_MASTER = "Galactic Master"
    UNIVERSE_CREATOR = "Universe Creator"

    @property
    def level(self) -> int:
        return list(Rank).index(self)


class LeaderboardEntry(BaseModel):
    """Aggregated votes for one display name across valid submissions."""

    name: str
    total_votes: int = 0
    entries: int = 0
    rank: Rank = Rank.SPACE_CADET


class CommentView(BaseModel):
    id: str
    text: str
    author_name: str
    author_hidden: bool = False
    created_at: Optional[datetime] = None


class SubmissionView(BaseModel):
    """
    A submission as shown to one viewer.

    While the prompt is open, ``votes`` and ``artist_name`` are None and the
    matching ``*_hidden`` flag is set, unless the viewer is the author or admin.
    """

    id: str
    prompt_id: str
    title: str
    image_url: str
    artist_name: Optional[str] = None
    artist_hidden: bool = False
    votes: Optional[int] = None
    votes_hidden: bool = False
    voted_by_viewer: bool = False
    comments: list[CommentView] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class VoteDelta(BaseModel):
    """Result of a vote toggle: +1 for a cast, -1 for a retraction."""

    artwork_id: str
    delta: int
    voted_for: list[str] = Field(default_factory=list)


class ClaimOutcome(BaseModel):
    """Result of a successful username claim."""

    username: str
    key: str
    created: bool
    voted_for: list[str] = Field(default_factory=list)
