"""
Voting cycle and cycle vote schemas.
"""
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from movienight.db.models import VoteTypeEnum
from movienight.schemas.movies import MovieCreator, MovieSummary


class CreateCycleRequest(BaseModel):
    """Payload for POST /cycles."""

    start_date: datetime
    end_date: datetime
    movie_ids: list[UUID] = Field(..., min_length=1)
    meeting_time: datetime | None = None
    location: str | None = None


class UpdateCycleRequest(BaseModel):
    """Partial update; only fields present in the body are applied."""

    is_active: bool | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    movie_ids: list[UUID] | None = None
    meeting_time: datetime | None = None
    location: str | None = None


class CycleResponse(BaseModel):
    id: UUID
    is_active: bool
    start_date: datetime
    end_date: datetime
    meeting_time: datetime | None = None
    location: str | None = None
    movies: list[MovieSummary]
    created_by: MovieCreator | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CycleMovieWithVotes(MovieSummary):
    description: str = ""
    trailer: str | None = None
    genres: list[str] = Field(default_factory=list)
    release_date: date | None = None
    runtime: int | None = None
    like_count: int = 0


class ActiveCycleResponse(CycleResponse):
    movies: list[CycleMovieWithVotes]


class VoteCount(BaseModel):
    movie_id: UUID
    count: int


class CloseCycleResponse(BaseModel):
    winner: UUID
    vote_counts: list[VoteCount]
    message: str


class SubmitVoteRequest(BaseModel):
    """Payload for POST /votes."""

    movie_id: UUID
    cycle_id: UUID
    vote_type: VoteTypeEnum
    review: str | None = None


class VoteResponse(BaseModel):
    id: UUID
    user_id: UUID
    movie_id: UUID
    cycle_id: UUID
    vote_type: VoteTypeEnum
    review: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
