"""
Meeting (movie history) schemas: scheduling, ratings, candidates, votes
and AI suggestions.
"""
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from movienight.db.models import (
    MAX_VOTE_REASON_LENGTH,
    MIN_RATING_COMMENT_LENGTH,
    MeetingStatusEnum,
    MeetingVoteTypeEnum,
)
from movienight.schemas.auth import UserSummary
from movienight.schemas.movies import MovieSummary


# ── Requests ──────────────────────────────────────────────────────────────────

class CreateMeetingRequest(BaseModel):
    """Payload for POST /movie-history. Movies are optional."""

    watched_date: datetime
    movie_ids: list[UUID] = Field(default_factory=list)
    location: str | None = None
    theme: str | None = None


class UpdateMeetingRequest(BaseModel):
    watched_date: datetime | None = None
    movie_ids: list[UUID] | None = None
    location: str | None = None
    theme: str | None = None


class RateMovieRequest(BaseModel):
    """A movie rating; the comment has to say something substantial."""

    rating: int
    comment: str
    movie_id: UUID | None = None

    @field_validator("rating")
    @classmethod
    def validate_rating(cls, v: int) -> int:
        if v < 1 or v > 5:
            raise ValueError("Rating must be between 1 and 5")
        return v

    @field_validator("comment")
    @classmethod
    def validate_comment(cls, v: str) -> str:
        if len(v) < MIN_RATING_COMMENT_LENGTH:
            raise ValueError(f"Comment must be at least {MIN_RATING_COMMENT_LENGTH} characters")
        return v


class RateGatheringRequest(BaseModel):
    rating: int
    comment: str | None = None

    @field_validator("rating")
    @classmethod
    def validate_rating(cls, v: int) -> int:
        if v < 1 or v > 5:
            raise ValueError("Rating must be between 1 and 5")
        return v


class SuggestMovieRequest(BaseModel):
    tmdb_id: int = Field(..., ge=1)


class AddCandidateRequest(BaseModel):
    movie_id: UUID


class MeetingVoteRequest(BaseModel):
    movie_id: UUID
    vote_type: MeetingVoteTypeEnum
    reason: str | None = Field(default=None, max_length=MAX_VOTE_REASON_LENGTH)


# ── Responses ─────────────────────────────────────────────────────────────────

class RatingResponse(BaseModel):
    id: UUID
    user: UserSummary
    movie: MovieSummary | None = None
    rating: int
    comment: str

    model_config = ConfigDict(from_attributes=True)


class GatheringRatingResponse(BaseModel):
    id: UUID
    user: UserSummary
    rating: int
    comment: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SuggestionResponse(BaseModel):
    id: UUID
    user_id: UUID
    movie_id: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MeetingResponse(BaseModel):
    id: UUID
    watched_date: datetime
    host: UserSummary | None = None
    location: str | None = None
    theme: str | None = None
    status: MeetingStatusEnum
    movies: list[MovieSummary]
    candidates: list[MovieSummary]
    ratings: list[RatingResponse]
    gathering_ratings: list[GatheringRatingResponse]
    average_rating: float
    average_gathering_rating: float

    model_config = ConfigDict(from_attributes=True)


class MovieReviewMeeting(BaseModel):
    id: UUID
    watched_date: datetime
    location: str | None = None


class MovieReviewEntry(BaseModel):
    id: UUID
    user: UserSummary
    rating: int
    comment: str
    meeting: MovieReviewMeeting


class MovieReviewsResponse(BaseModel):
    reviews: list[MovieReviewEntry]


class SuggestMovieResponse(BaseModel):
    success: bool = True
    movie: MovieSummary
    remaining_suggestions: int


class MySuggestionsResponse(BaseModel):
    count: int
    remaining: int
    suggestions: list[SuggestionResponse]


class CandidateMovie(MovieSummary):
    description: str = ""
    genres: list[str] = Field(default_factory=list)
    release_date: date | None = None
    runtime: int | None = None
    trailer: str | None = None


class MeetingVoteResponse(BaseModel):
    id: UUID
    user: UserSummary
    movie: MovieSummary
    meeting_id: UUID
    vote_type: MeetingVoteTypeEnum
    reason: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CandidatesResponse(BaseModel):
    candidates: list[CandidateMovie]
    votes: list[MeetingVoteResponse]


class AISuggestion(BaseModel):
    movie_id: UUID
    tmdb_id: int
    title: str
    poster: str | None = None
    description: str = ""
    genres: list[str] = Field(default_factory=list)
    release_date: str | None = None
    reason: str


class AISuggestionsResponse(BaseModel):
    suggestions: list[AISuggestion]


class AIRecommendation(BaseModel):
    movie_id: UUID
    title: str
    poster: str | None = None
    description: str = ""
    reason: str


class AIRecommendationResponse(BaseModel):
    recommendation: AIRecommendation
