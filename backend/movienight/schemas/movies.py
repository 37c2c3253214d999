"""
Movie request/response schemas.
"""
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class MovieSummary(BaseModel):
    """Title + poster, the shape embedded in cycles, meetings and votes."""

    id: UUID
    title: str
    poster: str | None = None

    model_config = ConfigDict(from_attributes=True)


class MovieCreator(BaseModel):
    id: UUID
    username: str

    model_config = ConfigDict(from_attributes=True)


class MovieResponse(MovieSummary):
    """A stored movie with its TMDB metadata."""

    tmdb_id: int
    trailer: str | None = None
    description: str = ""
    genres: list[str] = Field(default_factory=list)
    release_date: date | None = None
    runtime: int | None = None
    added_by: MovieCreator | None = None
    added_at: datetime


class AddMovieRequest(BaseModel):
    """Payload for POST /movies."""

    tmdb_id: int = Field(..., ge=1)


class TMDBSearchResult(BaseModel):
    id: int
    title: str
    overview: str | None = None
    poster: str | None = None
    release_date: str | None = None
    genre_ids: list[int] = Field(default_factory=list)


class MovieSearchResponse(BaseModel):
    """Response envelope for GET /movies/search."""

    results: list[TMDBSearchResult]
    total_results: int
    total_pages: int
    page: int


class TMDBMovieDetailsResponse(BaseModel):
    """A TMDB movie formatted the way it would be stored."""

    tmdb_id: int
    title: str
    poster: str
    trailer: str | None = None
    description: str = ""
    genres: list[str] = Field(default_factory=list)
    release_date: date | None = None
    runtime: int | None = None
