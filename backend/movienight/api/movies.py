"""
Movies API — /api/movies
────────────────────────
Endpoints:
  GET  /movies/search?q=&page=   — TMDB search passthrough
  GET  /movies/tmdb/{tmdb_id}    — TMDB details, formatted like a stored movie
  POST /movies                   — Create-or-fetch a movie by tmdb_id
  GET  /movies                   — All stored movies, newest first
  GET  /movies/{movie_id}        — One stored movie

TMDB failures propagate and are rendered by the app-level handlers.
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from movienight.db.models import User
from movienight.db.session import get_db
from movienight.deps.auth import get_current_user
from movienight.schemas.movies import (
    AddMovieRequest,
    MovieResponse,
    MovieSearchResponse,
    TMDBMovieDetailsResponse,
)
from movienight.services.movie_service import (
    EmptySearchQueryError,
    MovieNotFoundError,
    get_movie,
    get_or_create_movie,
    get_tmdb_details,
    list_movies,
    search_tmdb,
)

router = APIRouter()


@router.get("/search", response_model=MovieSearchResponse)
async def search_movies(
    q: str = Query("", description="Search query"),
    page: int = Query(1, ge=1),
    current_user: User = Depends(get_current_user),
) -> MovieSearchResponse:
    try:
        results = await search_tmdb(q, page)
    except EmptySearchQueryError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return MovieSearchResponse.model_validate(results)


@router.get("/tmdb/{tmdb_id}", response_model=TMDBMovieDetailsResponse)
async def tmdb_details(
    tmdb_id: int,
    current_user: User = Depends(get_current_user),
) -> TMDBMovieDetailsResponse:
    return TMDBMovieDetailsResponse.model_validate(await get_tmdb_details(tmdb_id))


@router.post("", response_model=MovieResponse, status_code=status.HTTP_201_CREATED)
async def add_movie(
    payload: AddMovieRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MovieResponse:
    """
    Add a TMDB movie to the catalogue.

    Returns 201 when the movie was created, 200 when it already existed.
    """
    movie, created = await get_or_create_movie(db, payload.tmdb_id, current_user.id)
    if not created:
        response.status_code = status.HTTP_200_OK
    return MovieResponse.model_validate(get_movie(db, movie.id))


@router.get("", response_model=list[MovieResponse])
def get_movies(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MovieResponse]:
    return [MovieResponse.model_validate(m) for m in list_movies(db)]


@router.get("/{movie_id}", response_model=MovieResponse)
def get_movie_endpoint(
    movie_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MovieResponse:
    try:
        movie = get_movie(db, movie_id)
    except MovieNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return MovieResponse.model_validate(movie)
