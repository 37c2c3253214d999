"""
Movie business logic — TMDB passthrough and the local movie catalogue.
"""
import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from movienight.db.models import Movie
from movienight.services.tmdb_client import (
    TMDBService,
    format_movie_for_db,
    format_search_result,
)

logger = logging.getLogger(__name__)


class MovieNotFoundError(Exception):
    """Raised when a movie does not exist."""


class EmptySearchQueryError(Exception):
    """Raised when a search is attempted with a blank query."""


async def search_tmdb(query: str, page: int = 1, tmdb: TMDBService | None = None) -> dict:
    """Search TMDB and shape the results for the client."""
    if not query or not query.strip():
        raise EmptySearchQueryError("Search query required")
    tmdb = tmdb or TMDBService()
    payload = await tmdb.search_movies(query, page)
    return {
        "results": [
            format_search_result(raw)
            for raw in payload.get("results", [])
            if raw.get("id") and raw.get("title")
        ],
        "total_results": payload.get("total_results", 0),
        "total_pages": payload.get("total_pages", 0),
        "page": page,
    }


async def get_tmdb_details(tmdb_id: int, tmdb: TMDBService | None = None) -> dict:
    tmdb = tmdb or TMDBService()
    details = await tmdb.get_movie_details(tmdb_id)
    return format_movie_for_db(details)


def get_movie_by_tmdb_id(db: Session, tmdb_id: int) -> Movie | None:
    return db.query(Movie).filter(Movie.tmdb_id == tmdb_id).first()


def create_movie_from_details(
    db: Session,
    details: dict,
    added_by_user_id: UUID | None,
) -> Movie:
    """
    Insert a movie from a TMDB details payload.

    A concurrent insert of the same tmdb_id loses the race on the unique
    index; the winner's row is returned instead.
    """
    values = format_movie_for_db(details)
    movie = Movie(**values, added_by_user_id=added_by_user_id)
    db.add(movie)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_movie_by_tmdb_id(db, values["tmdb_id"])
        if existing is None:
            raise
        return existing
    db.refresh(movie)
    return movie


async def get_or_create_movie(
    db: Session,
    tmdb_id: int,
    added_by_user_id: UUID | None,
    tmdb: TMDBService | None = None,
) -> tuple[Movie, bool]:
    """
    Return (movie, created). Fetches TMDB details only when the movie is new.
    """
    existing = get_movie_by_tmdb_id(db, tmdb_id)
    if existing is not None:
        return existing, False

    tmdb = tmdb or TMDBService()
    details = await tmdb.get_movie_details(tmdb_id)
    # Another request may have added it while TMDB was answering
    existing = get_movie_by_tmdb_id(db, int(details["id"]))
    if existing is not None:
        return existing, False
    movie = create_movie_from_details(db, details, added_by_user_id)
    logger.info("Added movie %s (tmdb %s)", movie.title, movie.tmdb_id)
    return movie, True


def list_movies(db: Session) -> list[Movie]:
    return (
        db.query(Movie)
        .options(joinedload(Movie.added_by))
        .order_by(Movie.added_at.desc())
        .all()
    )


def get_movie(db: Session, movie_id: UUID) -> Movie:
    movie = (
        db.query(Movie)
        .options(joinedload(Movie.added_by))
        .filter(Movie.id == movie_id)
        .first()
    )
    if movie is None:
        raise MovieNotFoundError("Movie not found")
    return movie


def get_movies_by_ids(db: Session, movie_ids: list[UUID]) -> list[Movie]:
    """
    Load movies in the order given; raises MovieNotFoundError when any id is unknown.
    """
    if not movie_ids:
        return []
    unique_ids = list(dict.fromkeys(movie_ids))
    rows = {m.id: m for m in db.query(Movie).filter(Movie.id.in_(unique_ids)).all()}
    if len(rows) != len(unique_ids):
        raise MovieNotFoundError("One or more movies not found")
    return [rows[mid] for mid in unique_ids]
