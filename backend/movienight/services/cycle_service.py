"""
Voting cycle business logic.

At most one cycle is active at a time: creating a cycle or activating one
deactivates every other cycle in the same transaction.
"""
import logging
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload, selectinload

from movienight.db.models import Cycle, Vote, VoteTypeEnum, as_utc
from movienight.schemas.cycles import CreateCycleRequest, UpdateCycleRequest
from movienight.services.movie_service import get_movies_by_ids

logger = logging.getLogger(__name__)


class CycleNotFoundError(Exception):
    """Raised when a cycle does not exist."""


class NoVotesInCycleError(Exception):
    """Raised when closing a cycle nobody liked anything in."""


def _cycle_query(db: Session):
    return db.query(Cycle).options(
        selectinload(Cycle.movies),
        joinedload(Cycle.created_by),
    )


def get_cycle_or_raise(db: Session, cycle_id: UUID) -> Cycle:
    cycle = _cycle_query(db).filter(Cycle.id == cycle_id).first()
    if cycle is None:
        raise CycleNotFoundError("Cycle not found")
    return cycle


def list_cycles(db: Session) -> list[Cycle]:
    return _cycle_query(db).order_by(Cycle.created_at.desc()).all()


def _like_counts(db: Session, cycle_id: UUID) -> dict[UUID, int]:
    rows = (
        db.query(Vote.movie_id, func.count(Vote.id))
        .filter(Vote.cycle_id == cycle_id, Vote.vote_type == VoteTypeEnum.LIKE)
        .group_by(Vote.movie_id)
        .all()
    )
    return {movie_id: count for movie_id, count in rows}


def get_active_cycle(db: Session) -> dict | None:
    """The active cycle with a like_count on each of its movies, or None."""
    cycle = _cycle_query(db).filter(Cycle.is_active.is_(True)).first()
    if cycle is None:
        return None

    counts = _like_counts(db, cycle.id)
    return {
        "id": cycle.id,
        "is_active": cycle.is_active,
        "start_date": cycle.start_date,
        "end_date": cycle.end_date,
        "meeting_time": cycle.meeting_time,
        "location": cycle.location,
        "created_by": cycle.created_by,
        "created_at": cycle.created_at,
        "movies": [
            {
                "id": movie.id,
                "title": movie.title,
                "poster": movie.poster,
                "description": movie.description or "",
                "trailer": movie.trailer,
                "genres": movie.genres or [],
                "release_date": movie.release_date,
                "runtime": movie.runtime,
                "like_count": counts.get(movie.id, 0),
            }
            for movie in cycle.movies
        ],
    }


def _deactivate_others(db: Session, keep_id: UUID | None = None) -> None:
    query = db.query(Cycle).filter(Cycle.is_active.is_(True))
    if keep_id is not None:
        query = query.filter(Cycle.id != keep_id)
    query.update({Cycle.is_active: False}, synchronize_session="fetch")


def create_cycle(db: Session, payload: CreateCycleRequest, created_by: UUID) -> Cycle:
    """Create the new active cycle; every other cycle is deactivated."""
    movies = get_movies_by_ids(db, payload.movie_ids)

    _deactivate_others(db)
    cycle = Cycle(
        start_date=as_utc(payload.start_date),
        end_date=as_utc(payload.end_date),
        meeting_time=as_utc(payload.meeting_time),
        location=payload.location,
        created_by_user_id=created_by,
        is_active=True,
    )
    cycle.movies = movies
    db.add(cycle)
    db.commit()
    logger.info("Cycle %s created with %d movies", cycle.id, len(movies))
    return get_cycle_or_raise(db, cycle.id)


def update_cycle(db: Session, cycle_id: UUID, payload: UpdateCycleRequest) -> Cycle:
    cycle = get_cycle_or_raise(db, cycle_id)
    fields = payload.model_fields_set

    if payload.is_active is not None:
        if payload.is_active:
            _deactivate_others(db, keep_id=cycle.id)
        cycle.is_active = payload.is_active
    if payload.start_date is not None:
        cycle.start_date = as_utc(payload.start_date)
    if payload.end_date is not None:
        cycle.end_date = as_utc(payload.end_date)
    if payload.movie_ids:
        cycle.movies = get_movies_by_ids(db, payload.movie_ids)
    if "meeting_time" in fields:
        cycle.meeting_time = as_utc(payload.meeting_time)
    if "location" in fields:
        cycle.location = payload.location

    db.add(cycle)
    db.commit()
    return get_cycle_or_raise(db, cycle_id)


def close_cycle(db: Session, cycle_id: UUID) -> dict:
    """
    Tally likes and deactivate the cycle.

    The winner is the most-liked movie; ties go to the movie listed first
    in the cycle.
    """
    cycle = get_cycle_or_raise(db, cycle_id)
    counts = _like_counts(db, cycle.id)
    if not counts:
        raise NoVotesInCycleError("No votes found for this cycle")

    position = {movie.id: i for i, movie in enumerate(cycle.movies)}
    ranked = sorted(
        counts.items(),
        key=lambda item: (-item[1], position.get(item[0], len(position))),
    )

    cycle.is_active = False
    db.add(cycle)
    db.commit()
    logger.info("Cycle %s closed, winner %s", cycle.id, ranked[0][0])

    return {
        "winner": ranked[0][0],
        "vote_counts": [{"movie_id": movie_id, "count": count} for movie_id, count in ranked],
        "message": "Cycle closed successfully",
    }
