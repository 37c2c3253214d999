"""
Cycle vote business logic — one like/dislike per user per movie per cycle.
"""
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from movienight.db.models import Cycle, Vote, as_utc, cycle_movies
from movienight.schemas.cycles import SubmitVoteRequest
from movienight.services.cycle_service import CycleNotFoundError


class CycleNotActiveError(Exception):
    """Raised when voting in an inactive cycle."""


class VotingClosedError(Exception):
    """Raised outside the cycle's [start_date, end_date] window."""


class MovieNotInCycleError(Exception):
    """Raised when voting on a movie the cycle does not contain."""


class DuplicateVoteError(Exception):
    """Raised when a concurrent vote wins the unique index."""


def submit_vote(
    db: Session,
    user_id: UUID,
    payload: SubmitVoteRequest,
    now: datetime | None = None,
) -> Vote:
    """Cast a vote, replacing the caller's previous vote on the same movie."""
    cycle = db.query(Cycle).filter(Cycle.id == payload.cycle_id).first()
    if cycle is None:
        raise CycleNotFoundError("Cycle not found")
    if not cycle.is_active:
        raise CycleNotActiveError("Cycle is not active")

    now = as_utc(now) or datetime.now(timezone.utc)
    if now < as_utc(cycle.start_date) or now > as_utc(cycle.end_date):
        raise VotingClosedError("Voting period has not started or has ended")

    in_cycle = (
        db.query(cycle_movies.c.id)
        .filter(
            cycle_movies.c.cycle_id == cycle.id,
            cycle_movies.c.movie_id == payload.movie_id,
        )
        .first()
    )
    if in_cycle is None:
        raise MovieNotInCycleError("Movie is not in this cycle")

    db.query(Vote).filter(
        Vote.user_id == user_id,
        Vote.movie_id == payload.movie_id,
        Vote.cycle_id == cycle.id,
    ).delete(synchronize_session=False)

    vote = Vote(
        user_id=user_id,
        movie_id=payload.movie_id,
        cycle_id=cycle.id,
        vote_type=payload.vote_type,
        review=payload.review or None,
    )
    db.add(vote)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateVoteError("You have already voted for this movie") from exc
    db.refresh(vote)
    return vote


def get_user_votes_for_cycle(db: Session, user_id: UUID, cycle_id: UUID) -> list[Vote]:
    return (
        db.query(Vote)
        .filter(Vote.user_id == user_id, Vote.cycle_id == cycle_id)
        .order_by(Vote.created_at.asc())
        .all()
    )
