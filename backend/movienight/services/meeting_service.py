"""
Meeting business logic — scheduling, ratings, user suggestions, candidates
and yes/no candidate voting.
"""
import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from movienight.db.models import (
    GatheringRating,
    Meeting,
    MeetingRating,
    MeetingStatusEnum,
    MeetingSuggestion,
    MeetingVote,
    Movie,
    as_utc,
    meeting_candidates,
)
from movienight.schemas.meetings import (
    CreateMeetingRequest,
    MeetingVoteRequest,
    RateGatheringRequest,
    RateMovieRequest,
    UpdateMeetingRequest,
)
from movienight.services.movie_service import get_movies_by_ids, get_or_create_movie
from movienight.services.tmdb_client import TMDBService

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS_PER_USER = 2


# ── Custom exceptions ────────────────────────────────────────────────────────


class MeetingNotFoundError(Exception):
    """Raised when a meeting does not exist."""


class CandidateMovieNotFoundError(Exception):
    """Raised when the movie to add as a candidate does not exist."""


class AlreadyCandidateError(Exception):
    """Raised when a movie is already among the meeting's candidates."""


class NotACandidateError(Exception):
    """Raised when voting on a movie that is not a candidate."""


class MeetingClosedError(Exception):
    """Raised when voting on a meeting that already happened."""


class SuggestionLimitError(Exception):
    """Raised when a user already used all their suggestions for a meeting."""


class DuplicateMeetingVoteError(Exception):
    """Raised when a concurrent vote wins the unique index."""


# ── Loading ──────────────────────────────────────────────────────────────────


def _meeting_query(db: Session):
    return db.query(Meeting).options(
        joinedload(Meeting.host),
        selectinload(Meeting.movies),
        selectinload(Meeting.candidates),
        selectinload(Meeting.ratings).joinedload(MeetingRating.user),
        selectinload(Meeting.ratings).joinedload(MeetingRating.movie),
        selectinload(Meeting.gathering_ratings).joinedload(GatheringRating.user),
    )


def get_meeting_or_raise(db: Session, meeting_id: UUID) -> Meeting:
    meeting = _meeting_query(db).filter(Meeting.id == meeting_id).first()
    if meeting is None:
        raise MeetingNotFoundError("Meeting not found")
    return meeting


def list_meetings(db: Session) -> list[Meeting]:
    """All meetings, newest first, with everything the history page renders."""
    return _meeting_query(db).order_by(Meeting.watched_date.desc()).all()


# ── Scheduling ───────────────────────────────────────────────────────────────


def create_meeting(db: Session, payload: CreateMeetingRequest, host_id: UUID) -> Meeting:
    """Create a meeting hosted by the caller; status follows the date."""
    movies = get_movies_by_ids(db, payload.movie_ids)

    watched_date = as_utc(payload.watched_date)
    meeting = Meeting(
        watched_date=watched_date,
        host_id=host_id,
        location=payload.location,
        theme=payload.theme,
        status=Meeting.status_for(watched_date),
    )
    meeting.movies = movies
    db.add(meeting)
    db.commit()
    logger.info("Meeting %s scheduled for %s", meeting.id, meeting.watched_date)
    return get_meeting_or_raise(db, meeting.id)


def update_meeting(db: Session, meeting_id: UUID, payload: UpdateMeetingRequest) -> Meeting:
    """Apply the fields present in the body; a new date re-derives the status."""
    meeting = get_meeting_or_raise(db, meeting_id)
    fields = payload.model_fields_set

    if "movie_ids" in fields and payload.movie_ids is not None:
        meeting.movies = get_movies_by_ids(db, payload.movie_ids)
    if payload.watched_date is not None:
        meeting.watched_date = as_utc(payload.watched_date)
        meeting.status = Meeting.status_for(meeting.watched_date)
    if "location" in fields:
        meeting.location = payload.location
    if "theme" in fields:
        meeting.theme = payload.theme

    db.add(meeting)
    db.commit()
    return get_meeting_or_raise(db, meeting_id)


def delete_meeting(db: Session, meeting_id: UUID) -> None:
    meeting = get_meeting_or_raise(db, meeting_id)
    db.delete(meeting)
    db.commit()


# ── Ratings ──────────────────────────────────────────────────────────────────


def rate_movie(
    db: Session,
    meeting_id: UUID,
    user_id: UUID,
    payload: RateMovieRequest,
) -> Meeting:
    """
    Record the caller's rating of a meeting's movie.

    The caller keeps a single rating per movie (or a single movie-less
    rating); a second submission overwrites the first.
    """
    meeting = get_meeting_or_raise(db, meeting_id)

    existing = next(
        (
            r for r in meeting.ratings
            if r.user_id == user_id and r.movie_id == payload.movie_id
        ),
        None,
    )
    if existing is not None:
        existing.rating = payload.rating
        existing.comment = payload.comment
    else:
        meeting.ratings.append(
            MeetingRating(
                user_id=user_id,
                movie_id=payload.movie_id,
                rating=payload.rating,
                comment=payload.comment,
            )
        )

    db.commit()
    return get_meeting_or_raise(db, meeting_id)


def rate_gathering(
    db: Session,
    meeting_id: UUID,
    user_id: UUID,
    payload: RateGatheringRequest,
) -> Meeting:
    """Record (or overwrite) the caller's rating of the evening."""
    meeting = get_meeting_or_raise(db, meeting_id)

    existing = next((r for r in meeting.gathering_ratings if r.user_id == user_id), None)
    if existing is not None:
        existing.rating = payload.rating
        existing.comment = payload.comment or None
    else:
        meeting.gathering_ratings.append(
            GatheringRating(
                user_id=user_id,
                rating=payload.rating,
                comment=payload.comment or None,
            )
        )

    db.commit()
    return get_meeting_or_raise(db, meeting_id)


def get_reviews_for_movie(db: Session, movie_id: UUID) -> list[dict]:
    """Every rating of *movie_id* across meetings, newest meeting first."""
    rows = (
        db.query(MeetingRating, Meeting)
        .join(Meeting, MeetingRating.meeting_id == Meeting.id)
        .options(joinedload(MeetingRating.user))
        .filter(MeetingRating.movie_id == movie_id)
        .order_by(Meeting.watched_date.desc(), MeetingRating.created_at.asc())
        .all()
    )
    return [
        {
            "id": rating.id,
            "user": rating.user,
            "rating": rating.rating,
            "comment": rating.comment,
            "meeting": {
                "id": meeting.id,
                "watched_date": meeting.watched_date,
                "location": meeting.location,
            },
        }
        for rating, meeting in rows
    ]


# ── User suggestions ─────────────────────────────────────────────────────────


def _user_suggestions(meeting: Meeting, user_id: UUID) -> list[MeetingSuggestion]:
    return [s for s in meeting.suggestions if s.user_id == user_id]


def _is_candidate(db: Session, meeting_id: UUID, movie_id: UUID) -> bool:
    row = (
        db.query(meeting_candidates.c.id)
        .filter(
            meeting_candidates.c.meeting_id == meeting_id,
            meeting_candidates.c.movie_id == movie_id,
        )
        .first()
    )
    return row is not None


async def suggest_movie(
    db: Session,
    meeting_id: UUID,
    user_id: UUID,
    tmdb_id: int,
    tmdb: TMDBService | None = None,
) -> dict:
    """
    Propose a TMDB movie as a candidate.

    Each user may suggest MAX_SUGGESTIONS_PER_USER movies per meeting.
    """
    meeting = get_meeting_or_raise(db, meeting_id)
    used = len(_user_suggestions(meeting, user_id))
    if used >= MAX_SUGGESTIONS_PER_USER:
        raise SuggestionLimitError(
            f"You have already suggested {MAX_SUGGESTIONS_PER_USER} movies for this meeting"
        )

    movie, _ = await get_or_create_movie(db, tmdb_id, user_id, tmdb=tmdb)

    if _is_candidate(db, meeting.id, movie.id):
        raise AlreadyCandidateError("This movie is already a candidate")

    meeting.candidates.append(movie)
    meeting.suggestions.append(MeetingSuggestion(user_id=user_id, movie_id=movie.id))
    db.commit()

    return {
        "success": True,
        "movie": movie,
        "remaining_suggestions": MAX_SUGGESTIONS_PER_USER - used - 1,
    }


def get_my_suggestions(db: Session, meeting_id: UUID, user_id: UUID) -> dict:
    meeting = get_meeting_or_raise(db, meeting_id)
    mine = _user_suggestions(meeting, user_id)
    return {
        "count": len(mine),
        "remaining": max(0, MAX_SUGGESTIONS_PER_USER - len(mine)),
        "suggestions": mine,
    }


# ── Candidates ───────────────────────────────────────────────────────────────


def add_candidate(db: Session, meeting_id: UUID, movie_id: UUID) -> Meeting:
    meeting = get_meeting_or_raise(db, meeting_id)
    movie = db.query(Movie).filter(Movie.id == movie_id).first()
    if movie is None:
        raise CandidateMovieNotFoundError("Movie not found")
    if _is_candidate(db, meeting.id, movie.id):
        raise AlreadyCandidateError("Movie is already a candidate")

    meeting.candidates.append(movie)
    db.commit()
    return get_meeting_or_raise(db, meeting_id)


def add_candidates(db: Session, meeting_id: UUID, movie_ids: list[UUID]) -> int:
    """Append movies that are not candidates yet; returns how many were added."""
    meeting = get_meeting_or_raise(db, meeting_id)
    present = {m.id for m in meeting.candidates}
    new_ids = [mid for mid in dict.fromkeys(movie_ids) if mid not in present]
    if not new_ids:
        return 0
    meeting.candidates.extend(db.query(Movie).filter(Movie.id.in_(new_ids)).all())
    db.commit()
    return len(new_ids)


def remove_candidate(db: Session, meeting_id: UUID, movie_id: UUID) -> Meeting:
    """Drop a candidate along with every vote cast on it for this meeting."""
    meeting = get_meeting_or_raise(db, meeting_id)
    meeting.candidates = [m for m in meeting.candidates if m.id != movie_id]
    deleted = (
        db.query(MeetingVote)
        .filter(MeetingVote.meeting_id == meeting_id, MeetingVote.movie_id == movie_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info("Removed candidate %s from meeting %s with %d votes", movie_id, meeting_id, deleted)
    return get_meeting_or_raise(db, meeting_id)


def list_meeting_votes(db: Session, meeting_id: UUID) -> list[MeetingVote]:
    return (
        db.query(MeetingVote)
        .options(joinedload(MeetingVote.user), joinedload(MeetingVote.movie))
        .filter(MeetingVote.meeting_id == meeting_id)
        .order_by(MeetingVote.created_at.asc())
        .all()
    )


def get_candidates_with_votes(db: Session, meeting_id: UUID) -> dict:
    meeting = get_meeting_or_raise(db, meeting_id)
    return {
        "candidates": list(meeting.candidates),
        "votes": list_meeting_votes(db, meeting_id),
    }


# ── Candidate votes ──────────────────────────────────────────────────────────


def submit_meeting_vote(
    db: Session,
    meeting_id: UUID,
    user_id: UUID,
    payload: MeetingVoteRequest,
) -> MeetingVote:
    """
    Cast a yes/no vote on a candidate, replacing the caller's previous vote
    on the same candidate.
    """
    meeting = get_meeting_or_raise(db, meeting_id)

    if not _is_candidate(db, meeting.id, payload.movie_id):
        raise NotACandidateError("Movie is not a candidate for this meeting")

    now = datetime.now(timezone.utc)
    if meeting.status != MeetingStatusEnum.UPCOMING and meeting.watched_date <= now:
        raise MeetingClosedError("Cannot vote on past meetings")

    db.query(MeetingVote).filter(
        MeetingVote.user_id == user_id,
        MeetingVote.movie_id == payload.movie_id,
        MeetingVote.meeting_id == meeting_id,
    ).delete(synchronize_session=False)

    vote = MeetingVote(
        user_id=user_id,
        movie_id=payload.movie_id,
        meeting_id=meeting_id,
        vote_type=payload.vote_type,
        reason=payload.reason or None,
    )
    db.add(vote)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateMeetingVoteError("You have already voted for this movie") from exc

    return (
        db.query(MeetingVote)
        .options(joinedload(MeetingVote.user), joinedload(MeetingVote.movie))
        .filter(MeetingVote.id == vote.id)
        .one()
    )


def get_my_meeting_votes(db: Session, meeting_id: UUID, user_id: UUID) -> list[MeetingVote]:
    return (
        db.query(MeetingVote)
        .options(joinedload(MeetingVote.user), joinedload(MeetingVote.movie))
        .filter(MeetingVote.meeting_id == meeting_id, MeetingVote.user_id == user_id)
        .order_by(MeetingVote.created_at.asc())
        .all()
    )
