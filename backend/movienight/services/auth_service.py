"""
Auth business logic — pattern setup, pattern login, token issuance and
profile edits.

All DB writes go through this layer (not directly in routes).
"""
import asyncio
import logging
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from movienight.core.security import (
    create_access_token,
    hash_pattern,
    validate_pattern,
    verify_pattern,
)
from movienight.db.models import Meeting, MeetingRating, MeetingStatusEnum, User
from movienight.schemas.auth import PreferencesPatch, SetPatternRequest
from movienight.services.tmdb_client import (
    TMDBConfigError,
    TMDBService,
    TMDBUpstreamError,
    format_movie_for_db,
)

logger = logging.getLogger(__name__)

MAX_FAVORITES_SHOWN = 5


# ── Custom exceptions ────────────────────────────────────────────────────────


class UserNotFoundError(Exception):
    """Raised when no user matches the given username or id."""


class InvalidPatternError(Exception):
    """Raised when a pattern is malformed or the confirmation does not match."""


class PatternAlreadySetError(Exception):
    """Raised when set-pattern is called for a user who already has one."""


class PatternNotSetError(Exception):
    """Raised when login is attempted before the user drew a pattern."""


class InvalidCredentialsError(Exception):
    """Raised when the pattern does not match the stored hash."""


# ── Lookups ──────────────────────────────────────────────────────────────────


def find_user_by_username(db: Session, username: str) -> User | None:
    """Case-insensitive username lookup."""
    return (
        db.query(User)
        .filter(func.lower(User.username) == username.strip().lower())
        .first()
    )


def get_user_by_id(db: Session, user_id: UUID) -> User | None:
    """Fetch a single user by primary key."""
    return db.query(User).filter(User.id == user_id).first()


def check_username(db: Session, username: str) -> User:
    user = find_user_by_username(db, username)
    if user is None:
        raise UserNotFoundError("User not found")
    return user


# ── Pattern auth ─────────────────────────────────────────────────────────────


def set_pattern(db: Session, payload: SetPatternRequest) -> User:
    """
    First-time setup: store the pattern hash plus optional display fields.
    """
    if payload.pattern != payload.confirm_pattern:
        raise InvalidPatternError("Patterns do not match")
    if not validate_pattern(payload.pattern):
        raise InvalidPatternError("Invalid pattern. Must connect at least 4 dots.")

    user = find_user_by_username(db, payload.username)
    if user is None:
        raise UserNotFoundError("User not found")
    if user.pattern_hash:
        raise PatternAlreadySetError("Pattern already set. Use login instead.")

    user.pattern_hash = hash_pattern(payload.pattern)
    if payload.display_name and payload.display_name.strip():
        user.display_name = payload.display_name.strip()
    if payload.display_name_color:
        user.display_name_color = payload.display_name_color
    if payload.avatar:
        user.avatar = payload.avatar

    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Pattern set for user %s", user.username)
    return user


def authenticate_user(db: Session, username: str, pattern: str) -> User:
    """Verify a pattern login and return the User, raising on any failure."""
    user = find_user_by_username(db, username)
    if user is None:
        raise UserNotFoundError("User not found")
    if not user.pattern_hash:
        raise PatternNotSetError("Pattern not set. Please set your pattern first.")
    if not verify_pattern(pattern, user.pattern_hash):
        raise InvalidCredentialsError("Invalid pattern")
    return user


def issue_access_token(user: User) -> str:
    """Create a signed JWT with the user's ID as the subject claim."""
    return create_access_token(subject=str(user.id))


# ── Profile edits ────────────────────────────────────────────────────────────


def update_avatar(db: Session, user: User, avatar: str | None) -> User:
    user.avatar = avatar
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def update_preferences(
    db: Session,
    user: User,
    preferences: PreferencesPatch | None,
    avatar: str | None = None,
) -> User:
    """Apply the fields present in *preferences*; a falsy avatar is ignored."""
    if preferences is not None:
        merged = dict(user.preferences or {})
        patch = preferences.model_dump(exclude_unset=True)
        if patch.get("genres") is not None:
            merged["genres"] = patch["genres"]
        if patch.get("favorite_movie_ids") is not None:
            merged["favorite_movie_ids"] = patch["favorite_movie_ids"]
        if "optional_text" in patch:
            merged["optional_text"] = patch["optional_text"]
        # Reassign so the JSON column is flagged dirty
        user.preferences = merged

    if avatar:
        user.avatar = avatar

    db.add(user)
    db.commit()
    db.refresh(user)
    return user


# ── Member directory ─────────────────────────────────────────────────────────


async def _favorite_movies(tmdb: TMDBService | None, tmdb_ids: list[int]) -> list[dict]:
    if tmdb is None or not tmdb_ids:
        return []

    async def _one(tmdb_id: int) -> dict | None:
        try:
            details = await tmdb.get_movie_details(tmdb_id)
        except TMDBUpstreamError as exc:
            logger.warning("Error fetching favorite movie %s: %s", tmdb_id, exc)
            return None
        formatted = format_movie_for_db(details)
        return {
            "tmdb_id": formatted["tmdb_id"],
            "title": formatted["title"],
            "poster": formatted["poster"],
        }

    movies = await asyncio.gather(*(_one(tid) for tid in tmdb_ids[:MAX_FAVORITES_SHOWN]))
    return [m for m in movies if m is not None]


def get_last_review(db: Session, user_id: UUID) -> dict | None:
    """The user's most recent movie rating from a watched meeting."""
    row = (
        db.query(MeetingRating, Meeting)
        .join(Meeting, MeetingRating.meeting_id == Meeting.id)
        .options(joinedload(MeetingRating.movie))
        .filter(
            MeetingRating.user_id == user_id,
            MeetingRating.movie_id.isnot(None),
            Meeting.status == MeetingStatusEnum.WATCHED,
        )
        .order_by(Meeting.watched_date.desc(), MeetingRating.created_at.desc())
        .first()
    )
    if row is None:
        return None
    rating, meeting = row
    return {
        "movie": {
            "id": rating.movie.id,
            "title": rating.movie.title,
            "poster": rating.movie.poster,
        },
        "rating": rating.rating,
        "comment": rating.comment,
        "watched_date": meeting.watched_date,
    }


async def list_members(db: Session, tmdb: TMDBService | None = None) -> list[dict]:
    """All users newest first, with favorite movies and their last review."""
    if tmdb is None:
        try:
            tmdb = TMDBService()
        except TMDBConfigError:
            logger.warning("TMDB not configured; favorite movies omitted from member list")

    users = db.query(User).order_by(User.created_at.desc()).all()
    members = []
    for user in users:
        prefs = user.preferences or {}
        members.append({
            "id": user.id,
            "username": user.username,
            "display_name": user.display_name,
            "display_name_color": user.display_name_color,
            "avatar": user.avatar,
            "preferences": {
                "genres": prefs.get("genres") or [],
                "favorite_movie_ids": prefs.get("favorite_movie_ids") or [],
                "optional_text": prefs.get("optional_text"),
            },
            "favorite_movies": await _favorite_movies(tmdb, prefs.get("favorite_movie_ids") or []),
            "last_review": get_last_review(db, user.id),
            "created_at": user.created_at,
        })
    return members
