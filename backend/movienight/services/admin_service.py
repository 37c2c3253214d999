"""
Admin business logic — user management behind the shared admin password.
"""
import logging
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from movienight.db.models import (
    GatheringRating,
    Item,
    ItemStatusEnum,
    Meeting,
    MeetingRating,
    User,
)
from movienight.services.auth_service import UserNotFoundError, find_user_by_username

logger = logging.getLogger(__name__)


class DuplicateUserError(Exception):
    """Raised when the username is already taken."""


def _get_user_or_raise(db: Session, user_id: UUID) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise UserNotFoundError("User not found")
    return user


def create_user(db: Session, username: str) -> User:
    """Create a user without a pattern; they draw one on first login."""
    username = username.strip()
    if find_user_by_username(db, username) is not None:
        raise DuplicateUserError("Username already exists")

    user = User(username=username, is_admin=False)
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateUserError("Username already exists") from exc
    db.refresh(user)
    logger.info("Created user %s", user.username)
    return user


def list_users(db: Session) -> list[User]:
    return db.query(User).order_by(User.created_at.desc()).all()


def reset_pattern(db: Session, user_id: UUID) -> User:
    """Clear the pattern hash so the user must draw a new one."""
    user = _get_user_or_raise(db, user_id)
    user.pattern_hash = None
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Pattern reset for user %s", user.username)
    return user


def delete_user(db: Session, user_id: UUID) -> None:
    """
    Delete a user.

    Items they claimed go back to available. Their meeting and gathering
    ratings are removed through the ORM so the affected meeting averages
    are recomputed; votes and free evenings cascade with the user row.
    """
    user = _get_user_or_raise(db, user_id)
    db.query(Item).filter(Item.claimed_by_user_id == user.id).update(
        {
            Item.claimed_by_user_id: None,
            Item.claimed_at: None,
            Item.status: ItemStatusEnum.AVAILABLE,
        },
        synchronize_session=False,
    )

    rated = (
        db.query(Meeting)
        .filter(
            or_(
                Meeting.ratings.any(MeetingRating.user_id == user.id),
                Meeting.gathering_ratings.any(GatheringRating.user_id == user.id),
            )
        )
        .all()
    )
    for meeting in rated:
        meeting.ratings = [r for r in meeting.ratings if r.user_id != user.id]
        meeting.gathering_ratings = [r for r in meeting.gathering_ratings if r.user_id != user.id]
        meeting.recompute_averages()

    db.delete(user)
    db.commit()
    logger.info("Deleted user %s (%d rated meetings updated)", user.username, len(rated))
