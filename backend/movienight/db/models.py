"""
SQLAlchemy ORM models.

Lists that lived inside a meeting document (ratings, gathering ratings,
suggestions, selected movies, candidates) are child tables here so
uniqueness and length rules can be enforced by the database.

Relationships are declared here so services can navigate the graph
without writing raw joins everywhere.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    event,
    text,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Session, relationship


# ── Base ──────────────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    pass


# ── Enums ─────────────────────────────────────────────────────────────────────

class VoteTypeEnum(str, PyEnum):
    LIKE = "like"
    DISLIKE = "dislike"


class MeetingVoteTypeEnum(str, PyEnum):
    YES = "yes"
    NO = "no"


class MeetingStatusEnum(str, PyEnum):
    UPCOMING = "upcoming"
    WATCHED = "watched"


class ItemStatusEnum(str, PyEnum):
    AVAILABLE = "available"
    CLAIMED = "claimed"


def _enum_column_type(enum_cls: type[PyEnum], name: str) -> SAEnum:
    """Store the lowercase enum value as a plain string column."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=16,
        values_callable=lambda members: [m.value for m in members],
    )


# ── Column helpers ────────────────────────────────────────────────────────────

JSONType = JSON().with_variant(JSONB(), "postgresql")

MIN_RATING_COMMENT_LENGTH = 50
MAX_VOTE_REASON_LENGTH = 500


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime that always hands back UTC-aware values."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _default_preferences() -> dict:
    return {"genres": [], "favorite_movie_ids": [], "optional_text": None}


# ── Association tables ────────────────────────────────────────────────────────
# Surrogate integer ids keep insertion order for the ordered movie lists.

cycle_movies = Table(
    "cycle_movies",
    Base.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("cycle_id", Uuid, ForeignKey("cycles.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("movie_id", Uuid, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False),
    UniqueConstraint("cycle_id", "movie_id", name="uq_cycle_movie"),
)

meeting_movies = Table(
    "meeting_movies",
    Base.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("meeting_id", Uuid, ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("movie_id", Uuid, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False),
    UniqueConstraint("meeting_id", "movie_id", name="uq_meeting_movie"),
)

meeting_candidates = Table(
    "meeting_candidates",
    Base.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("meeting_id", Uuid, ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("movie_id", Uuid, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False),
    UniqueConstraint("meeting_id", "movie_id", name="uq_meeting_candidate"),
)


# ── Models ────────────────────────────────────────────────────────────────────

class User(Base):
    """
    A member of the movie-night group.

    pattern_hash is NULL until the user draws their first pattern; an admin
    reset clears it again.

    preferences (JSON):
        {
          "genres": ["Drama", "Thriller"],
          "favorite_movie_ids": [603, 27205],   ← TMDB ids
          "optional_text": "..."
        }
    """
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String(64), unique=True, nullable=False, index=True)
    pattern_hash = Column(String, nullable=True)
    display_name = Column(String(60), nullable=True)
    display_name_color = Column(String(16), nullable=True, default="#000000")
    # Data URL of the drawn avatar image
    avatar = Column(Text, nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    preferences = Column(JSONType, nullable=False, default=_default_preferences)
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    @property
    def has_pattern(self) -> bool:
        return bool(self.pattern_hash)

    @property
    def needs_onboarding(self) -> bool:
        prefs = self.preferences or {}
        return not prefs.get("genres") and not prefs.get("favorite_movie_ids")

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"


class Movie(Base):
    """A TMDB movie known to the group. Created on first reference."""
    __tablename__ = "movies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tmdb_id = Column(Integer, unique=True, nullable=False, index=True)
    title = Column(String(500), nullable=False)
    poster = Column(String(500), nullable=False)
    trailer = Column(String(500), nullable=True)
    description = Column(Text, nullable=False, default="")
    genres = Column(JSONType, nullable=False, default=list)
    release_date = Column(Date, nullable=True)
    runtime = Column(Integer, nullable=True)
    # NULL for movies created by AI suggestions
    added_by_user_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    added_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    added_by = relationship("User", foreign_keys=[added_by_user_id])

    def __repr__(self) -> str:
        return f"<Movie id={self.id} tmdb_id={self.tmdb_id} title={self.title!r}>"


class Cycle(Base):
    """A like/dislike voting window over a fixed list of movies."""
    __tablename__ = "cycles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    is_active = Column(Boolean, default=False, nullable=False, index=True)
    start_date = Column(UTCDateTime, nullable=False)
    end_date = Column(UTCDateTime, nullable=False)
    meeting_time = Column(UTCDateTime, nullable=True)
    location = Column(String(500), nullable=True)
    created_by_user_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    movies = relationship("Movie", secondary=cycle_movies, order_by=cycle_movies.c.id)
    created_by = relationship("User", foreign_keys=[created_by_user_id])
    votes = relationship("Vote", back_populates="cycle", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Cycle id={self.id} active={self.is_active}>"


class Vote(Base):
    """One like/dislike per user per movie per cycle."""
    __tablename__ = "votes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    movie_id = Column(Uuid, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False)
    cycle_id = Column(Uuid, ForeignKey("cycles.id", ondelete="CASCADE"), nullable=False, index=True)
    vote_type = Column(_enum_column_type(VoteTypeEnum, "vote_type"), nullable=False)
    review = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "movie_id", "cycle_id", name="uq_vote_user_movie_cycle"),
    )

    user = relationship("User")
    movie = relationship("Movie")
    cycle = relationship("Cycle", back_populates="votes")


class Meeting(Base):
    """
    A past or upcoming movie night.

    status is derived from watched_date whenever the date is set;
    average_rating / average_gathering_rating are recomputed on flush.
    """
    __tablename__ = "meetings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    watched_date = Column(UTCDateTime, nullable=False, index=True)
    host_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    location = Column(String(500), nullable=True)
    theme = Column(String(500), nullable=True)
    average_rating = Column(Float, nullable=False, default=0.0)
    average_gathering_rating = Column(Float, nullable=False, default=0.0)
    status = Column(
        _enum_column_type(MeetingStatusEnum, "meeting_status"),
        nullable=False,
        default=MeetingStatusEnum.UPCOMING,
    )

    host = relationship("User", foreign_keys=[host_id])
    movies = relationship("Movie", secondary=meeting_movies, order_by=meeting_movies.c.id)
    candidates = relationship("Movie", secondary=meeting_candidates, order_by=meeting_candidates.c.id)
    ratings = relationship(
        "MeetingRating",
        back_populates="meeting",
        cascade="all, delete-orphan",
        order_by="MeetingRating.created_at",
    )
    gathering_ratings = relationship(
        "GatheringRating",
        back_populates="meeting",
        cascade="all, delete-orphan",
        order_by="GatheringRating.created_at",
    )
    suggestions = relationship(
        "MeetingSuggestion",
        back_populates="meeting",
        cascade="all, delete-orphan",
        order_by="MeetingSuggestion.created_at",
    )
    votes = relationship("MeetingVote", back_populates="meeting", cascade="all, delete-orphan")
    items = relationship("Item", back_populates="event", cascade="all, delete-orphan")

    @staticmethod
    def status_for(watched_date: datetime, now: datetime | None = None) -> MeetingStatusEnum:
        now = now or _utcnow()
        return MeetingStatusEnum.UPCOMING if watched_date > now else MeetingStatusEnum.WATCHED

    def is_open_for_changes(self, now: datetime | None = None) -> bool:
        """True for upcoming meetings whose date has not passed yet."""
        now = now or _utcnow()
        return self.status == MeetingStatusEnum.UPCOMING and self.watched_date > now

    def recompute_averages(self) -> None:
        scores = [r.rating for r in self.ratings]
        self.average_rating = sum(scores) / len(scores) if scores else 0.0
        gathering = [r.rating for r in self.gathering_ratings]
        self.average_gathering_rating = sum(gathering) / len(gathering) if gathering else 0.0

    def __repr__(self) -> str:
        return f"<Meeting id={self.id} date={self.watched_date} status={self.status}>"


class MeetingRating(Base):
    """A user's rating of a meeting's movie (or of the meeting when movie_id is NULL)."""
    __tablename__ = "meeting_ratings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    meeting_id = Column(Uuid, ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    movie_id = Column(Uuid, ForeignKey("movies.id", ondelete="SET NULL"), nullable=True, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="chk_meeting_rating_range"),
        CheckConstraint(
            f"length(comment) >= {MIN_RATING_COMMENT_LENGTH}",
            name="chk_meeting_rating_comment_len",
        ),
        # One rating per user per movie; one movie-less rating per user per meeting
        Index(
            "uq_meeting_rating_user_movie",
            "meeting_id", "user_id", "movie_id",
            unique=True,
            postgresql_where=text("movie_id IS NOT NULL"),
            sqlite_where=text("movie_id IS NOT NULL"),
        ),
        Index(
            "uq_meeting_rating_user_no_movie",
            "meeting_id", "user_id",
            unique=True,
            postgresql_where=text("movie_id IS NULL"),
            sqlite_where=text("movie_id IS NULL"),
        ),
    )

    meeting = relationship("Meeting", back_populates="ratings")
    user = relationship("User")
    movie = relationship("Movie")


class GatheringRating(Base):
    """A user's rating of the evening itself."""
    __tablename__ = "gathering_ratings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    meeting_id = Column(Uuid, ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("meeting_id", "user_id", name="uq_gathering_rating_user"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="chk_gathering_rating_range"),
    )

    meeting = relationship("Meeting", back_populates="gathering_ratings")
    user = relationship("User")


class MeetingSuggestion(Base):
    """A candidate proposed by a regular user (capped per user per meeting)."""
    __tablename__ = "meeting_suggestions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    meeting_id = Column(Uuid, ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    movie_id = Column(Uuid, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    meeting = relationship("Meeting", back_populates="suggestions")
    user = relationship("User")
    movie = relationship("Movie")


class MeetingVote(Base):
    """One yes/no per user per candidate per meeting."""
    __tablename__ = "meeting_votes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    movie_id = Column(Uuid, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False)
    meeting_id = Column(Uuid, ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    vote_type = Column(_enum_column_type(MeetingVoteTypeEnum, "meeting_vote_type"), nullable=False)
    reason = Column(String(MAX_VOTE_REASON_LENGTH), nullable=True)
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "movie_id", "meeting_id", name="uq_meeting_vote_user_movie_meeting"),
    )

    user = relationship("User")
    movie = relationship("Movie")
    meeting = relationship("Meeting", back_populates="votes")


class Item(Base):
    """Something to bring to a meeting. Claimable by exactly one user."""
    __tablename__ = "items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid, ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    claimed_by_user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    claimed_at = Column(UTCDateTime, nullable=True)
    status = Column(
        _enum_column_type(ItemStatusEnum, "item_status"),
        nullable=False,
        default=ItemStatusEnum.AVAILABLE,
    )

    __table_args__ = (
        CheckConstraint(
            "(status = 'claimed' AND claimed_by_user_id IS NOT NULL) OR "
            "(status = 'available' AND claimed_by_user_id IS NULL)",
            name="chk_item_claimant",
        ),
    )

    event = relationship("Meeting", back_populates="items")
    claimed_by = relationship("User")


class FreeEvening(Base):
    """A user's availability marker for one calendar date."""
    __tablename__ = "free_evenings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_free_evening_user_date"),
    )

    user = relationship("User")


# ── Flush hooks ───────────────────────────────────────────────────────────────

@event.listens_for(Session, "before_flush")
def _recompute_meeting_averages(session, flush_context, instances) -> None:
    """Keep meeting averages in sync with their rating rows on every save."""
    touched: dict[int, Meeting] = {}
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, Meeting):
            touched[id(obj)] = obj
        elif isinstance(obj, (MeetingRating, GatheringRating)) and obj.meeting is not None:
            touched[id(obj.meeting)] = obj.meeting
    for meeting in touched.values():
        meeting.recompute_averages()
