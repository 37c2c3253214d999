"""
Auth request/response schemas.
"""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserPreferences(BaseModel):
    """Onboarding answers stored on the user row."""

    genres: list[str] = Field(default_factory=list)
    favorite_movie_ids: list[int] = Field(default_factory=list)
    optional_text: str | None = None


class UserSummary(BaseModel):
    """The public bits of a user embedded in other payloads."""

    id: UUID
    username: str
    display_name: str | None = None
    display_name_color: str | None = None
    avatar: str | None = None

    model_config = ConfigDict(from_attributes=True)


class UserProfile(UserSummary):
    """The caller's own profile."""

    is_admin: bool = False
    needs_onboarding: bool = True
    preferences: UserPreferences = Field(default_factory=UserPreferences)


class CheckUsernameRequest(BaseModel):
    """Payload for POST /auth/check-username."""

    username: str

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Username required")
        return v


class CheckUsernameResponse(BaseModel):
    has_pattern: bool
    avatar: str | None = None


class SetPatternRequest(BaseModel):
    """Payload for POST /auth/set-pattern (first login)."""

    username: str
    pattern: str
    confirm_pattern: str
    display_name: str | None = None
    display_name_color: str | None = None
    avatar: str | None = None


class LoginRequest(BaseModel):
    """Payload for POST /auth/login."""

    username: str
    pattern: str


class AuthResponse(BaseModel):
    """Returned after a successful login or pattern setup."""

    token: str
    token_type: str = "bearer"
    user: UserProfile


class UpdateAvatarRequest(BaseModel):
    avatar: str | None = None


class AvatarResponse(BaseModel):
    id: UUID
    username: str
    avatar: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PreferencesPatch(BaseModel):
    """Any subset of the preference fields; omitted fields are left as-is."""

    genres: list[str] | None = None
    favorite_movie_ids: list[int] | None = None
    optional_text: str | None = None


class UpdatePreferencesRequest(BaseModel):
    preferences: PreferencesPatch | None = None
    avatar: str | None = None


class PreferencesResponse(BaseModel):
    id: UUID
    username: str
    preferences: UserPreferences
    avatar: str | None = None

    model_config = ConfigDict(from_attributes=True)


class FavoriteMovie(BaseModel):
    tmdb_id: int
    title: str
    poster: str | None = None


class LastReviewMovie(BaseModel):
    id: UUID
    title: str
    poster: str | None = None


class LastReview(BaseModel):
    movie: LastReviewMovie
    rating: int
    comment: str
    watched_date: datetime


class MemberResponse(UserSummary):
    """Entry of GET /auth/users."""

    preferences: UserPreferences
    favorite_movies: list[FavoriteMovie] = Field(default_factory=list)
    last_review: LastReview | None = None
    created_at: datetime
