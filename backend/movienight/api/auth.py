"""
Auth API — /api/auth
────────────────────
Endpoints:
  POST /auth/check-username  — Does the user exist, and have they set a pattern?
  POST /auth/set-pattern     — First login: store pattern, return JWT
  POST /auth/login           — Pattern login, return JWT
  GET  /auth/me              — Current user profile (requires bearer token)
  PUT  /auth/avatar          — Replace the drawn avatar
  PUT  /auth/preferences     — Partial update of onboarding preferences
  GET  /auth/users           — Member directory with favorites and last review
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from movienight.db.models import User
from movienight.db.session import get_db
from movienight.deps.auth import get_current_user
from movienight.schemas.auth import (
    AuthResponse,
    AvatarResponse,
    CheckUsernameRequest,
    CheckUsernameResponse,
    LoginRequest,
    MemberResponse,
    PreferencesResponse,
    SetPatternRequest,
    UpdateAvatarRequest,
    UpdatePreferencesRequest,
    UserProfile,
)
from movienight.services.auth_service import (
    InvalidCredentialsError,
    InvalidPatternError,
    PatternAlreadySetError,
    PatternNotSetError,
    UserNotFoundError,
    authenticate_user,
    check_username,
    issue_access_token,
    list_members,
    set_pattern,
    update_avatar,
    update_preferences,
)

router = APIRouter()


def _auth_response(user: User) -> AuthResponse:
    return AuthResponse(token=issue_access_token(user), user=UserProfile.model_validate(user))


# ── Pattern login ─────────────────────────────────────────────────────────────


@router.post("/check-username", response_model=CheckUsernameResponse)
def check_username_endpoint(
    payload: CheckUsernameRequest,
    db: Session = Depends(get_db),
) -> CheckUsernameResponse:
    """Tell the login screen whether to ask for a new pattern or the existing one."""
    try:
        user = check_username(db, payload.username)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return CheckUsernameResponse(has_pattern=user.has_pattern, avatar=user.avatar)


@router.post("/set-pattern", response_model=AuthResponse)
def set_pattern_endpoint(
    payload: SetPatternRequest,
    db: Session = Depends(get_db),
) -> AuthResponse:
    """
    Store the user's first pattern and log them in.

    Returns 400 when the patterns differ, the pattern is invalid or a
    pattern is already set; 404 for an unknown username.
    """
    try:
        user = set_pattern(db, payload)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (InvalidPatternError, PatternAlreadySetError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _auth_response(user)


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> AuthResponse:
    try:
        user = authenticate_user(db, payload.username, payload.pattern)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PatternNotSetError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except InvalidCredentialsError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    return _auth_response(user)


# ── Profile ───────────────────────────────────────────────────────────────────


@router.get("/me", response_model=UserProfile)
def me(current_user: User = Depends(get_current_user)) -> UserProfile:
    """Return the authenticated user's profile."""
    return UserProfile.model_validate(current_user)


@router.put("/avatar", response_model=AvatarResponse)
def update_avatar_endpoint(
    payload: UpdateAvatarRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AvatarResponse:
    user = update_avatar(db, current_user, payload.avatar)
    return AvatarResponse.model_validate(user)


@router.put("/preferences", response_model=PreferencesResponse)
def update_preferences_endpoint(
    payload: UpdatePreferencesRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PreferencesResponse:
    user = update_preferences(db, current_user, payload.preferences, payload.avatar)
    return PreferencesResponse.model_validate(user)


@router.get("/users", response_model=list[MemberResponse])
async def list_users(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MemberResponse]:
    members = await list_members(db)
    return [MemberResponse.model_validate(m) for m in members]
