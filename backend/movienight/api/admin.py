"""
Admin API — /api/admin
──────────────────────
No bearer token here: every route except verify-password is gated on the
x-admin-password header alone.

Endpoints:
  POST   /admin/verify-password               — Check the admin password
  POST   /admin/users                         — Create a pattern-less user
  GET    /admin/users                         — All users with has_pattern
  POST   /admin/users/{id}/reset-pattern      — Clear a user's pattern
  DELETE /admin/users/{id}                    — Delete a user
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from movienight.core.config import settings
from movienight.db.session import get_db
from movienight.deps.auth import admin_password_matches, require_admin_password
from movienight.schemas.admin import (
    AdminUserResponse,
    CreateUserRequest,
    ResetPatternResponse,
    VerifyPasswordRequest,
)
from movienight.services.admin_service import (
    DuplicateUserError,
    create_user,
    delete_user,
    list_users,
    reset_pattern,
)
from movienight.services.auth_service import UserNotFoundError

router = APIRouter()

admin_only = [Depends(require_admin_password)]


@router.post("/verify-password")
def verify_password(payload: VerifyPasswordRequest) -> dict:
    """Validate the admin password. Grants nothing by itself."""
    if not settings.ADMIN_PASSWORD:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Admin password not configured",
        )
    if not admin_password_matches(payload.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin password")
    return {"success": True, "message": "Admin access granted"}


@router.post(
    "/users",
    response_model=AdminUserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=admin_only,
)
def create_user_endpoint(payload: CreateUserRequest, db: Session = Depends(get_db)) -> AdminUserResponse:
    try:
        user = create_user(db, payload.username)
    except DuplicateUserError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return AdminUserResponse.model_validate(user)


@router.get("/users", response_model=list[AdminUserResponse], dependencies=admin_only)
def list_users_endpoint(db: Session = Depends(get_db)) -> list[AdminUserResponse]:
    return [AdminUserResponse.model_validate(u) for u in list_users(db)]


@router.post(
    "/users/{user_id}/reset-pattern",
    response_model=ResetPatternResponse,
    dependencies=admin_only,
)
def reset_pattern_endpoint(user_id: UUID, db: Session = Depends(get_db)) -> ResetPatternResponse:
    try:
        user = reset_pattern(db, user_id)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ResetPatternResponse(
        id=user.id,
        username=user.username,
        message="Pattern reset successfully. User must set a new pattern.",
    )


@router.delete("/users/{user_id}", dependencies=admin_only)
def delete_user_endpoint(user_id: UUID, db: Session = Depends(get_db)) -> dict:
    try:
        delete_user(db, user_id)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return {"message": "User deleted successfully"}
