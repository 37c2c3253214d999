"""
Auth dependencies — shared across all protected endpoints.

Usage in any route:
    from movienight.deps.auth import get_current_user, require_admin_password
    from movienight.db.models import User

    @router.post("/protected", dependencies=[Depends(require_admin_password)])
    def protected(user: User = Depends(get_current_user)):
        ...
"""
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from movienight.core.config import settings
from movienight.core.security import decode_access_token
from movienight.db.models import User
from movienight.db.session import get_db

ADMIN_PASSWORD_HEADER = "x-admin-password"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Decode the bearer JWT and return the corresponding User.

    Raises 401 on any failure (missing/invalid token, unknown user).
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    sub = decode_access_token(token)
    if sub is None:
        raise credentials_exception

    try:
        user_id = UUID(sub)
    except (ValueError, AttributeError):
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


def admin_password_matches(provided: str | None) -> bool:
    """Compare a client-supplied admin password against the configured secret."""
    return bool(settings.ADMIN_PASSWORD) and bool(provided) and provided == settings.ADMIN_PASSWORD


def require_admin_password(
    x_admin_password: str | None = Header(default=None, alias=ADMIN_PASSWORD_HEADER),
) -> None:
    """
    Gate a route on the shared admin secret.

    500 when the server has no secret configured, 403 on a missing or wrong header.
    """
    if not settings.ADMIN_PASSWORD:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Admin password not configured",
        )
    if not admin_password_matches(x_admin_password):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin password",
        )


def has_admin_access(
    current_user: User = Depends(get_current_user),
    x_admin_password: str | None = Header(default=None, alias=ADMIN_PASSWORD_HEADER),
) -> bool:
    """True when the caller has the admin flag or sent the right admin header."""
    return bool(current_user.is_admin) or admin_password_matches(x_admin_password)
