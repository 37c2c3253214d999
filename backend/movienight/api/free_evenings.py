"""
Free evenings API — /api/free-evenings
──────────────────────────────────────
Endpoints:
  GET    /free-evenings/upcoming-week     — Monday..Sunday with meetings and who is free
  POST   /free-evenings                   — Mark the caller free on a date
  DELETE /free-evenings                   — Unmark a date (date in the body)
  GET    /free-evenings/my-free-evenings  — The caller's dates this week
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from movienight.db.models import User
from movienight.db.session import get_db
from movienight.deps.auth import get_current_user
from movienight.schemas.free_evenings import (
    FreeEveningRequest,
    FreeEveningResponse,
    MyFreeEveningsResponse,
    UpcomingWeekResponse,
)
from movienight.services.free_evening_service import (
    DateOutsideWeekError,
    FreeEveningExistsError,
    FreeEveningNotFoundError,
    MeetingOnDateError,
    get_my_free_evenings,
    get_upcoming_week,
    mark_free_evening,
    unmark_free_evening,
)

router = APIRouter()


@router.get("/upcoming-week", response_model=UpcomingWeekResponse)
def upcoming_week(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UpcomingWeekResponse:
    return UpcomingWeekResponse.model_validate(get_upcoming_week(db))


@router.post("", response_model=FreeEveningResponse, status_code=status.HTTP_201_CREATED)
def mark_free(
    payload: FreeEveningRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FreeEveningResponse:
    try:
        evening = mark_free_evening(db, current_user.id, payload.evening_date())
    except (DateOutsideWeekError, MeetingOnDateError, FreeEveningExistsError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return FreeEveningResponse.model_validate(evening)


@router.delete("")
def unmark_free(
    payload: FreeEveningRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    try:
        unmark_free_evening(db, current_user.id, payload.evening_date())
    except FreeEveningNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return {"message": "Free evening removed successfully"}


@router.get("/my-free-evenings", response_model=MyFreeEveningsResponse)
def my_free_evenings(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MyFreeEveningsResponse:
    return MyFreeEveningsResponse(dates=get_my_free_evenings(db, current_user.id))
