"""
Cycles API — /api/cycles
────────────────────────
Endpoints:
  GET  /cycles              — All cycles, newest first
  GET  /cycles/active       — The active cycle with like counts (or null)
  POST /cycles              — Create and activate a cycle (admin header)
  PUT  /cycles/{id}         — Partial update (admin header)
  POST /cycles/{id}/close   — Tally likes, pick a winner, deactivate (admin header)
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from movienight.db.models import User
from movienight.db.session import get_db
from movienight.deps.auth import get_current_user, require_admin_password
from movienight.schemas.cycles import (
    ActiveCycleResponse,
    CloseCycleResponse,
    CreateCycleRequest,
    CycleResponse,
    UpdateCycleRequest,
)
from movienight.services.cycle_service import (
    CycleNotFoundError,
    NoVotesInCycleError,
    close_cycle,
    create_cycle,
    get_active_cycle,
    list_cycles,
    update_cycle,
)
from movienight.services.movie_service import MovieNotFoundError

router = APIRouter()


@router.get("", response_model=list[CycleResponse])
def get_cycles(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[CycleResponse]:
    return [CycleResponse.model_validate(c) for c in list_cycles(db)]


@router.get("/active", response_model=ActiveCycleResponse | None)
def get_active(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ActiveCycleResponse | None:
    cycle = get_active_cycle(db)
    if cycle is None:
        return None
    return ActiveCycleResponse.model_validate(cycle)


@router.post(
    "",
    response_model=CycleResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin_password)],
)
def create_cycle_endpoint(
    payload: CreateCycleRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CycleResponse:
    try:
        cycle = create_cycle(db, payload, current_user.id)
    except MovieNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return CycleResponse.model_validate(cycle)


@router.put(
    "/{cycle_id}",
    response_model=CycleResponse,
    dependencies=[Depends(require_admin_password)],
)
def update_cycle_endpoint(
    cycle_id: UUID,
    payload: UpdateCycleRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CycleResponse:
    try:
        cycle = update_cycle(db, cycle_id, payload)
    except (CycleNotFoundError, MovieNotFoundError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return CycleResponse.model_validate(cycle)


@router.post(
    "/{cycle_id}/close",
    response_model=CloseCycleResponse,
    dependencies=[Depends(require_admin_password)],
)
def close_cycle_endpoint(
    cycle_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    try:
        return close_cycle(db, cycle_id)
    except CycleNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except NoVotesInCycleError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
