"""
Votes API — /api/votes
──────────────────────
Endpoints:
  POST /votes                   — Like/dislike a movie in the active cycle
  GET  /votes/cycle/{cycle_id}  — The caller's votes in a cycle
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from movienight.db.models import User
from movienight.db.session import get_db
from movienight.deps.auth import get_current_user
from movienight.schemas.cycles import SubmitVoteRequest, VoteResponse
from movienight.services.cycle_service import CycleNotFoundError
from movienight.services.vote_service import (
    CycleNotActiveError,
    DuplicateVoteError,
    MovieNotInCycleError,
    VotingClosedError,
    get_user_votes_for_cycle,
    submit_vote,
)

router = APIRouter()


@router.post("", response_model=VoteResponse, status_code=status.HTTP_201_CREATED)
def submit_vote_endpoint(
    payload: SubmitVoteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> VoteResponse:
    """Cast a vote; a previous vote on the same movie in the cycle is replaced."""
    try:
        vote = submit_vote(db, current_user.id, payload)
    except CycleNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (CycleNotActiveError, VotingClosedError, MovieNotInCycleError, DuplicateVoteError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return VoteResponse.model_validate(vote)


@router.get("/cycle/{cycle_id}", response_model=list[VoteResponse])
def my_votes_for_cycle(
    cycle_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[VoteResponse]:
    return [VoteResponse.model_validate(v) for v in get_user_votes_for_cycle(db, current_user.id, cycle_id)]
