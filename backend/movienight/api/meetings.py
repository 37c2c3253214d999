"""
Meetings API — /api/movie-history
─────────────────────────────────
Past and upcoming movie nights.

Endpoints:
  GET    /movie-history                            — All meetings, newest first
  GET    /movie-history/reviews/{movie_id}         — Every rating of a movie (admin header)
  GET    /movie-history/{id}                       — One meeting
  POST   /movie-history                            — Schedule a meeting (admin header)
  PUT    /movie-history/{id}                       — Partial update (admin header)
  DELETE /movie-history/{id}                       — Delete (admin header)
  POST   /movie-history/{id}/rating                — Rate a movie (comment >= 50 chars)
  POST   /movie-history/{id}/gathering-rating      — Rate the evening
  POST   /movie-history/{id}/suggest               — Suggest a TMDB movie (max 2 per user)
  GET    /movie-history/{id}/my-suggestions        — The caller's suggestions
  POST   /movie-history/{id}/candidates            — Add a candidate (admin header)
  DELETE /movie-history/{id}/candidates/{movie_id} — Remove a candidate and its votes (admin header)
  GET    /movie-history/{id}/candidates            — Candidates with every vote
  POST   /movie-history/{id}/vote                  — Yes/no vote on a candidate
  GET    /movie-history/{id}/my-votes              — The caller's votes
  POST   /movie-history/{id}/ai-suggestions        — Generate suggestions, add them as candidates (admin header)
  GET    /movie-history/{id}/ai-suggestions        — Cached or fresh suggestions (admin header)
  POST   /movie-history/{id}/ai-recommendation     — LLM pick among voted candidates (admin header)
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from movienight.db.models import User
from movienight.db.session import get_db
from movienight.deps.auth import get_current_user, require_admin_password
from movienight.schemas.meetings import (
    AddCandidateRequest,
    AIRecommendationResponse,
    AISuggestionsResponse,
    CandidatesResponse,
    CreateMeetingRequest,
    MeetingResponse,
    MeetingVoteRequest,
    MeetingVoteResponse,
    MovieReviewsResponse,
    MySuggestionsResponse,
    RateGatheringRequest,
    RateMovieRequest,
    SuggestMovieRequest,
    SuggestMovieResponse,
    UpdateMeetingRequest,
)
from movienight.services.ai_suggestions import (
    DEFAULT_SUGGESTION_LIMIT,
    NoCandidatesError,
    NoVotesError,
    generate_ai_movie_suggestions,
    recommend_candidate,
)
from movienight.services.meeting_service import (
    AlreadyCandidateError,
    CandidateMovieNotFoundError,
    DuplicateMeetingVoteError,
    MeetingClosedError,
    MeetingNotFoundError,
    NotACandidateError,
    SuggestionLimitError,
    add_candidate,
    add_candidates,
    create_meeting,
    delete_meeting,
    get_candidates_with_votes,
    get_meeting_or_raise,
    get_my_meeting_votes,
    get_my_suggestions,
    get_reviews_for_movie,
    list_meetings,
    rate_gathering,
    rate_movie,
    remove_candidate,
    submit_meeting_vote,
    suggest_movie,
    update_meeting,
)
from movienight.services.movie_service import MovieNotFoundError

router = APIRouter()

admin_only = [Depends(require_admin_password)]


def _not_found(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# ── Meetings ──────────────────────────────────────────────────────────────────


@router.get("", response_model=list[MeetingResponse])
def get_meetings(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MeetingResponse]:
    return [MeetingResponse.model_validate(m) for m in list_meetings(db)]


@router.get("/reviews/{movie_id}", response_model=MovieReviewsResponse, dependencies=admin_only)
def get_movie_reviews(
    movie_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MovieReviewsResponse:
    return MovieReviewsResponse.model_validate({"reviews": get_reviews_for_movie(db, movie_id)})


@router.get("/{meeting_id}", response_model=MeetingResponse)
def get_meeting(
    meeting_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MeetingResponse:
    try:
        meeting = get_meeting_or_raise(db, meeting_id)
    except MeetingNotFoundError as exc:
        raise _not_found(exc) from exc
    return MeetingResponse.model_validate(meeting)


@router.post(
    "",
    response_model=MeetingResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=admin_only,
)
def create_meeting_endpoint(
    payload: CreateMeetingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MeetingResponse:
    """Schedule a meeting hosted by the caller. Movies are optional."""
    try:
        meeting = create_meeting(db, payload, current_user.id)
    except MovieNotFoundError as exc:
        raise _not_found(exc) from exc
    return MeetingResponse.model_validate(meeting)


@router.put("/{meeting_id}", response_model=MeetingResponse, dependencies=admin_only)
def update_meeting_endpoint(
    meeting_id: UUID,
    payload: UpdateMeetingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MeetingResponse:
    try:
        meeting = update_meeting(db, meeting_id, payload)
    except (MeetingNotFoundError, MovieNotFoundError) as exc:
        raise _not_found(exc) from exc
    return MeetingResponse.model_validate(meeting)


@router.delete("/{meeting_id}", dependencies=admin_only)
def delete_meeting_endpoint(
    meeting_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    try:
        delete_meeting(db, meeting_id)
    except MeetingNotFoundError as exc:
        raise _not_found(exc) from exc
    return {"message": "Meeting deleted successfully"}


# ── Ratings ───────────────────────────────────────────────────────────────────


@router.post("/{meeting_id}/rating", response_model=MeetingResponse)
def rate_movie_endpoint(
    meeting_id: UUID,
    payload: RateMovieRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MeetingResponse:
    try:
        meeting = rate_movie(db, meeting_id, current_user.id, payload)
    except MeetingNotFoundError as exc:
        raise _not_found(exc) from exc
    return MeetingResponse.model_validate(meeting)


@router.post("/{meeting_id}/gathering-rating", response_model=MeetingResponse)
def rate_gathering_endpoint(
    meeting_id: UUID,
    payload: RateGatheringRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MeetingResponse:
    try:
        meeting = rate_gathering(db, meeting_id, current_user.id, payload)
    except MeetingNotFoundError as exc:
        raise _not_found(exc) from exc
    return MeetingResponse.model_validate(meeting)


# ── Suggestions ───────────────────────────────────────────────────────────────


@router.post("/{meeting_id}/suggest", response_model=SuggestMovieResponse)
async def suggest_movie_endpoint(
    meeting_id: UUID,
    payload: SuggestMovieRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SuggestMovieResponse:
    try:
        result = await suggest_movie(db, meeting_id, current_user.id, payload.tmdb_id)
    except MeetingNotFoundError as exc:
        raise _not_found(exc) from exc
    except (SuggestionLimitError, AlreadyCandidateError) as exc:
        raise _bad_request(exc) from exc
    return SuggestMovieResponse.model_validate(result)


@router.get("/{meeting_id}/my-suggestions", response_model=MySuggestionsResponse)
def my_suggestions(
    meeting_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MySuggestionsResponse:
    try:
        result = get_my_suggestions(db, meeting_id, current_user.id)
    except MeetingNotFoundError as exc:
        raise _not_found(exc) from exc
    return MySuggestionsResponse.model_validate(result)


# ── Candidates ────────────────────────────────────────────────────────────────


@router.post("/{meeting_id}/candidates", response_model=MeetingResponse, dependencies=admin_only)
def add_candidate_endpoint(
    meeting_id: UUID,
    payload: AddCandidateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MeetingResponse:
    try:
        meeting = add_candidate(db, meeting_id, payload.movie_id)
    except (MeetingNotFoundError, CandidateMovieNotFoundError) as exc:
        raise _not_found(exc) from exc
    except AlreadyCandidateError as exc:
        raise _bad_request(exc) from exc
    return MeetingResponse.model_validate(meeting)


@router.delete(
    "/{meeting_id}/candidates/{movie_id}",
    response_model=MeetingResponse,
    dependencies=admin_only,
)
def remove_candidate_endpoint(
    meeting_id: UUID,
    movie_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MeetingResponse:
    try:
        meeting = remove_candidate(db, meeting_id, movie_id)
    except MeetingNotFoundError as exc:
        raise _not_found(exc) from exc
    return MeetingResponse.model_validate(meeting)


@router.get("/{meeting_id}/candidates", response_model=CandidatesResponse)
def get_candidates(
    meeting_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CandidatesResponse:
    try:
        result = get_candidates_with_votes(db, meeting_id)
    except MeetingNotFoundError as exc:
        raise _not_found(exc) from exc
    return CandidatesResponse.model_validate(result)


# ── Candidate votes ───────────────────────────────────────────────────────────


@router.post(
    "/{meeting_id}/vote",
    response_model=MeetingVoteResponse,
    status_code=status.HTTP_201_CREATED,
)
def vote_on_candidate(
    meeting_id: UUID,
    payload: MeetingVoteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MeetingVoteResponse:
    try:
        vote = submit_meeting_vote(db, meeting_id, current_user.id, payload)
    except MeetingNotFoundError as exc:
        raise _not_found(exc) from exc
    except (NotACandidateError, MeetingClosedError, DuplicateMeetingVoteError) as exc:
        raise _bad_request(exc) from exc
    return MeetingVoteResponse.model_validate(vote)


@router.get("/{meeting_id}/my-votes", response_model=list[MeetingVoteResponse])
def my_votes(
    meeting_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MeetingVoteResponse]:
    votes = get_my_meeting_votes(db, meeting_id, current_user.id)
    return [MeetingVoteResponse.model_validate(v) for v in votes]


# ── AI ────────────────────────────────────────────────────────────────────────


@router.post("/{meeting_id}/ai-suggestions", response_model=AISuggestionsResponse, dependencies=admin_only)
async def generate_ai_suggestions(
    meeting_id: UUID,
    limit: int = Query(DEFAULT_SUGGESTION_LIMIT, ge=1, le=20),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AISuggestionsResponse:
    """Generate (or reuse cached) suggestions and add them to the candidates."""
    try:
        suggestions = await generate_ai_movie_suggestions(db, meeting_id, limit)
    except MeetingNotFoundError as exc:
        raise _not_found(exc) from exc
    add_candidates(db, meeting_id, [s["movie_id"] for s in suggestions])
    return AISuggestionsResponse.model_validate({"suggestions": suggestions})


@router.get("/{meeting_id}/ai-suggestions", response_model=AISuggestionsResponse, dependencies=admin_only)
async def get_ai_suggestions(
    meeting_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AISuggestionsResponse:
    try:
        suggestions = await generate_ai_movie_suggestions(db, meeting_id)
    except MeetingNotFoundError as exc:
        raise _not_found(exc) from exc
    return AISuggestionsResponse.model_validate({"suggestions": suggestions})


@router.post(
    "/{meeting_id}/ai-recommendation",
    response_model=AIRecommendationResponse,
    dependencies=admin_only,
)
async def ai_recommendation(
    meeting_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AIRecommendationResponse:
    """Ask the LLM which voted-on candidate to watch. Never cached."""
    try:
        recommendation = await recommend_candidate(db, meeting_id)
    except MeetingNotFoundError as exc:
        raise _not_found(exc) from exc
    except (NoCandidatesError, NoVotesError) as exc:
        raise _bad_request(exc) from exc
    return AIRecommendationResponse.model_validate({"recommendation": recommendation})
