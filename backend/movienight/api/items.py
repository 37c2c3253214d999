"""
Items API — /api/items
──────────────────────
Things to bring to an upcoming meeting.

Endpoints:
  GET    /items/event/{event_id}  — Items for a meeting, with claimants
  POST   /items                   — Add an item (host or admin)
  PUT    /items/{id}/claim        — Claim, or release an item you hold
  DELETE /items/{id}              — Remove an item (host or admin)
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from movienight.db.models import User
from movienight.db.session import get_db
from movienight.deps.auth import get_current_user, has_admin_access
from movienight.schemas.items import CreateItemRequest, ItemResponse
from movienight.services.item_service import (
    ClaimLimitError,
    EventClosedError,
    EventNotFoundError,
    ItemAlreadyClaimedError,
    ItemNotFoundError,
    NotHostOrAdminError,
    create_item,
    delete_item,
    list_items_for_event,
    toggle_claim,
)

router = APIRouter()


@router.get("/event/{event_id}", response_model=list[ItemResponse])
def get_event_items(
    event_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ItemResponse]:
    return [ItemResponse.model_validate(i) for i in list_items_for_event(db, event_id)]


@router.post("", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
def create_item_endpoint(
    payload: CreateItemRequest,
    current_user: User = Depends(get_current_user),
    is_admin: bool = Depends(has_admin_access),
    db: Session = Depends(get_db),
) -> ItemResponse:
    try:
        item = create_item(db, payload.event_id, payload.name, current_user.id, is_admin)
    except EventNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except EventClosedError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except NotHostOrAdminError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return ItemResponse.model_validate(item)


@router.put("/{item_id}/claim", response_model=ItemResponse)
def claim_item(
    item_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ItemResponse:
    """Toggle the caller's claim. One claimed item per user per meeting."""
    try:
        item = toggle_claim(db, item_id, current_user.id)
    except ItemNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (EventClosedError, ClaimLimitError, ItemAlreadyClaimedError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ItemResponse.model_validate(item)


@router.delete("/{item_id}")
def delete_item_endpoint(
    item_id: UUID,
    current_user: User = Depends(get_current_user),
    is_admin: bool = Depends(has_admin_access),
    db: Session = Depends(get_db),
) -> dict:
    try:
        delete_item(db, item_id, current_user.id, is_admin)
    except ItemNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except EventClosedError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except NotHostOrAdminError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return {"message": "Item deleted"}
