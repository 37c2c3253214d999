"""
Bring-list business logic.

Items belong to an upcoming meeting. Only the meeting host (or an admin)
manages the list; any member may claim one available item per meeting.
"""
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from movienight.db.models import Item, ItemStatusEnum, Meeting


class EventNotFoundError(Exception):
    """Raised when the meeting an item belongs to does not exist."""


class ItemNotFoundError(Exception):
    """Raised when an item does not exist."""


class EventClosedError(Exception):
    """Raised when changing items of a meeting that is no longer upcoming."""


class NotHostOrAdminError(Exception):
    """Raised when a non-host, non-admin tries to manage items."""


class ItemAlreadyClaimedError(Exception):
    """Raised when the item is claimed by someone else."""


class ClaimLimitError(Exception):
    """Raised when the caller already claimed another item for the meeting."""


def _get_item_or_raise(db: Session, item_id: UUID) -> Item:
    item = (
        db.query(Item)
        .options(joinedload(Item.event), joinedload(Item.claimed_by))
        .filter(Item.id == item_id)
        .first()
    )
    if item is None:
        raise ItemNotFoundError("Item not found")
    return item


def _assert_future_event(event: Meeting, action: str) -> None:
    if not event.is_open_for_changes(datetime.now(timezone.utc)):
        raise EventClosedError(f"Items can only be {action} future events")


def _assert_host_or_admin(event: Meeting, user_id: UUID, is_admin: bool, action: str) -> None:
    if event.host_id != user_id and not is_admin:
        raise NotHostOrAdminError(f"Only host or admin can {action} items")


def list_items_for_event(db: Session, event_id: UUID) -> list[Item]:
    return (
        db.query(Item)
        .options(joinedload(Item.claimed_by))
        .filter(Item.event_id == event_id)
        .order_by(Item.name.asc())
        .all()
    )


def create_item(
    db: Session,
    event_id: UUID,
    name: str,
    user_id: UUID,
    is_admin: bool,
) -> Item:
    event = db.query(Meeting).filter(Meeting.id == event_id).first()
    if event is None:
        raise EventNotFoundError("Event not found")
    _assert_future_event(event, "added to")
    _assert_host_or_admin(event, user_id, is_admin, "add")

    item = Item(event_id=event.id, name=name, status=ItemStatusEnum.AVAILABLE)
    db.add(item)
    db.commit()
    return _get_item_or_raise(db, item.id)


def toggle_claim(db: Session, item_id: UUID, user_id: UUID) -> Item:
    """
    Claim an available item, or release it when the caller already holds it.
    """
    item = _get_item_or_raise(db, item_id)
    _assert_future_event(item.event, "claimed for")

    if item.status == ItemStatusEnum.CLAIMED and item.claimed_by_user_id == user_id:
        item.status = ItemStatusEnum.AVAILABLE
        item.claimed_by_user_id = None
        item.claimed_at = None
    elif item.status == ItemStatusEnum.AVAILABLE:
        other = (
            db.query(Item)
            .filter(
                Item.event_id == item.event_id,
                Item.claimed_by_user_id == user_id,
                Item.status == ItemStatusEnum.CLAIMED,
                Item.id != item.id,
            )
            .first()
        )
        if other is not None:
            raise ClaimLimitError("You can only claim one item per event")
        item.status = ItemStatusEnum.CLAIMED
        item.claimed_by_user_id = user_id
        item.claimed_at = datetime.now(timezone.utc)
    else:
        raise ItemAlreadyClaimedError("Item already claimed by someone else")

    db.add(item)
    db.commit()
    # Reload so claimed_by reflects the new claimant
    db.expire(item, ["claimed_by"])
    return _get_item_or_raise(db, item_id)


def delete_item(db: Session, item_id: UUID, user_id: UUID, is_admin: bool) -> None:
    item = _get_item_or_raise(db, item_id)
    _assert_future_event(item.event, "deleted from")
    _assert_host_or_admin(item.event, user_id, is_admin, "delete")
    db.delete(item)
    db.commit()
