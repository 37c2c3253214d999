"""
Free evening business logic.

The "upcoming week" runs from the next Monday (today when today is a
Monday) through the following Sunday, in UTC calendar dates.
"""
from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from movienight.db.models import FreeEvening, Meeting


class DateOutsideWeekError(Exception):
    """Raised when the date is not in the upcoming week."""


class MeetingOnDateError(Exception):
    """Raised when a meeting is already scheduled that day."""


class FreeEveningExistsError(Exception):
    """Raised when the caller already marked that date."""


class FreeEveningNotFoundError(Exception):
    """Raised when unmarking a date the caller never marked."""


def get_upcoming_week_dates(today: date | None = None) -> tuple[date, date]:
    """(monday, sunday) of the upcoming week."""
    today = today or datetime.now(timezone.utc).date()
    start = today + timedelta(days=(7 - today.weekday()) % 7)
    return start, start + timedelta(days=6)


def _day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """[start 00:00, day after end 00:00) in UTC."""
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return lower, upper


def _meeting_dates(db: Session, start: date, end: date) -> set[date]:
    lower, upper = _day_bounds(start, end)
    rows = (
        db.query(Meeting.watched_date)
        .filter(Meeting.watched_date >= lower, Meeting.watched_date < upper)
        .all()
    )
    return {row.watched_date.astimezone(timezone.utc).date() for row in rows}


def get_upcoming_week(db: Session, today: date | None = None) -> dict:
    """All seven days of the week with meeting flags and who is free."""
    start, end = get_upcoming_week_dates(today)
    meeting_days = _meeting_dates(db, start, end)

    evenings = (
        db.query(FreeEvening)
        .options(joinedload(FreeEvening.user))
        .filter(FreeEvening.date >= start, FreeEvening.date <= end)
        .order_by(FreeEvening.date.asc(), FreeEvening.created_at.asc())
        .all()
    )
    by_date: dict[date, list[FreeEvening]] = {}
    for evening in evenings:
        by_date.setdefault(evening.date, []).append(evening)

    days = []
    for offset in range(7):
        day = start + timedelta(days=offset)
        days.append({
            "date": day,
            "has_meeting": day in meeting_days,
            "free_users": by_date.get(day, []),
        })

    return {"week_start": start, "week_end": end, "dates": days}


def mark_free_evening(
    db: Session,
    user_id: UUID,
    evening_date: date,
    today: date | None = None,
) -> FreeEvening:
    start, end = get_upcoming_week_dates(today)
    if evening_date < start or evening_date > end:
        raise DateOutsideWeekError("Date must be in the upcoming week")

    if evening_date in _meeting_dates(db, evening_date, evening_date):
        raise MeetingOnDateError("A meeting is already scheduled for this date")

    existing = (
        db.query(FreeEvening)
        .filter(FreeEvening.user_id == user_id, FreeEvening.date == evening_date)
        .first()
    )
    if existing is not None:
        raise FreeEveningExistsError("Free evening already marked")

    evening = FreeEvening(user_id=user_id, date=evening_date)
    db.add(evening)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise FreeEveningExistsError("Free evening already marked") from exc

    return (
        db.query(FreeEvening)
        .options(joinedload(FreeEvening.user))
        .filter(FreeEvening.id == evening.id)
        .one()
    )


def unmark_free_evening(db: Session, user_id: UUID, evening_date: date) -> None:
    deleted = (
        db.query(FreeEvening)
        .filter(FreeEvening.user_id == user_id, FreeEvening.date == evening_date)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise FreeEveningNotFoundError("Free evening not found")
    db.commit()


def get_my_free_evenings(db: Session, user_id: UUID, today: date | None = None) -> list[date]:
    start, end = get_upcoming_week_dates(today)
    rows = (
        db.query(FreeEvening.date)
        .filter(
            FreeEvening.user_id == user_id,
            FreeEvening.date >= start,
            FreeEvening.date <= end,
        )
        .order_by(FreeEvening.date.asc())
        .all()
    )
    return [row.date for row in rows]
