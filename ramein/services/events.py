from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from ..app import db
from ..models import Certificate, Event, Participant
from ..shared.errors import (
    EventFull,
    EventLocked,
    EventNotFound,
    EventValidationError,
    RegistrationClosed,
)
from ..shared.time import to_naive_utc

EVENT_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "location",
    "category",
    "starts_at",
    "ends_at",
    "registration_deadline",
    "max_participants",
    "is_published",
)
DATETIME_FIELDS: tuple[str, ...] = ("starts_at", "ends_at", "registration_deadline")
SCHEDULE_FIELDS: tuple[str, ...] = ("starts_at", "ends_at")

PHASE_UPCOMING = "upcoming"
PHASE_ONGOING = "ongoing"
PHASE_COMPLETED = "completed"


def event_end(event: Event) -> datetime:
    """Events without an explicit end finish at their start instant."""
    return event.ends_at or event.starts_at


def event_phase(event: Event, now: datetime) -> str:
    now = to_naive_utc(now)
    if now < event.starts_at:
        return PHASE_UPCOMING
    if now <= event_end(event):
        return PHASE_ONGOING
    return PHASE_COMPLETED


def _registration_open(event: Event, now: datetime) -> bool:
    if now >= event.starts_at:
        return False
    if event.registration_deadline is not None and now >= event.registration_deadline:
        return False
    return True


def _has_capacity(event: Event) -> bool:
    if event.max_participants is None:
        return True
    return (event.current_participants or 0) < event.max_participants


def can_register(event: Event, now: datetime) -> bool:
    now = to_naive_utc(now)
    return _registration_open(event, now) and _has_capacity(event)


def _reload(event_id: int) -> Event | None:
    return db.session.execute(
        select(Event)
        .where(Event.id == event_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def reserve_slot(event: Event, now: datetime) -> None:
    """Take one seat with a single guarded UPDATE; the database row decides."""

    now = to_naive_utc(now)
    result = db.session.execute(
        update(Event)
        .where(
            Event.id == event.id,
            or_(
                Event.max_participants.is_(None),
                Event.current_participants < Event.max_participants,
            ),
            Event.starts_at > now,
            or_(
                Event.registration_deadline.is_(None),
                Event.registration_deadline > now,
            ),
        )
        .values(current_participants=Event.current_participants + 1)
        .execution_options(synchronize_session=False)
    )
    fresh = _reload(event.id)
    if result.rowcount == 1:
        return
    if fresh is None:
        raise EventNotFound()
    if not _registration_open(fresh, now):
        raise RegistrationClosed()
    raise EventFull()


def release_slot(event: Event) -> None:
    db.session.execute(
        update(Event)
        .where(Event.id == event.id, Event.current_participants > 0)
        .values(current_participants=Event.current_participants - 1)
        .execution_options(synchronize_session=False)
    )
    _reload(event.id)


def _participant_count(event_id: int) -> int:
    return (
        db.session.query(db.func.count(Participant.id))
        .filter(Participant.event_id == event_id)
        .scalar()
        or 0
    )


def _coerce(values: dict) -> dict:
    unknown = set(values) - set(EVENT_FIELDS)
    if unknown:
        raise EventValidationError(f"Unknown event fields: {', '.join(sorted(unknown))}.")
    cleaned = dict(values)
    for key in DATETIME_FIELDS:
        if key in cleaned:
            cleaned[key] = to_naive_utc(cleaned[key])
    if "title" in cleaned:
        cleaned["title"] = (cleaned["title"] or "").strip()
    if "max_participants" in cleaned and cleaned["max_participants"] is not None:
        try:
            cleaned["max_participants"] = int(cleaned["max_participants"])
        except (TypeError, ValueError):
            raise EventValidationError("max_participants must be an integer.")
    if "is_published" in cleaned:
        cleaned["is_published"] = bool(cleaned["is_published"])
    return cleaned


def _validate(event: Event) -> None:
    if not (event.title or "").strip():
        raise EventValidationError("Event title is required.")
    if event.starts_at is None:
        raise EventValidationError("Event start is required.")
    if event.ends_at is not None and event.ends_at < event.starts_at:
        raise EventValidationError("Event cannot end before it starts.")
    if (
        event.registration_deadline is not None
        and event.registration_deadline > event.starts_at
    ):
        raise EventValidationError("Registration deadline must not be after the start.")
    if event.max_participants is not None and event.max_participants < 1:
        raise EventValidationError("max_participants must be at least 1.")
    if (
        event.max_participants is not None
        and event.max_participants < (event.current_participants or 0)
    ):
        raise EventValidationError(
            "max_participants cannot be lower than the current registrations."
        )


def create_event(**fields) -> Event:
    values = _coerce(fields)
    event = Event(**values)
    event.current_participants = 0
    if event.is_published is None:
        event.is_published = True
    _validate(event)
    db.session.add(event)
    db.session.commit()
    current_app.logger.info("[EVENT] created id=%s title=%s", event.id, event.title)
    return event


def update_event(event: Event, **fields) -> Event:
    values = _coerce(fields)
    schedule_changes = [
        key
        for key in SCHEDULE_FIELDS
        if key in values and values[key] != getattr(event, key)
    ]
    if schedule_changes and _participant_count(event.id):
        raise EventLocked(
            "Event start and end cannot change once participants are registered."
        )
    _reload(event.id)
    for key, value in values.items():
        setattr(event, key, value)
    try:
        _validate(event)
        db.session.commit()
    except EventValidationError:
        db.session.rollback()
        raise
    except IntegrityError:
        db.session.rollback()
        raise EventValidationError(
            "max_participants cannot be lower than the current registrations."
        )
    current_app.logger.info(
        "[EVENT] updated id=%s fields=%s", event.id, ",".join(sorted(values))
    )
    return event


def delete_event(event: Event) -> None:
    issued = (
        db.session.query(Certificate.id)
        .filter(Certificate.event_id == event.id)
        .first()
    )
    if issued:
        raise EventLocked("Events with issued certificates cannot be deleted.")
    event_id = event.id
    db.session.delete(event)
    db.session.commit()
    current_app.logger.info("[EVENT] deleted id=%s", event_id)


def get_event(event_id: int) -> Event:
    event = db.session.get(Event, event_id)
    if not event:
        raise EventNotFound()
    return event


def list_events(published_only: bool = False) -> list[Event]:
    query = Event.query
    if published_only:
        query = query.filter(Event.is_published.is_(True))
    return query.order_by(Event.starts_at, Event.id).all()
