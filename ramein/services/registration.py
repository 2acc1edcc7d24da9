from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError

from ..app import db
from ..models import Event, Participant, User
from ..shared.constants import MAX_TOKEN_ATTEMPTS, TOKEN_LENGTH
from ..shared.errors import (
    AlreadyAttended,
    AlreadyRegistered,
    EventNotFound,
    LifecycleError,
    NotRegistered,
    RegistrationClosed,
    TokenGenerationError,
    UserNotFound,
)
from ..shared.identifiers import generate_token
from ..shared.mail_utils import mask_token
from ..shared.time import to_naive_utc
from .events import get_event, release_slot, reserve_slot
from .notifications import send_registration_token


def _integrity_details(error: IntegrityError) -> str:
    details = ""
    if getattr(error, "orig", None) is not None:
        details = str(error.orig)
    if not details:
        details = str(error)
    return details.lower()


def _is_duplicate_registration(error: IntegrityError) -> bool:
    details = _integrity_details(error)
    return "uix_participant_event_user" in details or "participants.user_id" in details


def _is_token_conflict(error: IntegrityError) -> bool:
    details = _integrity_details(error)
    return "uix_participant_event_token" in details or "token_number" in details


def _token_length() -> int:
    return int(current_app.config.get("TOKEN_LENGTH") or TOKEN_LENGTH)


def _unused_token(event_id: int) -> str:
    length = _token_length()
    for _ in range(MAX_TOKEN_ATTEMPTS):
        token = generate_token(length)
        taken = (
            db.session.query(Participant.id)
            .filter_by(event_id=event_id, token_number=token)
            .first()
        )
        if not taken:
            return token
    raise TokenGenerationError()


def register(
    event_id: int, user_id: int, now: datetime, notify: bool = True
) -> Participant:
    """Register ``user_id`` for the event and hand out its attendance token."""

    now = to_naive_utc(now)
    event = get_event(event_id)
    if not event.is_published:
        raise EventNotFound()
    if not db.session.get(User, user_id):
        raise UserNotFound()
    existing = (
        db.session.query(Participant.id)
        .filter_by(event_id=event.id, user_id=user_id)
        .first()
    )
    if existing:
        raise AlreadyRegistered()

    participant = None
    for attempt in range(1, MAX_TOKEN_ATTEMPTS + 1):
        try:
            token = _unused_token(event.id)
            reserve_slot(event, now)
            participant = Participant(
                event_id=event.id,
                user_id=user_id,
                token_number=token,
                has_attended=False,
                registered_at=now,
            )
            db.session.add(participant)
            db.session.commit()
            break
        except LifecycleError:
            db.session.rollback()
            raise
        except IntegrityError as exc:
            db.session.rollback()
            if _is_duplicate_registration(exc):
                raise AlreadyRegistered()
            if not _is_token_conflict(exc):
                raise
            current_app.logger.info(
                "[REGISTER] token collision event=%s attempt=%s", event.id, attempt
            )
            participant = None
    if participant is None:
        raise TokenGenerationError()

    current_app.logger.info(
        "[REGISTER] event=%s user=%s participant=%s token=%s",
        event.id,
        user_id,
        participant.id,
        mask_token(participant.token_number),
    )
    if notify:
        send_registration_token(participant)
    return participant


def unregister(event_id: int, user_id: int, now: datetime) -> None:
    now = to_naive_utc(now)
    participant = get_participant(event_id, user_id)
    event = participant.event
    if participant.has_attended:
        raise AlreadyAttended()
    if now >= event.starts_at:
        raise RegistrationClosed("Registrations cannot be cancelled after the event starts.")
    result = db.session.execute(
        delete(Participant)
        .where(Participant.id == participant.id, Participant.has_attended.is_(False))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise AlreadyAttended()
    db.session.expunge(participant)
    release_slot(event)
    db.session.commit()
    current_app.logger.info("[UNREGISTER] event=%s user=%s", event_id, user_id)


def get_participant(event_id: int, user_id: int) -> Participant:
    participant = Participant.query.filter_by(
        event_id=event_id, user_id=user_id
    ).one_or_none()
    if not participant:
        raise NotRegistered()
    return participant


def list_participants(
    event_id: int,
    attended: bool | None = None,
    has_certificate: bool | None = None,
) -> list[Participant]:
    get_event(event_id)
    query = Participant.query.filter(Participant.event_id == event_id)
    if attended is not None:
        query = query.filter(Participant.has_attended.is_(bool(attended)))
    if has_certificate is True:
        query = query.filter(Participant.certificate_id.isnot(None))
    elif has_certificate is False:
        query = query.filter(Participant.certificate_id.is_(None))
    return query.order_by(Participant.id).all()


def list_for_user(user_id: int) -> list[Participant]:
    return (
        Participant.query.join(Event, Participant.event_id == Event.id)
        .filter(Participant.user_id == user_id)
        .order_by(Event.starts_at, Participant.id)
        .all()
    )
