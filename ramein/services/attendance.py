from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import update

from ..app import db
from ..models import Event, Participant
from ..shared.errors import (
    AlreadyAttended,
    AttendanceWindowClosed,
    InvalidToken,
    NotRegistered,
)
from ..shared.identifiers import normalize_token
from ..shared.mail_utils import mask_token
from ..shared.time import to_naive_utc
from .events import event_end

STATUS_ATTENDED = "attended"
STATUS_MISSED = "missed"
STATUS_UPCOMING = "upcoming"
STATUS_OPEN = "open"


def is_window_open(
    event: Event, now: datetime, close_after: timedelta | None = None
) -> bool:
    """Attendance opens at the event start; it only closes when a policy is set."""

    now = to_naive_utc(now)
    if now < event.starts_at:
        return False
    if close_after is None:
        return True
    return now < event_end(event) + close_after


def attendance_status(participant: Participant, event: Event, now: datetime) -> str:
    now = to_naive_utc(now)
    if participant.has_attended:
        return STATUS_ATTENDED
    if now < event.starts_at:
        return STATUS_UPCOMING
    if now > event_end(event):
        return STATUS_MISSED
    return STATUS_OPEN


def redeem(
    event_id: int,
    user_id: int,
    submitted_token: str,
    now: datetime,
    close_after: timedelta | None = None,
) -> Participant:
    """Record attendance for the participant holding ``submitted_token``.

    Checks run in a fixed order: registration, window, prior attendance,
    token. The final flip is a conditional UPDATE so two concurrent
    redemptions cannot both succeed.
    """

    now = to_naive_utc(now)
    participant = Participant.query.filter_by(
        event_id=event_id, user_id=user_id
    ).one_or_none()
    if not participant:
        raise NotRegistered()
    if not is_window_open(participant.event, now, close_after):
        raise AttendanceWindowClosed()
    if participant.has_attended:
        raise AlreadyAttended()
    if normalize_token(submitted_token) != participant.token_number:
        current_app.logger.info(
            "[ATTEND] rejected token event=%s user=%s submitted=%s",
            event_id,
            user_id,
            mask_token(normalize_token(submitted_token)),
        )
        raise InvalidToken()

    result = db.session.execute(
        update(Participant)
        .where(Participant.id == participant.id, Participant.has_attended.is_(False))
        .values(has_attended=True, attended_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise AlreadyAttended()
    db.session.commit()
    current_app.logger.info(
        "[ATTEND] event=%s user=%s participant=%s", event_id, user_id, participant.id
    )
    return participant
