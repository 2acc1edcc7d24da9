from __future__ import annotations

from flask import current_app

from .. import emailer
from ..models import Participant
from ..shared.mail_utils import mask_token
from ..shared.time import fmt_dt


def build_token_message(participant: Participant) -> tuple[str, str]:
    event = participant.event
    user = participant.user
    subject = f"Your attendance token for {event.title}"
    lines = [
        f"Hi {user.display_name},",
        "",
        f"You are registered for {event.title}.",
        f"Starts: {fmt_dt(event.starts_at)} UTC",
    ]
    if event.location:
        lines.append(f"Location: {event.location}")
    base_url = (current_app.config.get("PUBLIC_BASE_URL") or "").rstrip("/")
    if base_url:
        lines.append(f"Event page: {base_url}/events/{event.id}")
    lines += [
        "",
        f"Attendance token: {participant.token_number}",
        "Enter this token on the event page once the event has started to record",
        "your attendance. Attendance is required for the certificate.",
    ]
    return subject, "\n".join(lines)


def send_registration_token(participant: Participant) -> bool:
    """Send the token e-mail; failures are logged and never propagate."""

    try:
        subject, body = build_token_message(participant)
        result = emailer.send(participant.user.email, subject, body)
    except Exception:
        current_app.logger.exception(
            "[MAIL-FAIL] participant=%s token=%s",
            participant.id,
            mask_token(participant.token_number),
        )
        return False
    if not result.get("ok"):
        current_app.logger.warning(
            "[MAIL-FAIL] participant=%s detail=%s", participant.id, result.get("detail")
        )
        return False
    return True
