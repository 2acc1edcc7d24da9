"""JSON and CSV projections of lifecycle records."""

from __future__ import annotations

import csv
from datetime import datetime
from typing import IO, Iterable

from ..models import Certificate, CertificateTemplate, Event, Participant
from .time import iso

PARTICIPANT_CSV_HEADER = [
    "Participant ID",
    "Name",
    "Email",
    "Token",
    "Registered At",
    "Attended",
    "Attended At",
    "Certificate Number",
]


def event_to_dict(event: Event) -> dict:
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "location": event.location,
        "category": event.category,
        "starts_at": iso(event.starts_at),
        "ends_at": iso(event.ends_at),
        "registration_deadline": iso(event.registration_deadline),
        "max_participants": event.max_participants,
        "current_participants": event.current_participants,
        "remaining_slots": event.remaining_slots,
        "is_published": bool(event.is_published),
    }


def participant_to_dict(
    participant: Participant, status: str | None = None, include_token: bool = True
) -> dict:
    data = {
        "id": participant.id,
        "event_id": participant.event_id,
        "user_id": participant.user_id,
        "has_attended": bool(participant.has_attended),
        "attended_at": iso(participant.attended_at),
        "certificate_id": participant.certificate_id,
        "registered_at": iso(participant.registered_at),
    }
    if include_token:
        data["token_number"] = participant.token_number
    if status is not None:
        data["status"] = status
    return data


def certificate_to_dict(certificate: Certificate) -> dict:
    return {
        "id": certificate.id,
        "participant_id": certificate.participant_id,
        "event_id": certificate.event_id,
        "template_id": certificate.template_id,
        "certificate_number": certificate.certificate_number,
        "verification_code": certificate.verification_code,
        "certificate_url": certificate.certificate_url,
        "issued_at": iso(certificate.issued_at),
    }


def template_to_dict(template: CertificateTemplate) -> dict:
    return {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "background_image": template.background_image,
        "settings": template.settings,
        "placeholders": template.placeholders,
        "is_default": bool(template.is_default),
        "is_active": bool(template.is_active),
    }


def _csv_dt(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else ""


def write_participants_csv(participants: Iterable[Participant], stream: IO[str]) -> int:
    writer = csv.writer(stream)
    writer.writerow(PARTICIPANT_CSV_HEADER)
    count = 0
    for participant in participants:
        user = participant.user
        certificate = participant.certificate
        writer.writerow(
            [
                participant.id,
                user.display_name if user else "",
                user.email if user else "",
                participant.token_number,
                _csv_dt(participant.registered_at),
                "yes" if participant.has_attended else "no",
                _csv_dt(participant.attended_at),
                certificate.certificate_number if certificate else "",
            ]
        )
        count += 1
    return count
