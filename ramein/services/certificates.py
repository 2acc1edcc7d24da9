from __future__ import annotations

import os
from datetime import datetime
from typing import Iterable, NamedTuple

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..app import db
from ..models import Certificate, CertificateTemplate, Event, Participant
from ..shared.constants import MAX_TOKEN_ATTEMPTS
from ..shared.coordinates import clamp_to_design, sanitize_settings
from ..shared.errors import (
    CertificateAlreadyExists,
    CertificateNotFound,
    LifecycleError,
    NotEligible,
    RenderError,
    TemplateInactive,
    TokenGenerationError,
)
from ..shared.identifiers import (
    generate_certificate_number,
    generate_verification_code,
    normalize_verification_code,
)
from ..shared.renderer import (
    RenderPayload,
    Renderer,
    ResolvedPlaceholder,
    get_renderer,
)
from ..shared.storage import certificate_file_path
from ..shared.time import fmt_long_date, now_utc, to_naive_utc
from .events import get_event
from .registration import list_participants
from .templates import get_default_template


class BulkResult(NamedTuple):
    generated: list[Certificate]
    failures: list[tuple[int, str]]


def is_eligible(participant: Participant) -> bool:
    return bool(participant.has_attended) and participant.certificate_id is None


def build_field_bindings(
    participant: Participant, event: Event, certificate: Certificate
) -> dict[str, str]:
    return {
        "participant_name": participant.user.display_name,
        "event_name": event.title or "",
        "event_date": fmt_long_date(event.starts_at),
        "certificate_number": certificate.certificate_number,
        "category": event.category or "",
        "location": event.location or "",
    }


def resolve_template_payload(
    template: CertificateTemplate, bindings: dict[str, str]
) -> list[ResolvedPlaceholder]:
    design = template.design_size
    resolved: list[ResolvedPlaceholder] = []
    for placeholder in template.placeholder_list:
        placeholder = clamp_to_design(placeholder, design)
        resolved.append(
            ResolvedPlaceholder(
                key=placeholder.key,
                text=bindings.get(placeholder.key, ""),
                x=placeholder.x,
                y=placeholder.y,
                font_size=placeholder.font_size,
                font_family=placeholder.font_family,
                color=placeholder.color,
                align=placeholder.align,
                max_width=placeholder.max_width,
            )
        )
    return resolved


def _integrity_details(error: IntegrityError) -> str:
    details = ""
    if getattr(error, "orig", None) is not None:
        details = str(error.orig)
    if not details:
        details = str(error)
    return details.lower()


def _is_participant_conflict(error: IntegrityError) -> bool:
    details = _integrity_details(error)
    return "uix_certificate_participant" in details or "participant_id" in details


def _is_identifier_conflict(error: IntegrityError) -> bool:
    details = _integrity_details(error)
    return any(
        marker in details
        for marker in (
            "uix_certificate_number",
            "uix_certificate_verification",
            "certificate_number",
            "verification_code",
        )
    )


def _identifier_taken(column, value: str) -> bool:
    return db.session.query(Certificate.id).filter(column == value).first() is not None


def _mint_identifiers(issued_at: datetime) -> tuple[str, str]:
    number = code = None
    for _ in range(MAX_TOKEN_ATTEMPTS):
        candidate = generate_certificate_number(issued_at)
        if not _identifier_taken(Certificate.certificate_number, candidate):
            number = candidate
            break
    for _ in range(MAX_TOKEN_ATTEMPTS):
        candidate = generate_verification_code()
        if not _identifier_taken(Certificate.verification_code, candidate):
            code = candidate
            break
    if not number or not code:
        raise TokenGenerationError("Could not allocate a unique certificate number.")
    return number, code


def _resolve_template(template: CertificateTemplate | None) -> CertificateTemplate:
    if template is None:
        template = get_default_template()
    if not template.is_active:
        raise TemplateInactive()
    return template


def _claim(participant: Participant, template: CertificateTemplate, issued_at: datetime) -> Certificate:
    """Insert the certificate row and link it to the participant exactly once."""

    for _ in range(MAX_TOKEN_ATTEMPTS):
        number, code = _mint_identifiers(issued_at)
        certificate = Certificate(
            participant_id=participant.id,
            event_id=participant.event_id,
            template_id=template.id,
            certificate_number=number,
            verification_code=code,
            certificate_url=None,
            issued_at=issued_at,
        )
        db.session.add(certificate)
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            if _is_participant_conflict(exc):
                raise CertificateAlreadyExists()
            if not _is_identifier_conflict(exc):
                raise
            continue
        claimed = db.session.execute(
            update(Participant)
            .where(
                Participant.id == certificate.participant_id,
                Participant.certificate_id.is_(None),
                Participant.has_attended.is_(True),
            )
            .values(certificate_id=certificate.id)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            db.session.rollback()
            raise CertificateAlreadyExists()
        return certificate
    raise TokenGenerationError("Could not allocate a unique certificate number.")


def generate_one(
    participant: Participant,
    template: CertificateTemplate | None = None,
    renderer: Renderer | None = None,
    now: datetime | None = None,
) -> Certificate:
    """Issue and render the certificate for one attended participant.

    Issuance is all-or-nothing: if rendering fails the certificate row and
    the participant link are rolled back together.
    """

    if participant.certificate_id is not None:
        raise CertificateAlreadyExists()
    if not participant.has_attended:
        raise NotEligible("Participant has not attended the event.")
    template = _resolve_template(template)
    renderer = renderer or get_renderer()
    issued_at = to_naive_utc(now or now_utc())

    participant_id = participant.id
    event = participant.event
    certificate = _claim(participant, template, issued_at)

    settings = sanitize_settings(template.settings)
    bindings = build_field_bindings(participant, event, certificate)
    payload = RenderPayload(
        event_id=event.id,
        certificate_number=certificate.certificate_number,
        issued_at=issued_at,
        design_size=template.design_size,
        background_color=settings["backgroundColor"],
        background_image=template.background_image,
        items=tuple(resolve_template_payload(template, bindings)),
    )
    try:
        url = renderer.render(payload)
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception(
            "[CERT-FAIL] participant=%s event=%s", participant_id, event.id
        )
        raise RenderError(f"Certificate rendering failed: {exc}")

    certificate.certificate_url = url
    db.session.commit()
    current_app.logger.info(
        "[CERT] participant=%s event=%s number=%s url=%s",
        participant_id,
        certificate.event_id,
        certificate.certificate_number,
        certificate.certificate_url,
    )
    return certificate


def generate_bulk(
    participants: Iterable[Participant],
    template: CertificateTemplate | None = None,
    renderer: Renderer | None = None,
    now: datetime | None = None,
) -> BulkResult:
    """Attempt every participant independently; failures are collected, not raised."""

    template = _resolve_template(template)
    renderer = renderer or get_renderer()
    generated: list[Certificate] = []
    failures: list[tuple[int, str]] = []
    for participant in list(participants):
        participant_id = participant.id
        try:
            certificate = generate_one(
                participant, template=template, renderer=renderer, now=now
            )
        except LifecycleError as exc:
            db.session.rollback()
            failures.append((participant_id, exc.code))
            current_app.logger.info(
                "[CERT-SKIP] participant=%s reason=%s", participant_id, exc.code
            )
            continue
        except Exception:
            db.session.rollback()
            current_app.logger.exception("[CERT-FAIL] participant=%s", participant_id)
            failures.append((participant_id, "error"))
            continue
        generated.append(certificate)
    current_app.logger.info(
        "[CERT-BULK] generated=%s failed=%s", len(generated), len(failures)
    )
    return BulkResult(generated, failures)


def generate_for_event(
    event_id: int,
    template: CertificateTemplate | None = None,
    renderer: Renderer | None = None,
    now: datetime | None = None,
) -> BulkResult:
    participants = list_participants(event_id)
    return generate_bulk(participants, template=template, renderer=renderer, now=now)


def verify(verification_code: str) -> Certificate:
    code = normalize_verification_code(verification_code)
    certificate = (
        Certificate.query.filter_by(verification_code=code).one_or_none() if code else None
    )
    if not certificate:
        raise CertificateNotFound()
    return certificate


def get_certificate(certificate_id: int) -> Certificate:
    certificate = db.session.get(Certificate, certificate_id)
    if not certificate:
        raise CertificateNotFound()
    return certificate


def list_for_user(user_id: int) -> list[Certificate]:
    return (
        Certificate.query.join(Participant, Certificate.participant_id == Participant.id)
        .filter(Participant.user_id == user_id)
        .order_by(Certificate.issued_at, Certificate.id)
        .all()
    )


def list_for_event(event_id: int | None = None) -> list[Certificate]:
    """Issued certificates, newest first; all events when ``event_id`` is None."""

    query = Certificate.query
    if event_id is not None:
        get_event(event_id)
        query = query.filter(Certificate.event_id == event_id)
    return query.order_by(Certificate.issued_at.desc(), Certificate.id.desc()).all()


def find_orphan_files(site_root: str) -> list[str]:
    """PDFs under ``site_root/certificates`` that no certificate row points at."""

    cert_root = os.path.join(site_root, "certificates")
    if not os.path.isdir(cert_root):
        return []
    referenced = {
        certificate_file_path(site_root, url)
        for (url,) in db.session.query(Certificate.certificate_url).filter(
            Certificate.certificate_url.isnot(None)
        )
    }
    orphans: list[str] = []
    for dirpath, _dirnames, filenames in os.walk(cert_root):
        for filename in filenames:
            if not filename.lower().endswith(".pdf"):
                continue
            path = os.path.abspath(os.path.join(dirpath, filename))
            if path not in referenced:
                orphans.append(path)
    return sorted(orphans)
