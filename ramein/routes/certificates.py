from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..app import db
from ..models import Participant
from ..services import certificates
from ..services.templates import get_template
from ..shared.acl import admin_required, login_required
from ..shared.errors import NotRegistered
from ..shared.requests import bad_request, json_payload, optional_int
from ..shared.serializers import certificate_to_dict
from ..shared.time import fmt_long_date

bp = Blueprint("certificates", __name__)


def _template_from_payload(payload: dict):
    template_id = optional_int(payload.get("template_id"))
    if template_id is None:
        return None
    return get_template(template_id)


@bp.get("/me/certificates")
@login_required
def my_certificates(current_user):
    items = [certificate_to_dict(c) for c in certificates.list_for_user(current_user.id)]
    return jsonify({"ok": True, "certificates": items})


@bp.get("/verify/<code>")
def verify(code: str):
    certificate = certificates.verify(code)
    participant = certificate.participant
    event = certificate.event
    return jsonify(
        {
            "ok": True,
            "certificate": {
                "certificate_number": certificate.certificate_number,
                "verification_code": certificate.verification_code,
                "issued_at": certificate.issued_at.isoformat(),
                "participant_name": participant.user.display_name,
                "event_title": event.title,
                "event_date": fmt_long_date(event.starts_at),
                "certificate_url": certificate.certificate_url,
            },
        }
    )


@bp.get("/admin/certificates")
@admin_required
def list_certificates(current_user):
    try:
        event_id = optional_int(request.args.get("event_id"))
    except ValueError:
        return bad_request("event_id must be an integer.")
    items = [certificate_to_dict(c) for c in certificates.list_for_event(event_id)]
    return jsonify({"ok": True, "certificates": items})


@bp.post("/admin/certificates/generate")
@admin_required
def generate_single(current_user):
    payload = json_payload()
    try:
        participant_id = optional_int(payload.get("participant_id"))
        template = _template_from_payload(payload)
    except (TypeError, ValueError):
        return bad_request("participant_id and template_id must be integers.")
    if participant_id is None:
        return bad_request("participant_id is required.")
    participant = db.session.get(Participant, participant_id)
    if not participant:
        raise NotRegistered("Participant not found.")
    certificate = certificates.generate_one(participant, template=template)
    return jsonify({"ok": True, "certificate": certificate_to_dict(certificate)}), 201


@bp.post("/admin/events/<int:event_id>/certificates/generate")
@admin_required
def generate_for_event(event_id: int, current_user):
    payload = json_payload()
    try:
        template = _template_from_payload(payload)
    except (TypeError, ValueError):
        return bad_request("template_id must be an integer.")
    result = certificates.generate_for_event(event_id, template=template)
    return jsonify(
        {
            "ok": True,
            "generated": [certificate_to_dict(c) for c in result.generated],
            "failures": [
                {"participant_id": participant_id, "reason": reason}
                for participant_id, reason in result.failures
            ],
        }
    )
