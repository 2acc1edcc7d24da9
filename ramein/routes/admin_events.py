from __future__ import annotations

import io

from flask import Blueprint, Response, jsonify, request

from ..services import events, registration
from ..shared.acl import admin_required
from ..shared.errors import EventValidationError
from ..shared.requests import json_payload, optional_boolean, optional_int
from ..shared.serializers import (
    event_to_dict,
    participant_to_dict,
    write_participants_csv,
)
from ..shared.time import now_utc, parse_datetime

bp = Blueprint("admin_events", __name__, url_prefix="/admin/events")

_TEXT_FIELDS = ("title", "description", "location", "category")
_DATETIME_FIELDS = {
    "starts_at": ("date", "time"),
    "ends_at": ("end_date", "end_time"),
    "registration_deadline": (None, None),
}


def _event_fields(payload: dict) -> dict:
    """Pick event fields out of a request payload.

    Start and end accept either an ISO instant (``starts_at``) or the split
    ``date`` + ``time`` pair used by the admin form.
    """

    fields: dict = {}
    for key in _TEXT_FIELDS:
        if key in payload:
            fields[key] = payload[key]
    try:
        for key, (date_key, time_key) in _DATETIME_FIELDS.items():
            if key in payload:
                fields[key] = parse_datetime(payload[key])
            elif date_key and date_key in payload:
                fields[key] = parse_datetime(payload[date_key], payload.get(time_key))
        if "max_participants" in payload:
            fields["max_participants"] = optional_int(payload["max_participants"])
        if "is_published" in payload:
            fields["is_published"] = optional_boolean(payload["is_published"])
    except (TypeError, ValueError) as exc:
        raise EventValidationError(f"Invalid event field: {exc}")
    if fields.get("is_published") is None:
        fields.pop("is_published", None)
    return fields


@bp.get("")
@admin_required
def list_events(current_user):
    now = now_utc()
    items = []
    for event in events.list_events():
        data = event_to_dict(event)
        data["phase"] = events.event_phase(event, now)
        items.append(data)
    return jsonify({"ok": True, "events": items})


@bp.post("")
@admin_required
def create_event(current_user):
    event = events.create_event(**_event_fields(json_payload()))
    return jsonify({"ok": True, "event": event_to_dict(event)}), 201


@bp.get("/<int:event_id>")
@admin_required
def show_event(event_id: int, current_user):
    event = events.get_event(event_id)
    data = event_to_dict(event)
    data["phase"] = events.event_phase(event, now_utc())
    return jsonify({"ok": True, "event": data})


@bp.route("/<int:event_id>", methods=["PUT", "PATCH"])
@admin_required
def update_event(event_id: int, current_user):
    event = events.get_event(event_id)
    event = events.update_event(event, **_event_fields(json_payload()))
    return jsonify({"ok": True, "event": event_to_dict(event)})


@bp.delete("/<int:event_id>")
@admin_required
def delete_event(event_id: int, current_user):
    events.delete_event(events.get_event(event_id))
    return jsonify({"ok": True})


def _participant_filters() -> tuple[bool | None, bool | None]:
    try:
        attended = optional_boolean(request.args.get("attended"))
        has_certificate = optional_boolean(request.args.get("has_certificate"))
    except ValueError:
        raise EventValidationError("attended and has_certificate must be true or false.")
    return attended, has_certificate


@bp.get("/<int:event_id>/participants")
@admin_required
def list_participants(event_id: int, current_user):
    attended, has_certificate = _participant_filters()
    participants = registration.list_participants(
        event_id, attended=attended, has_certificate=has_certificate
    )
    items = []
    for participant in participants:
        data = participant_to_dict(participant)
        data["name"] = participant.user.display_name
        data["email"] = participant.user.email
        items.append(data)
    return jsonify({"ok": True, "participants": items})


@bp.get("/<int:event_id>/participants/export.csv")
@admin_required
def export_participants(event_id: int, current_user):
    attended, has_certificate = _participant_filters()
    participants = registration.list_participants(
        event_id, attended=attended, has_certificate=has_certificate
    )
    output = io.StringIO()
    write_participants_csv(participants, output)
    resp = Response(output.getvalue(), mimetype="text/csv")
    resp.headers["Content-Disposition"] = (
        f"attachment; filename=event-{event_id}-participants.csv"
    )
    return resp
