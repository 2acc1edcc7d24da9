from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from ..app import attendance_close_after
from ..services import attendance, events, registration
from ..shared.acl import login_required
from ..shared.errors import EventNotFound
from ..shared.requests import bad_request, json_payload
from ..shared.serializers import event_to_dict, participant_to_dict
from ..shared.time import now_utc

bp = Blueprint("participants", __name__)


@bp.get("/events")
def list_public_events():
    now = now_utc()
    items = []
    for event in events.list_events(published_only=True):
        data = event_to_dict(event)
        data["can_register"] = events.can_register(event, now)
        data["phase"] = events.event_phase(event, now)
        items.append(data)
    return jsonify({"ok": True, "events": items})


@bp.get("/events/<int:event_id>")
def show_public_event(event_id: int):
    event = events.get_event(event_id)
    if not event.is_published:
        raise EventNotFound()
    now = now_utc()
    data = event_to_dict(event)
    data["can_register"] = events.can_register(event, now)
    data["phase"] = events.event_phase(event, now)
    return jsonify({"ok": True, "event": data})


@bp.post("/events/<int:event_id>/register")
@login_required
def register(event_id: int, current_user):
    participant = registration.register(event_id, current_user.id, now_utc())
    return jsonify({"ok": True, "participant": participant_to_dict(participant)}), 201


@bp.delete("/events/<int:event_id>/register")
@login_required
def unregister(event_id: int, current_user):
    registration.unregister(event_id, current_user.id, now_utc())
    return jsonify({"ok": True})


@bp.post("/events/<int:event_id>/attendance")
@login_required
def submit_attendance(event_id: int, current_user):
    payload = json_payload()
    token = payload.get("token") if payload else None
    if token is None or not str(token).strip():
        return bad_request("token is required.")
    participant = attendance.redeem(
        event_id,
        current_user.id,
        str(token),
        now_utc(),
        close_after=attendance_close_after(current_app),
    )
    return jsonify(
        {
            "ok": True,
            "participant": participant_to_dict(
                participant, status=attendance.STATUS_ATTENDED
            ),
        }
    )


@bp.get("/me/participations")
@login_required
def my_participations(current_user):
    now = now_utc()
    items = []
    for participant in registration.list_for_user(current_user.id):
        event = participant.event
        status = attendance.attendance_status(participant, event, now)
        data = participant_to_dict(participant, status=status)
        data["event"] = event_to_dict(event)
        data["attendance_open"] = attendance.is_window_open(
            event, now, attendance_close_after(current_app)
        )
        items.append(data)
    return jsonify({"ok": True, "participations": items})
