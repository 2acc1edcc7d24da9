from datetime import datetime, timezone

import pytest

from conftest import RecordingRenderer, login_user
from ramein.app import db
from ramein.models import Participant
from ramein.routes import participants as participant_routes
from ramein.services import certificates

BEFORE = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)
DURING = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def clock(monkeypatch):
    state = {"now": BEFORE}
    monkeypatch.setattr(participant_routes, "now_utc", lambda: state["now"])
    return state


def test_routes_require_login(client, make_event):
    event = make_event()
    resp = client.post(f"/events/{event.id}/register")
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "login_required"


def test_public_event_listing(client, make_event, clock):
    make_event(title="Visible")
    make_event(title="Hidden", is_published=False)
    resp = client.get("/events")
    data = resp.get_json()
    assert resp.status_code == 200
    assert [e["title"] for e in data["events"]] == ["Visible"]
    assert data["events"][0]["can_register"] is True
    assert data["events"][0]["phase"] == "upcoming"


def test_register_and_duplicate(client, make_event, make_user, clock):
    event = make_event()
    user = make_user()
    login_user(client, user.id)
    resp = client.post(f"/events/{event.id}/register")
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["ok"] is True
    assert len(body["participant"]["token_number"]) == 10

    resp = client.post(f"/events/{event.id}/register")
    assert resp.status_code == 409
    assert resp.get_json() == {
        "ok": False,
        "error": "already_registered",
        "message": "You are already registered for this event.",
    }


def test_register_full_event(client, make_event, make_user, clock):
    event = make_event(max_participants=1)
    first, second = make_user(), make_user()
    login_user(client, first.id)
    assert client.post(f"/events/{event.id}/register").status_code == 201
    login_user(client, second.id)
    resp = client.post(f"/events/{event.id}/register")
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "event_full"


def test_unregister(client, make_event, make_user, clock):
    event = make_event()
    user = make_user()
    login_user(client, user.id)
    client.post(f"/events/{event.id}/register")
    resp = client.delete(f"/events/{event.id}/register")
    assert resp.status_code == 200
    assert Participant.query.count() == 0
    resp = client.delete(f"/events/{event.id}/register")
    assert resp.status_code == 404


def test_attendance_flow(client, make_event, make_user, clock):
    event = make_event()
    user = make_user()
    login_user(client, user.id)
    token = client.post(f"/events/{event.id}/register").get_json()["participant"][
        "token_number"
    ]

    resp = client.post(f"/events/{event.id}/attendance", json={"token": token})
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "attendance_window_closed"

    clock["now"] = DURING
    resp = client.post(f"/events/{event.id}/attendance", json={})
    assert resp.status_code == 400

    resp = client.post(f"/events/{event.id}/attendance", json={"token": "999"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "invalid_token"

    resp = client.post(f"/events/{event.id}/attendance", json={"token": token})
    assert resp.status_code == 200
    assert resp.get_json()["participant"]["has_attended"] is True

    resp = client.post(f"/events/{event.id}/attendance", json={"token": token})
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "already_attended"


def test_attendance_close_policy_from_config(app, client, make_event, make_user, clock):
    app.config["ATTENDANCE_CLOSE_AFTER_MINUTES"] = 30
    event = make_event()
    user = make_user()
    login_user(client, user.id)
    token = client.post(f"/events/{event.id}/register").get_json()["participant"][
        "token_number"
    ]
    clock["now"] = datetime(2025, 1, 15, 12, 31, tzinfo=timezone.utc)
    resp = client.post(f"/events/{event.id}/attendance", json={"token": token})
    assert resp.status_code == 403


def test_my_participations_status(client, make_event, make_user, clock):
    event = make_event()
    user = make_user()
    login_user(client, user.id)
    client.post(f"/events/{event.id}/register")
    clock["now"] = datetime(2025, 1, 16, tzinfo=timezone.utc)
    resp = client.get("/me/participations")
    items = resp.get_json()["participations"]
    assert len(items) == 1
    assert items[0]["status"] == "missed"
    assert items[0]["event"]["title"] == "Digital Marketing Workshop"
    assert items[0]["attendance_open"] is True


def test_my_certificates_and_verify(client, make_event, make_user, make_template, clock):
    event = make_event()
    make_template()
    user = make_user(full_name="Ada")
    login_user(client, user.id)
    token = client.post(f"/events/{event.id}/register").get_json()["participant"][
        "token_number"
    ]
    clock["now"] = DURING
    client.post(f"/events/{event.id}/attendance", json={"token": token})
    participant = Participant.query.one()
    certificate = certificates.generate_one(participant, renderer=RecordingRenderer())

    resp = client.get("/me/certificates")
    assert [c["certificate_number"] for c in resp.get_json()["certificates"]] == [
        certificate.certificate_number
    ]

    resp = client.get(f"/verify/{certificate.verification_code}")
    data = resp.get_json()["certificate"]
    assert data["participant_name"] == "Ada"
    assert data["event_date"] == "15 January 2025"

    assert client.get("/verify/UNKNOWN").status_code == 404


def test_lifecycle_error_logs_and_rolls_back(client, make_event, make_user, clock, caplog):
    caplog.set_level("INFO")
    event = make_event(max_participants=1)
    first, second = make_user(), make_user()
    login_user(client, first.id)
    client.post(f"/events/{event.id}/register")
    login_user(client, second.id)
    client.post(f"/events/{event.id}/register")
    assert "[LIFECYCLE-ERROR] code=event_full" in caplog.text
    assert db.session.query(Participant).count() == 1
