import logging
from datetime import datetime

from ramein import emailer
from ramein.services import registration
from ramein.services.notifications import build_token_message

BEFORE = datetime(2025, 1, 10, 12, 0)


def test_token_message_contains_token_and_event(make_event, make_user):
    event = make_event(title="Data Bootcamp", location="Surabaya")
    user = make_user(full_name="Siti")
    participant = registration.register(event.id, user.id, BEFORE, notify=False)
    subject, body = build_token_message(participant)
    assert subject == "Your attendance token for Data Bootcamp"
    assert "Hi Siti," in body
    assert participant.token_number in body
    assert "Location: Surabaya" in body
    assert "Event page" not in body


def test_token_message_links_event_page(app, make_event, make_user):
    app.config["PUBLIC_BASE_URL"] = "https://events.example.com/"
    event = make_event()
    participant = registration.register(event.id, make_user().id, BEFORE, notify=False)
    _, body = build_token_message(participant)
    assert f"Event page: https://events.example.com/events/{event.id}" in body


def test_registration_sends_to_user_email(make_event, make_user, monkeypatch):
    sent = {}

    def fake_send(to, subject, body, html=None):
        sent["to"] = to
        sent["body"] = body
        return {"ok": True, "detail": "sent"}

    monkeypatch.setattr(emailer, "send", fake_send)
    event = make_event()
    user = make_user(email="learner@example.com")
    participant = registration.register(event.id, user.id, BEFORE)
    assert sent["to"] == "learner@example.com"
    assert participant.token_number in sent["body"]


def test_emailer_stub_mode_without_smtp(app, caplog):
    caplog.set_level(logging.INFO)
    result = emailer.send("someone@example.com", "Hello", "Body")
    assert result == {"ok": False, "detail": "stub: missing config"}
    assert any("result=stub" in message for message in caplog.messages)


def test_emailer_uses_app_config(app, monkeypatch):
    calls = {}

    class FakeSMTP:
        def __init__(self, host, port):
            calls["server"] = (host, port)

        def starttls(self):
            calls["tls"] = True

        def login(self, user, password):
            calls["login"] = (user, password)

        def sendmail(self, from_addr, envelope, message):
            calls["sendmail"] = (from_addr, envelope)

        def quit(self):
            calls["quit"] = True

    monkeypatch.setattr(emailer.smtplib, "SMTP", FakeSMTP)
    app.config.update(
        SMTP_HOST="smtp.example.com",
        SMTP_PORT="587",
        SMTP_USER="mailer",
        SMTP_PASS="secret",
        SMTP_FROM_DEFAULT="events@example.com",
        SMTP_FROM_NAME="Ramein",
    )
    result = emailer.send("a@x.com, a@x.com", "Token", "Body")
    assert result == {"ok": True, "detail": "sent"}
    assert calls["server"] == ("smtp.example.com", 587)
    assert calls["tls"] is True
    assert calls["login"] == ("mailer", "secret")
    assert calls["sendmail"] == ("events@example.com", ["a@x.com"])
