import os
import pathlib
import sys
from datetime import datetime

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from ramein.app import create_app, db
from ramein.models import CertificateTemplate, Event, User


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


@pytest.fixture
def app(tmp_path):
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    application = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SITE_ROOT": str(tmp_path),
            "SMTP_HOST": None,
            "ATTENDANCE_CLOSE_AFTER_MINUTES": None,
        }
    )
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


def login_user(client, user_id):
    with client.session_transaction() as sess:
        sess.clear()
        sess["user_id"] = user_id


class RecordingRenderer:
    """Stands in for the PDF renderer and remembers every payload."""

    def __init__(self):
        self.payloads = []

    def render(self, payload):
        self.payloads.append(payload)
        return f"/certificates/test/{payload.event_id}/{payload.certificate_number}.pdf"


class FailingRenderer:
    def render(self, payload):
        raise RuntimeError("disk full")


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(full_name=None, is_admin=False, email=None):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            full_name=full_name or f"User {counter['n']}",
            is_admin=is_admin,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_event(app):
    def _make(**overrides):
        values = {
            "title": "Digital Marketing Workshop",
            "location": "Jakarta",
            "category": "Workshop",
            "starts_at": datetime(2025, 1, 15, 9, 0),
            "ends_at": datetime(2025, 1, 15, 12, 0),
            "max_participants": None,
            "current_participants": 0,
            "is_published": True,
        }
        values.update(overrides)
        event = Event(**values)
        db.session.add(event)
        db.session.commit()
        return event

    return _make


TEMPLATE_PLACEHOLDERS = [
    {"key": "participant_name", "label": "Name", "x": 600, "y": 400, "fontSize": 36},
    {"key": "event_name", "label": "Event", "x": 600, "y": 500, "fontSize": 24},
    {"key": "certificate_number", "label": "Number", "x": 600, "y": 800, "fontSize": 12},
]


@pytest.fixture
def make_template(app):
    def _make(name="Default", is_default=True, is_active=True, placeholders=None):
        template = CertificateTemplate(
            name=name,
            settings={
                "width": 1200,
                "height": 900,
                "orientation": "landscape",
                "backgroundColor": "#ffffff",
            },
            placeholders=placeholders or [dict(p) for p in TEMPLATE_PLACEHOLDERS],
            is_default=is_default,
            is_active=is_active,
        )
        db.session.add(template)
        db.session.commit()
        return template

    return _make
