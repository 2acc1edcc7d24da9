import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest

from ramein.app import create_app, db
from ramein.models import Event, Participant, User
from ramein.services import attendance, registration
from ramein.shared.errors import AlreadyAttended, EventFull

BEFORE = datetime(2025, 1, 10, 12, 0)
START = datetime(2025, 1, 15, 9, 0)


@pytest.fixture
def file_app(tmp_path):
    application = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'ramein.db'}",
            "SQLALCHEMY_ENGINE_OPTIONS": {
                "connect_args": {"check_same_thread": False, "timeout": 30}
            },
            "SITE_ROOT": str(tmp_path),
            "SMTP_HOST": None,
        }
    )
    with application.app_context():
        db.create_all()
    yield application
    with application.app_context():
        db.drop_all()
        db.engine.dispose()


def _seed(app, users, max_participants):
    with app.app_context():
        event = Event(
            title="Concurrent Workshop",
            starts_at=START,
            ends_at=datetime(2025, 1, 15, 12, 0),
            max_participants=max_participants,
            current_participants=0,
            is_published=True,
        )
        people = [
            User(email=f"user{n}@example.com", full_name=f"User {n}")
            for n in range(users)
        ]
        db.session.add(event)
        db.session.add_all(people)
        db.session.commit()
        return event.id, [user.id for user in people]


def _run_concurrently(app, fn, args):
    barrier = threading.Barrier(len(args))

    def worker(arg):
        with app.app_context():
            barrier.wait()
            try:
                fn(arg)
                return "ok"
            except (EventFull, AlreadyAttended) as exc:
                return exc.code

    with ThreadPoolExecutor(max_workers=len(args)) as pool:
        return list(pool.map(worker, args))


def test_concurrent_registrations_fill_exactly_capacity(file_app):
    event_id, user_ids = _seed(file_app, users=12, max_participants=3)

    outcomes = _run_concurrently(
        file_app,
        lambda user_id: registration.register(event_id, user_id, BEFORE, notify=False),
        user_ids,
    )

    assert outcomes.count("ok") == 3
    assert outcomes.count("event_full") == 9
    with file_app.app_context():
        assert db.session.get(Event, event_id).current_participants == 3
        assert Participant.query.filter_by(event_id=event_id).count() == 3
        tokens = {p.token_number for p in Participant.query.all()}
        assert len(tokens) == 3


def test_concurrent_redemptions_flip_attendance_once(file_app):
    event_id, (user_id,) = _seed(file_app, users=1, max_participants=None)
    with file_app.app_context():
        token = registration.register(event_id, user_id, BEFORE, notify=False).token_number

    outcomes = _run_concurrently(
        file_app,
        lambda _: attendance.redeem(event_id, user_id, token, START),
        list(range(6)),
    )

    assert outcomes.count("ok") == 1
    assert outcomes.count("already_attended") == 5
    with file_app.app_context():
        participant = Participant.query.filter_by(event_id=event_id).one()
        assert participant.has_attended is True
        assert participant.attended_at == START
