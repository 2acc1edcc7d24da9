from datetime import datetime, timedelta

import pytest

from ramein.app import db
from ramein.models import Certificate, Event, Participant
from ramein.services import attendance, certificates, events, registration
from ramein.shared.errors import (
    AlreadyAttended,
    AttendanceWindowClosed,
    CertificateAlreadyExists,
    EventFull,
)

START = datetime(2025, 1, 15, 9, 0)
BEFORE = START - timedelta(days=5)


def test_single_slot_event_lifecycle(make_user, make_template, renderer):
    make_template()
    event = events.create_event(
        title="Digital Marketing Workshop",
        starts_at=START,
        ends_at=START + timedelta(hours=3),
        max_participants=1,
    )
    alice, bob = make_user(full_name="Alice"), make_user(full_name="Bob")

    participant = registration.register(event.id, alice.id, BEFORE, notify=False)
    with pytest.raises(EventFull):
        registration.register(event.id, bob.id, BEFORE, notify=False)
    assert db.session.get(Event, event.id).current_participants == 1

    token = participant.token_number
    with pytest.raises(AttendanceWindowClosed):
        attendance.redeem(event.id, alice.id, token, START - timedelta(minutes=1))
    attended = attendance.redeem(event.id, alice.id, token, START)
    assert attended.has_attended is True
    assert attended.attended_at == START
    with pytest.raises(AlreadyAttended):
        attendance.redeem(event.id, alice.id, token, START + timedelta(minutes=5))

    participant = db.session.get(Participant, participant.id)
    certificate = certificates.generate_one(participant, renderer=renderer)
    with pytest.raises(CertificateAlreadyExists):
        certificates.generate_one(participant, renderer=renderer)
    assert Certificate.query.count() == 1
    assert certificates.verify(certificate.verification_code).id == certificate.id


def test_bulk_generation_with_half_absent(make_event, make_user, make_template, renderer):
    make_template()
    event = make_event(max_participants=4)
    users = [make_user() for _ in range(4)]
    participants = [
        registration.register(event.id, user.id, BEFORE, notify=False) for user in users
    ]
    for user, participant in list(zip(users, participants))[:2]:
        attendance.redeem(event.id, user.id, participant.token_number, START)

    result = certificates.generate_for_event(event.id, renderer=renderer)
    assert len(result.generated) == 2
    assert {reason for _, reason in result.failures} == {"not_eligible"}
    assert sorted(pid for pid, _ in result.failures) == sorted(
        p.id for p in participants[2:]
    )
    assert Certificate.query.count() == 2
