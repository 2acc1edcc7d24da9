from datetime import datetime

import pytest

from conftest import RecordingRenderer
from manage import (
    export_participants,
    generate_certificates,
    purge_orphan_certs,
    set_default_template,
)
from ramein.services import attendance, certificates, registration

BEFORE = datetime(2025, 1, 10, 12, 0)
START = datetime(2025, 1, 15, 9, 0)


@pytest.fixture
def runner(app):
    for command in (
        purge_orphan_certs,
        generate_certificates,
        set_default_template,
        export_participants,
    ):
        app.cli.add_command(command)
    app.extensions["ramein_renderer"] = RecordingRenderer()
    return app.test_cli_runner()


def _attendee(event, user, attend=True):
    participant = registration.register(event.id, user.id, BEFORE, notify=False)
    if attend:
        attendance.redeem(event.id, user.id, participant.token_number, START)
    return participant


def test_purge_orphan_certs_cli(runner, tmp_path, make_event, make_user, make_template):
    event = make_event()
    make_template()
    participant = _attendee(event, make_user())
    certificate = certificates.generate_one(participant)
    kept = tmp_path / certificate.certificate_url.lstrip("/")
    kept.parent.mkdir(parents=True)
    kept.write_bytes(b"%PDF")
    orphan = kept.parent / "CERT-2024-DEADBEEF.pdf"
    orphan.write_bytes(b"%PDF")

    res = runner.invoke(args=["purge_orphan_certs", "--dry-run"])
    assert "CERT-2024-DEADBEEF.pdf" in res.output
    assert orphan.exists()

    res = runner.invoke(args=["purge_orphan_certs"])
    assert res.exit_code == 0
    assert "orphans=1 deleted=1 errors=0" in res.output
    assert not orphan.exists()
    assert kept.exists()


def test_purge_without_certificate_dir(runner):
    res = runner.invoke(args=["purge_orphan_certs"])
    assert "Certificate directory missing" in res.output


def test_generate_certificates_cli(runner, make_event, make_user, make_template):
    event = make_event()
    make_template()
    _attendee(event, make_user())
    absent = _attendee(event, make_user(), attend=False)

    res = runner.invoke(args=["generate_certificates", "--event", str(event.id)])
    assert res.exit_code == 0
    assert "generated=1 failed=1" in res.output
    assert f"skipped participant={absent.id} reason=not_eligible" in res.output


def test_generate_certificates_cli_unknown_event(runner, make_template):
    make_template()
    res = runner.invoke(args=["generate_certificates", "--event", "404"])
    assert res.exit_code == 1
    assert "event_not_found" in res.output


def test_set_default_template_cli(runner, make_template):
    make_template(name="First")
    second = make_template(name="Second", is_default=False)
    res = runner.invoke(args=["set_default_template", "--template", str(second.id)])
    assert res.exit_code == 0
    assert f"default template: {second.id} Second" in res.output

    inactive = make_template(name="Off", is_default=False, is_active=False)
    res = runner.invoke(args=["set_default_template", "--template", str(inactive.id)])
    assert res.exit_code == 1
    assert "template_inactive" in res.output


def test_export_participants_cli(runner, make_event, make_user):
    event = make_event()
    _attendee(event, make_user(full_name="Present"))
    _attendee(event, make_user(full_name="Absent"), attend=False)

    res = runner.invoke(
        args=["export_participants", "--event", str(event.id), "--attended"]
    )
    assert res.exit_code == 0
    assert "Participant ID,Name" in res.output
    assert "Present" in res.output
    assert "Absent" not in res.output
    assert "exported=1" in res.output
