import pytest

from ramein.app import db
from ramein.models import CertificateTemplate
from ramein.services import templates
from ramein.shared.errors import (
    TemplateInactive,
    TemplateInUse,
    TemplateNotFound,
    TemplateValidationError,
)

SETTINGS = {"width": 1200, "height": 900, "orientation": "landscape"}
PLACEHOLDERS = [{"key": "participant_name", "label": "Name", "x": 600, "y": 450}]


def _create(name="Main", **kwargs):
    kwargs.setdefault("settings", dict(SETTINGS))
    kwargs.setdefault("placeholders", [dict(p) for p in PLACEHOLDERS])
    return templates.create_template(name, **kwargs)


def _defaults():
    return CertificateTemplate.query.filter_by(is_default=True).all()


def test_first_template_becomes_default(app):
    first = _create("First")
    second = _create("Second")
    assert first.is_default is True
    assert second.is_default is False
    assert templates.get_default_template().id == first.id


def test_first_template_must_be_active(app):
    with pytest.raises(TemplateInactive):
        _create("First", is_active=False)
    assert CertificateTemplate.query.count() == 0
    with pytest.raises(TemplateNotFound):
        templates.get_default_template()

    first = _create("First")
    inactive = _create("Later", is_active=False)
    assert inactive.is_default is False
    assert templates.get_default_template().id == first.id


def test_create_rejects_invalid_template_before_saving(app):
    with pytest.raises(TemplateValidationError) as excinfo:
        templates.create_template("", settings=dict(SETTINGS), placeholders=[])
    fields = {v.field for v in excinfo.value.violations}
    assert fields == {"name", "placeholders"}
    assert excinfo.value.to_dict()["violations"]
    assert CertificateTemplate.query.count() == 0


def test_create_normalizes_placeholders(app):
    template = _create()
    stored = template.placeholders[0]
    assert stored["fontSize"] == 24
    assert stored["align"] == "center"
    assert template.settings["backgroundColor"] == "#ffffff"


def test_set_default_switches_single_default(app):
    first = _create("First")
    second = _create("Second")
    templates.set_default(second.id)
    defaults = _defaults()
    assert [t.id for t in defaults] == [second.id]
    templates.set_default(first.id)
    assert [t.id for t in _defaults()] == [first.id]


def test_set_default_rejects_inactive_template(app):
    _create("First")
    inactive = _create("Off", is_active=False)
    with pytest.raises(TemplateInactive):
        templates.set_default(inactive.id)
    assert len(_defaults()) == 1


def test_set_default_unknown_template(app):
    with pytest.raises(TemplateNotFound):
        templates.set_default(999)


def test_get_default_template_without_templates(app):
    with pytest.raises(TemplateNotFound):
        templates.get_default_template()


def test_cannot_delete_default_while_others_exist(app):
    first = _create("First")
    second = _create("Second")
    with pytest.raises(TemplateInUse):
        templates.delete_template(first)
    templates.delete_template(second)
    templates.delete_template(first)
    assert CertificateTemplate.query.count() == 0


def test_cannot_deactivate_default(app):
    first = _create("First")
    with pytest.raises(TemplateInUse):
        templates.update_template(first, is_active=False)


def test_update_revalidates_merged_template(app):
    template = _create()
    with pytest.raises(TemplateValidationError):
        templates.update_template(
            template, placeholders=[{"key": "participant_name", "x": 5000, "y": 10}]
        )
    db.session.refresh(template)
    assert template.placeholders[0]["x"] == 600


def test_shrinking_settings_clamps_placeholders(app):
    template = _create(
        placeholders=[{"key": "participant_name", "x": 1100, "y": 850}]
    )
    templates.update_template(
        template, settings={"width": 800, "height": 600, "orientation": "landscape"}
    )
    placeholder = template.find_placeholder("participant_name")
    assert (placeholder.x, placeholder.y) == (800, 600)


def test_update_rejects_unknown_fields(app):
    template = _create()
    with pytest.raises(TemplateValidationError):
        templates.update_template(template, is_default=True)


def test_move_placeholder_converts_display_delta(app):
    template = _create()
    moved = templates.move_placeholder(template, "participant_name", (10, -5), (600, 900))
    assert (moved.x, moved.y) == (pytest.approx(620), pytest.approx(440))
    stored = db.session.get(CertificateTemplate, template.id).placeholders[0]
    assert stored["x"] == pytest.approx(620)


def test_move_placeholder_clamps(app):
    template = _create()
    moved = templates.move_placeholder(
        template, "participant_name", (10_000, 10_000), (600, 900)
    )
    assert (moved.x, moved.y) == (1200, 900)


def test_move_unknown_placeholder(app):
    template = _create()
    with pytest.raises(TemplateValidationError):
        templates.move_placeholder(template, "location", (1, 1), (600, 900))


def test_duplicate_is_never_default(app):
    original = _create("Main")
    copy = templates.duplicate_template(original)
    assert copy.name == "Main (copy)"
    assert copy.is_default is False
    assert copy.placeholders == original.placeholders


def test_list_templates_puts_default_first(app):
    _create("Beta")
    _create("Alpha")
    _create("Gamma", is_active=False)
    names = [t.name for t in templates.list_templates()]
    assert names == ["Beta", "Alpha", "Gamma"]
    assert [t.name for t in templates.list_templates(active_only=True)] == [
        "Beta",
        "Alpha",
    ]


def test_template_log_tag(app, caplog):
    caplog.set_level("INFO")
    _create("Logged")
    assert "[TEMPLATE] created" in caplog.text
