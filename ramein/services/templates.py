from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Iterable, Mapping

from flask import current_app
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from ..app import db
from ..models import CertificateTemplate
from ..shared.constants import DEFAULT_TEMPLATE_SETTINGS
from ..shared.coordinates import (
    Placeholder,
    Size,
    ValidationError,
    apply_drag,
    clamp_to_design,
    display_delta_to_design,
    display_scale,
    placeholder_from_dict,
    placeholder_to_dict,
    sanitize_settings,
    validate_template,
)
from ..shared.errors import (
    TemplateInactive,
    TemplateInUse,
    TemplateNotFound,
    TemplateValidationError,
)

EDITABLE_FIELDS: tuple[str, ...] = (
    "name",
    "description",
    "background_image",
    "settings",
    "placeholders",
    "is_active",
)
SET_DEFAULT_ATTEMPTS = 2


def check_template(
    name: Any, settings: Any, placeholders: Iterable[Any] | None
) -> list[ValidationError]:
    draft = SimpleNamespace(
        name=name, settings=settings, placeholders=list(placeholders or [])
    )
    return validate_template(draft)


def _normalized_placeholders(placeholders: Iterable[Any]) -> list[dict]:
    return [placeholder_to_dict(placeholder_from_dict(raw)) for raw in placeholders]


def _lock_default_rows(extra_id: int | None = None) -> list[CertificateTemplate]:
    condition = CertificateTemplate.is_default.is_(True)
    if extra_id is not None:
        condition = or_(condition, CertificateTemplate.id == extra_id)
    return (
        db.session.query(CertificateTemplate)
        .filter(condition)
        .with_for_update()
        .all()
    )


def _make_default(template: CertificateTemplate) -> None:
    # Clear first, then set: the partial unique index never sees two defaults.
    db.session.execute(
        update(CertificateTemplate)
        .where(
            CertificateTemplate.id != template.id,
            CertificateTemplate.is_default.is_(True),
        )
        .values(is_default=False)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(
        update(CertificateTemplate)
        .where(CertificateTemplate.id == template.id)
        .values(is_default=True)
        .execution_options(synchronize_session=False)
    )


def create_template(
    name: str,
    settings: Mapping | None = None,
    placeholders: Iterable[Any] | None = None,
    description: str | None = None,
    background_image: str | None = None,
    is_active: bool = True,
    is_default: bool = False,
) -> CertificateTemplate:
    """Validate and store a template.

    The first template becomes the default automatically, so it must be
    active; once it exists there is always exactly one default.
    """

    if settings is None:
        settings = dict(DEFAULT_TEMPLATE_SETTINGS)
    placeholders = list(placeholders or [])
    violations = check_template(name, settings, placeholders)
    if violations:
        raise TemplateValidationError(violations)
    if is_default and not is_active:
        raise TemplateInactive("Inactive templates cannot be the default.")
    has_default = bool(_lock_default_rows())
    if not is_active and not has_default:
        db.session.rollback()
        raise TemplateInactive("The first template must be active.")

    template = CertificateTemplate(
        name=name,
        description=description,
        background_image=background_image,
        settings=sanitize_settings(settings),
        placeholders=_normalized_placeholders(placeholders),
        is_active=bool(is_active),
        is_default=False,
    )
    db.session.add(template)
    db.session.flush()
    if template.is_active and (is_default or not has_default):
        _make_default(template)
    db.session.commit()
    current_app.logger.info(
        "[TEMPLATE] created id=%s name=%s default=%s",
        template.id,
        template.name,
        template.is_default,
    )
    return template


def update_template(template: CertificateTemplate, **fields) -> CertificateTemplate:
    unknown = sorted(set(fields) - set(EDITABLE_FIELDS))
    if unknown:
        raise TemplateValidationError(
            [ValidationError(key, "Field cannot be edited.") for key in unknown]
        )

    name = fields.get("name", template.name)
    settings = fields.get("settings", template.settings)
    if "placeholders" in fields:
        placeholders = list(fields["placeholders"] or [])
    elif "settings" in fields:
        # Shrinking the canvas pulls existing placeholders back inside it.
        cleaned = sanitize_settings(settings)
        new_size = Size(cleaned["width"], cleaned["height"])
        placeholders = [
            placeholder_to_dict(clamp_to_design(p, new_size))
            for p in template.placeholder_list
        ]
    else:
        placeholders = list(template.placeholders or [])

    violations = check_template(name, settings, placeholders)
    if violations:
        raise TemplateValidationError(violations)
    if fields.get("is_active") is False and template.is_default:
        raise TemplateInUse("The default template cannot be deactivated.")

    template.name = name
    template.settings = sanitize_settings(settings)
    template.placeholders = _normalized_placeholders(placeholders)
    if "description" in fields:
        template.description = fields["description"]
    if "background_image" in fields:
        template.background_image = fields["background_image"] or None
    if "is_active" in fields:
        template.is_active = bool(fields["is_active"])
    db.session.commit()
    current_app.logger.info(
        "[TEMPLATE] updated id=%s fields=%s", template.id, ",".join(sorted(fields))
    )
    return template


def delete_template(template: CertificateTemplate) -> None:
    if template.is_default:
        others = (
            db.session.query(CertificateTemplate.id)
            .filter(CertificateTemplate.id != template.id)
            .first()
        )
        if others:
            raise TemplateInUse()
    template_id = template.id
    db.session.delete(template)
    db.session.commit()
    current_app.logger.info("[TEMPLATE] deleted id=%s", template_id)


def set_default(template_id: int) -> CertificateTemplate:
    for attempt in range(1, SET_DEFAULT_ATTEMPTS + 1):
        _lock_default_rows(template_id)
        template = get_template(template_id)
        if not template.is_active:
            raise TemplateInactive("Inactive templates cannot be the default.")
        if template.is_default:
            return template
        try:
            _make_default(template)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            if attempt == SET_DEFAULT_ATTEMPTS:
                raise
            continue
        current_app.logger.info("[TEMPLATE] default id=%s", template.id)
        return template
    raise TemplateNotFound()  # pragma: no cover - loop always returns or raises


def get_template(template_id: int) -> CertificateTemplate:
    template = db.session.get(CertificateTemplate, template_id)
    if not template:
        raise TemplateNotFound()
    return template


def get_default_template() -> CertificateTemplate:
    template = CertificateTemplate.query.filter(
        CertificateTemplate.is_default.is_(True)
    ).one_or_none()
    if not template:
        raise TemplateNotFound("No default certificate template is configured.")
    return template


def list_templates(active_only: bool = False) -> list[CertificateTemplate]:
    query = CertificateTemplate.query
    if active_only:
        query = query.filter(CertificateTemplate.is_active.is_(True))
    return query.order_by(
        CertificateTemplate.is_default.desc(), CertificateTemplate.name
    ).all()


def move_placeholder(
    template: CertificateTemplate, key: str, delta_display, display_size
) -> Placeholder:
    """Apply an editor drag (display-space delta) and persist the new position."""

    current = template.find_placeholder(key)
    if current is None:
        raise TemplateValidationError(
            [ValidationError("key", f"Unknown placeholder {key!r}.")]
        )
    design = template.design_size
    scale = display_scale(design, display_size)
    moved = apply_drag(current, display_delta_to_design(delta_display, scale), design)
    template.placeholders = [
        placeholder_to_dict(moved if p.key == key else p)
        for p in template.placeholder_list
    ]
    db.session.commit()
    current_app.logger.info(
        "[TEMPLATE] moved id=%s key=%s x=%.2f y=%.2f", template.id, key, moved.x, moved.y
    )
    return moved


def duplicate_template(template: CertificateTemplate) -> CertificateTemplate:
    copy = CertificateTemplate(
        name=f"{template.name} (copy)",
        description=template.description,
        background_image=template.background_image,
        settings=dict(template.settings or {}),
        placeholders=[dict(p) for p in (template.placeholders or [])],
        is_active=template.is_active,
        is_default=False,
    )
    db.session.add(copy)
    db.session.commit()
    current_app.logger.info("[TEMPLATE] duplicated id=%s as=%s", template.id, copy.id)
    return copy
