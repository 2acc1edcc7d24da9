from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..services import templates
from ..shared.acl import admin_required
from ..shared.constants import (
    ALIGN_CHOICES,
    DEFAULT_TEMPLATE_SETTINGS,
    FONT_FAMILIES,
    PLACEHOLDER_CHOICES,
    PLACEHOLDER_SAMPLES,
)
from ..shared.coordinates import (
    design_to_display,
    display_canvas_size,
    display_scale,
    placeholder_to_dict,
)
from ..shared.requests import bad_request, json_payload, require_boolean, require_number
from ..shared.serializers import template_to_dict

bp = Blueprint("admin_templates", __name__, url_prefix="/admin/templates")


def _template_fields(payload: dict) -> dict:
    fields = {
        key: payload[key]
        for key in templates.EDITABLE_FIELDS
        if key in payload and key != "is_active"
    }
    if "is_active" in payload:
        fields["is_active"] = require_boolean(payload["is_active"])
    return fields


def _display_size(source: dict) -> tuple[float, float]:
    return (
        require_number(source.get("display_width")),
        require_number(source.get("display_height")),
    )


@bp.get("/options")
@admin_required
def editor_options(current_user):
    return jsonify(
        {
            "ok": True,
            "placeholders": [
                {"key": key, "label": label} for key, label in PLACEHOLDER_CHOICES
            ],
            "fonts": list(FONT_FAMILIES),
            "align": list(ALIGN_CHOICES),
            "default_settings": DEFAULT_TEMPLATE_SETTINGS,
        }
    )


@bp.get("")
@admin_required
def list_templates(current_user):
    try:
        active_only = require_boolean(request.args.get("active_only", "false"))
    except ValueError:
        return bad_request("active_only must be true or false.")
    items = [template_to_dict(t) for t in templates.list_templates(active_only)]
    return jsonify({"ok": True, "templates": items})


@bp.post("")
@admin_required
def create_template(current_user):
    payload = json_payload()
    try:
        fields = _template_fields(payload)
        is_default = require_boolean(payload.get("is_default", False))
    except ValueError:
        return bad_request("is_active and is_default must be true or false.")
    template = templates.create_template(
        name=fields.pop("name", ""), is_default=is_default, **fields
    )
    return jsonify({"ok": True, "template": template_to_dict(template)}), 201


@bp.post("/validate")
@admin_required
def validate_template(current_user):
    payload = json_payload()
    violations = templates.check_template(
        payload.get("name"),
        payload.get("settings", DEFAULT_TEMPLATE_SETTINGS),
        payload.get("placeholders"),
    )
    return jsonify(
        {"ok": not violations, "violations": [v.to_dict() for v in violations]}
    )


@bp.get("/<int:template_id>")
@admin_required
def show_template(template_id: int, current_user):
    template = templates.get_template(template_id)
    return jsonify({"ok": True, "template": template_to_dict(template)})


@bp.route("/<int:template_id>", methods=["PUT", "PATCH"])
@admin_required
def update_template(template_id: int, current_user):
    template = templates.get_template(template_id)
    try:
        fields = _template_fields(json_payload())
    except ValueError:
        return bad_request("is_active must be true or false.")
    template = templates.update_template(template, **fields)
    return jsonify({"ok": True, "template": template_to_dict(template)})


@bp.delete("/<int:template_id>")
@admin_required
def delete_template(template_id: int, current_user):
    templates.delete_template(templates.get_template(template_id))
    return jsonify({"ok": True})


@bp.post("/<int:template_id>/set-default")
@admin_required
def set_default(template_id: int, current_user):
    template = templates.set_default(template_id)
    return jsonify({"ok": True, "template": template_to_dict(template)})


@bp.post("/<int:template_id>/duplicate")
@admin_required
def duplicate_template(template_id: int, current_user):
    copy = templates.duplicate_template(templates.get_template(template_id))
    return jsonify({"ok": True, "template": template_to_dict(copy)}), 201


@bp.post("/<int:template_id>/placeholders/<key>/move")
@admin_required
def move_placeholder(template_id: int, key: str, current_user):
    template = templates.get_template(template_id)
    payload = json_payload()
    try:
        delta = (require_number(payload.get("dx")), require_number(payload.get("dy")))
        display_size = _display_size(payload)
        moved = templates.move_placeholder(template, key, delta, display_size)
    except ValueError as exc:
        return bad_request(f"Invalid drag input: {exc}")
    return jsonify({"ok": True, "placeholder": placeholder_to_dict(moved)})


@bp.get("/<int:template_id>/preview")
@admin_required
def preview_template(template_id: int, current_user):
    """Sample-filled placeholders positioned for an editor canvas."""

    template = templates.get_template(template_id)
    try:
        display_size = _display_size(request.args)
        scale = display_scale(template.design_size, display_size)
    except ValueError:
        return bad_request("display_width and display_height must be positive numbers.")
    canvas = display_canvas_size(template.design_size, display_size)
    items = []
    for placeholder in template.placeholder_list:
        point = design_to_display(placeholder.position, template.design_size, display_size)
        items.append(
            {
                "key": placeholder.key,
                "text": PLACEHOLDER_SAMPLES.get(placeholder.key, placeholder.label),
                "x": point.x,
                "y": point.y,
                "font_size": placeholder.font_size * scale,
                "max_width": (
                    placeholder.max_width * scale if placeholder.max_width else None
                ),
                "font_family": placeholder.font_family,
                "color": placeholder.color,
                "align": placeholder.align,
            }
        )
    return jsonify(
        {
            "ok": True,
            "scale": scale,
            "canvas": {"width": canvas.width, "height": canvas.height},
            "placeholders": items,
        }
    )
