"""Certificate template geometry.

Placeholder positions are always stored in *design space*: the coordinate
system of the template itself, ``settings.width`` by ``settings.height``
with the origin at the top-left corner. Editing canvases show the design
scaled down into *display space*; everything that crosses between the two
goes through the helpers here so that the editor and the renderer agree on
where a placeholder sits.

Nothing in this module touches the database, the filesystem or Flask.
"""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass, replace
from typing import Any, Iterable, Mapping, NamedTuple

from .constants import (
    ALIGN_CHOICES,
    DEFAULT_ALIGN,
    DEFAULT_COLOR,
    DEFAULT_FONT_FAMILY,
    DEFAULT_FONT_SIZE,
    DEFAULT_TEMPLATE_SETTINGS,
    MAX_DISPLAY_SCALE,
    ORIENTATIONS,
    PLACEHOLDER_KEYS,
    PLACEHOLDER_LABELS,
)

_HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


class Point(NamedTuple):
    x: float
    y: float


class Size(NamedTuple):
    width: float
    height: float


class ValidationError(NamedTuple):
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


@dataclass(frozen=True)
class Placeholder:
    key: str
    label: str
    x: float
    y: float
    font_size: float = DEFAULT_FONT_SIZE
    font_family: str = DEFAULT_FONT_FAMILY
    color: str = DEFAULT_COLOR
    align: str = DEFAULT_ALIGN
    max_width: float | None = None

    @property
    def position(self) -> Point:
        return Point(self.x, self.y)


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def _as_size(value: Any) -> Size:
    if isinstance(value, Mapping):
        return Size(float(value["width"]), float(value["height"]))
    width, height = value
    return Size(float(width), float(height))


def _is_hex_color(value: Any) -> bool:
    return isinstance(value, str) and bool(_HEX_COLOR_RE.match(value))


def sanitize_settings(settings: Mapping | None) -> dict:
    """Return a complete settings dict, replacing unusable values with defaults."""

    cleaned = dict(DEFAULT_TEMPLATE_SETTINGS)
    if not isinstance(settings, Mapping):
        return cleaned
    width = _as_float(settings.get("width"))
    height = _as_float(settings.get("height"))
    if width is not None and width > 0:
        cleaned["width"] = width
    if height is not None and height > 0:
        cleaned["height"] = height
    orientation = str(settings.get("orientation") or "").strip().lower()
    if orientation in ORIENTATIONS:
        cleaned["orientation"] = orientation
    else:
        cleaned["orientation"] = (
            "landscape" if cleaned["width"] >= cleaned["height"] else "portrait"
        )
    color = settings.get("backgroundColor")
    if _is_hex_color(color):
        cleaned["backgroundColor"] = color
    return cleaned


def placeholder_from_dict(raw: Mapping | Placeholder) -> Placeholder:
    if isinstance(raw, Placeholder):
        return raw
    key = str(raw.get("key") or "").strip()
    font_size = _as_float(raw.get("fontSize", raw.get("font_size")))
    max_width = _as_float(raw.get("maxWidth", raw.get("max_width")))
    align = str(raw.get("align") or DEFAULT_ALIGN).strip().lower()
    color = raw.get("color")
    return Placeholder(
        key=key,
        label=str(raw.get("label") or PLACEHOLDER_LABELS.get(key, key)),
        x=_as_float(raw.get("x")) or 0.0,
        y=_as_float(raw.get("y")) or 0.0,
        font_size=font_size if font_size and font_size > 0 else DEFAULT_FONT_SIZE,
        font_family=str(
            raw.get("fontFamily", raw.get("font_family")) or DEFAULT_FONT_FAMILY
        ),
        color=color if _is_hex_color(color) else DEFAULT_COLOR,
        align=align if align in ALIGN_CHOICES else DEFAULT_ALIGN,
        max_width=max_width if max_width and max_width > 0 else None,
    )


def placeholder_to_dict(placeholder: Placeholder) -> dict:
    data = asdict(placeholder)
    return {
        "key": data["key"],
        "label": data["label"],
        "x": data["x"],
        "y": data["y"],
        "fontSize": data["font_size"],
        "fontFamily": data["font_family"],
        "color": data["color"],
        "align": data["align"],
        "maxWidth": data["max_width"],
    }


def display_scale(design_size, display_size) -> float:
    """Uniform scale that fits the design into the display area, capped at 80%."""

    design = _as_size(design_size)
    display = _as_size(display_size)
    if design.width <= 0 or design.height <= 0:
        raise ValueError("design size must be positive")
    if display.width <= 0 or display.height <= 0:
        raise ValueError("display size must be positive")
    return min(
        display.width / design.width,
        display.height / design.height,
        MAX_DISPLAY_SCALE,
    )


def display_canvas_size(design_size, display_size) -> Size:
    design = _as_size(design_size)
    scale = display_scale(design, display_size)
    return Size(design.width * scale, design.height * scale)


def design_to_display(point, design_size, display_size) -> Point:
    scale = display_scale(design_size, display_size)
    return Point(point[0] * scale, point[1] * scale)


def display_to_design(point, design_size, display_size) -> Point:
    scale = display_scale(design_size, display_size)
    return Point(point[0] / scale, point[1] / scale)


def design_delta_to_display(delta, scale: float) -> Point:
    if scale <= 0:
        raise ValueError("scale must be positive")
    return Point(delta[0] * scale, delta[1] * scale)


def display_delta_to_design(delta, scale: float) -> Point:
    if scale <= 0:
        raise ValueError("scale must be positive")
    return Point(delta[0] / scale, delta[1] / scale)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def _delta_component(value: Any) -> float:
    result = float(value)
    # NaN means "no usable movement"; infinities clamp to the nearest edge.
    return 0.0 if math.isnan(result) else result


def apply_drag(placeholder: Placeholder, delta_design, design_size) -> Placeholder:
    design = _as_size(design_size)
    dx = _delta_component(delta_design[0])
    dy = _delta_component(delta_design[1])
    return replace(
        placeholder,
        x=_clamp(placeholder.x + dx, 0.0, design.width),
        y=_clamp(placeholder.y + dy, 0.0, design.height),
    )


def clamp_to_design(placeholder: Placeholder, design_size) -> Placeholder:
    return apply_drag(placeholder, (0.0, 0.0), design_size)


def to_page_origin(point, design_size) -> Point:
    """Convert a top-left origin design point to a bottom-left origin page point."""

    design = _as_size(design_size)
    return Point(point[0], design.height - point[1])


def _placeholder_payloads(placeholders: Iterable[Any]) -> list[Any]:
    payloads: list[Any] = []
    for raw in placeholders:
        if isinstance(raw, Placeholder):
            payloads.append(placeholder_to_dict(raw))
        else:
            payloads.append(raw)
    return payloads


def validate_template(template: Any) -> list[ValidationError]:
    """Collect every reason the template cannot be saved; empty means valid."""

    errors: list[ValidationError] = []

    name = getattr(template, "name", None)
    if not str(name or "").strip():
        errors.append(ValidationError("name", "Template name is required."))

    settings = getattr(template, "settings", None)
    if not isinstance(settings, Mapping):
        settings = {}
    width = _as_float(settings.get("width"))
    height = _as_float(settings.get("height"))
    if width is None or width <= 0:
        errors.append(ValidationError("settings.width", "Width must be a positive number."))
        width = None
    if height is None or height <= 0:
        errors.append(
            ValidationError("settings.height", "Height must be a positive number.")
        )
        height = None
    orientation = settings.get("orientation")
    if orientation is not None:
        orientation = str(orientation).strip().lower()
        if orientation not in ORIENTATIONS:
            errors.append(
                ValidationError(
                    "settings.orientation",
                    "Orientation must be landscape or portrait.",
                )
            )
        elif width is not None and height is not None:
            if orientation == "landscape" and width < height:
                errors.append(
                    ValidationError(
                        "settings.orientation",
                        "Landscape templates cannot be taller than they are wide.",
                    )
                )
            if orientation == "portrait" and height < width:
                errors.append(
                    ValidationError(
                        "settings.orientation",
                        "Portrait templates cannot be wider than they are tall.",
                    )
                )
    background = settings.get("backgroundColor")
    if background is not None and not _is_hex_color(background):
        errors.append(
            ValidationError(
                "settings.backgroundColor", "Background color must be a hex color."
            )
        )

    placeholders = _placeholder_payloads(getattr(template, "placeholders", None) or [])
    if not placeholders:
        errors.append(
            ValidationError("placeholders", "At least one placeholder is required.")
        )

    seen: set[str] = set()
    for index, data in enumerate(placeholders):
        field = f"placeholders[{index}]"
        if not isinstance(data, Mapping):
            errors.append(ValidationError(field, "Placeholder must be an object."))
            continue
        key = str(data.get("key") or "").strip()
        if not key:
            errors.append(ValidationError(f"{field}.key", "Placeholder key is required."))
        elif key not in PLACEHOLDER_KEYS:
            errors.append(
                ValidationError(f"{field}.key", f"Unknown placeholder key {key!r}.")
            )
        elif key in seen:
            errors.append(
                ValidationError(f"{field}.key", f"Duplicate placeholder key {key!r}.")
            )
        seen.add(key)

        for axis, bound in (("x", width), ("y", height)):
            value = _as_float(data.get(axis))
            if value is None:
                errors.append(
                    ValidationError(f"{field}.{axis}", f"{axis} must be a number.")
                )
            elif value < 0 or (bound is not None and value > bound):
                errors.append(
                    ValidationError(
                        f"{field}.{axis}", f"{axis} is outside the template bounds."
                    )
                )

        if "fontSize" in data or "font_size" in data:
            font_size = _as_float(data.get("fontSize", data.get("font_size")))
            if font_size is None or font_size <= 0:
                errors.append(
                    ValidationError(
                        f"{field}.fontSize", "Font size must be a positive number."
                    )
                )
        align = data.get("align")
        if align is not None and align not in ALIGN_CHOICES:
            errors.append(
                ValidationError(
                    f"{field}.align", "Align must be left, center or right."
                )
            )
        color = data.get("color")
        if color is not None and not _is_hex_color(color):
            errors.append(ValidationError(f"{field}.color", "Color must be a hex color."))
        raw_max_width = data.get("maxWidth", data.get("max_width"))
        if raw_max_width is not None:
            max_width = _as_float(raw_max_width)
            if max_width is None or max_width <= 0:
                errors.append(
                    ValidationError(
                        f"{field}.maxWidth", "Max width must be a positive number."
                    )
                )
    return errors
