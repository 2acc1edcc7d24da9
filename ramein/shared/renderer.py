"""Certificate rendering.

A renderer receives a fully resolved :class:`RenderPayload` (text already
bound, geometry in design space) and returns the opaque URL under which the
rendered certificate can be fetched. :class:`PdfRenderer` is the built-in
implementation: one PDF page the size of the template design, written under
``SITE_ROOT/certificates``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import NamedTuple, Protocol, Sequence

from flask import current_app
from PIL import Image
from reportlab.lib.colors import HexColor
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from .constants import PDF_FONT_MAP, SAFE_FALLBACK_FONT
from .coordinates import Size, to_page_origin
from .storage import (
    build_certificate_public_url,
    certificate_relative_path,
    write_atomic,
)

MIN_FONT_PT = 6
# Placeholders are anchored on their centre; shift the baseline down by
# roughly half a cap height so the text is vertically centred on (x, y).
BASELINE_SHIFT = 0.35


class ResolvedPlaceholder(NamedTuple):
    key: str
    text: str
    x: float
    y: float
    font_size: float
    font_family: str
    color: str
    align: str
    max_width: float | None


@dataclass(frozen=True)
class RenderPayload:
    event_id: int
    certificate_number: str
    issued_at: datetime
    design_size: Size
    background_color: str = "#ffffff"
    background_image: str | None = None
    items: Sequence[ResolvedPlaceholder] = field(default_factory=tuple)


class Renderer(Protocol):
    def render(self, payload: RenderPayload) -> str:
        ...


def resolve_pdf_font(family: str | None) -> str:
    return PDF_FONT_MAP.get((family or "").strip(), SAFE_FALLBACK_FONT)


def fit_font_size(
    text: str, font_name: str, max_pt: float, max_width: float | None
) -> float:
    if not max_width:
        return max_pt
    pt = max_pt
    while pt > MIN_FONT_PT and stringWidth(text, font_name, pt) > max_width:
        pt -= 1
    return max(pt, min(max_pt, MIN_FONT_PT))


def text_left_x(
    x: float, align: str, text_width: float, max_width: float | None
) -> float:
    """Left edge of the text for a placeholder whose box is centred on ``x``.

    The box is ``max_width`` wide when set, otherwise as wide as the text;
    ``align`` only positions the text inside that box.
    """

    box_width = max_width or text_width
    if align == "left":
        return x - box_width / 2
    if align == "right":
        return x + box_width / 2 - text_width
    return x - text_width / 2


class PdfRenderer:
    def __init__(self, site_root: str, uploads_dir: str = "uploads"):
        self.site_root = site_root
        self.uploads_dir = uploads_dir

    def output_path(self, payload: RenderPayload) -> tuple[str, str]:
        rel_path = certificate_relative_path(
            payload.event_id, payload.issued_at, payload.certificate_number
        )
        abs_path = os.path.join(self.site_root, "certificates", rel_path)
        return abs_path, build_certificate_public_url(rel_path)

    def _background_path(self, reference: str | None) -> str | None:
        if not reference:
            return None
        root = os.path.abspath(os.path.join(self.site_root, self.uploads_dir))
        candidate = os.path.abspath(os.path.join(root, reference.lstrip("/")))
        if os.path.commonpath([root, candidate]) != root:
            current_app.logger.warning(
                "[CERT-BG] rejected background outside uploads: %s", reference
            )
            return None
        if not os.path.exists(candidate):
            current_app.logger.warning("[CERT-BG] missing background %s", candidate)
            return None
        return candidate

    def _draw_background(self, c, payload: RenderPayload) -> None:
        width, height = payload.design_size
        c.setFillColor(HexColor(payload.background_color))
        c.rect(0, 0, width, height, stroke=0, fill=1)
        path = self._background_path(payload.background_image)
        if not path:
            return
        with Image.open(path) as img:
            image = img.convert("RGB")
        c.drawImage(ImageReader(image), 0, 0, width=width, height=height)

    def _draw_item(self, c, item: ResolvedPlaceholder, design_size: Size) -> None:
        if not item.text:
            return
        font_name = resolve_pdf_font(item.font_family)
        if font_name == SAFE_FALLBACK_FONT and item.font_family not in PDF_FONT_MAP:
            current_app.logger.warning(
                "[CERT-FONT] key=%s %s→%s", item.key, item.font_family, font_name
            )
        pt = fit_font_size(item.text, font_name, item.font_size, item.max_width)
        x, y = to_page_origin((item.x, item.y), design_size)
        baseline = y - pt * BASELINE_SHIFT
        c.setFont(font_name, pt)
        c.setFillColor(HexColor(item.color))
        text_width = stringWidth(item.text, font_name, pt)
        left = text_left_x(x, item.align, text_width, item.max_width)
        c.drawString(left, baseline, item.text)

    def render(self, payload: RenderPayload) -> str:
        abs_path, url = self.output_path(payload)
        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=tuple(payload.design_size))
        c.setTitle(payload.certificate_number)
        self._draw_background(c, payload)
        for item in payload.items:
            self._draw_item(c, item, payload.design_size)
        c.showPage()
        c.save()
        write_atomic(abs_path, buffer.getvalue())
        os.chmod(abs_path, 0o644)
        current_app.logger.info("[CERT-PDF] wrote %s", abs_path)
        return url


def get_renderer() -> Renderer:
    return current_app.extensions["ramein_renderer"]
