from __future__ import annotations

from sqlalchemy.orm import validates

from ..app import db
from ..shared.coordinates import (
    Placeholder,
    Size,
    placeholder_from_dict,
    sanitize_settings,
)


class CertificateTemplate(db.Model):
    __tablename__ = "certificate_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    background_image = db.Column(db.String(1024))
    settings = db.Column(db.JSON, nullable=False, default=dict)
    placeholders = db.Column(db.JSON, nullable=False, default=list)
    is_default = db.Column(
        db.Boolean, nullable=False, default=False, server_default=db.text("false")
    )
    is_active = db.Column(
        db.Boolean, nullable=False, default=True, server_default=db.text("true")
    )
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )
    __table_args__ = (
        db.Index(
            "uix_certificate_templates_single_default",
            "is_default",
            unique=True,
            postgresql_where=db.text("is_default"),
            sqlite_where=db.text("is_default = 1"),
        ),
    )

    @validates("name")
    def _strip_name(self, key, value):
        return (value or "").strip()

    @property
    def design_size(self) -> Size:
        cleaned = sanitize_settings(self.settings)
        return Size(cleaned["width"], cleaned["height"])

    @property
    def placeholder_list(self) -> list[Placeholder]:
        return [placeholder_from_dict(raw) for raw in (self.placeholders or [])]

    def find_placeholder(self, key: str) -> Placeholder | None:
        for placeholder in self.placeholder_list:
            if placeholder.key == key:
                return placeholder
        return None
