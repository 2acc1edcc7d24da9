from __future__ import annotations

from sqlalchemy import event, inspect
from sqlalchemy.orm import validates

from ..app import db

from .template import CertificateTemplate  # noqa: E402,F401


class User(db.Model):
    """Account record owned by the auth service; read-only for the lifecycle."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255))
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.Index("ix_users_email_lower", db.func.lower(email), unique=True),
    )

    @validates("email")
    def lower_email(self, key, value):  # pragma: no cover - simple normalizer
        return value.lower()

    @property
    def display_name(self) -> str:
        return (self.full_name or "").strip() or self.email


class Event(db.Model):
    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    location = db.Column(db.String(255))
    category = db.Column(db.String(100))
    starts_at = db.Column(db.DateTime, nullable=False)
    ends_at = db.Column(db.DateTime)
    registration_deadline = db.Column(db.DateTime)
    max_participants = db.Column(db.Integer)
    current_participants = db.Column(
        db.Integer, nullable=False, default=0, server_default="0"
    )
    is_published = db.Column(
        db.Boolean, nullable=False, default=True, server_default=db.text("true")
    )
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )
    __table_args__ = (
        db.CheckConstraint(
            "current_participants >= 0", name="ck_events_participants_non_negative"
        ),
        db.CheckConstraint(
            "max_participants IS NULL OR current_participants <= max_participants",
            name="ck_events_capacity",
        ),
    )

    participants = db.relationship(
        "Participant",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Participant.id",
    )

    @property
    def end_at(self):
        return self.ends_at or self.starts_at

    @property
    def remaining_slots(self) -> int | None:
        if self.max_participants is None:
            return None
        return max(self.max_participants - (self.current_participants or 0), 0)


class Participant(db.Model):
    __tablename__ = "participants"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_number = db.Column(db.String(32), nullable=False)
    has_attended = db.Column(
        db.Boolean, nullable=False, default=False, server_default=db.text("false")
    )
    attended_at = db.Column(db.DateTime)
    # points at certificates.id; kept without a FK to avoid a table cycle
    certificate_id = db.Column(db.Integer, index=True)
    registered_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.UniqueConstraint("event_id", "user_id", name="uix_participant_event_user"),
        db.UniqueConstraint(
            "event_id", "token_number", name="uix_participant_event_token"
        ),
        db.CheckConstraint(
            "(has_attended AND attended_at IS NOT NULL)"
            " OR (NOT has_attended AND attended_at IS NULL)",
            name="ck_participants_attended_at",
        ),
        db.CheckConstraint(
            "certificate_id IS NULL OR has_attended",
            name="ck_participants_certificate_requires_attendance",
        ),
    )

    event = db.relationship("Event", back_populates="participants")
    user = db.relationship("User")
    certificate = db.relationship(
        "Certificate",
        primaryjoin="Participant.id == foreign(Certificate.participant_id)",
        uselist=False,
        viewonly=True,
    )


class Certificate(db.Model):
    __tablename__ = "certificates"

    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(
        db.Integer,
        db.ForeignKey("participants.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    template_id = db.Column(
        db.Integer, db.ForeignKey("certificate_templates.id", ondelete="SET NULL")
    )
    certificate_number = db.Column(db.String(32), nullable=False)
    verification_code = db.Column(db.String(32), nullable=False)
    certificate_url = db.Column(db.String(512))
    issued_at = db.Column(db.DateTime, nullable=False)
    __table_args__ = (
        db.UniqueConstraint("participant_id", name="uix_certificate_participant"),
        db.UniqueConstraint("certificate_number", name="uix_certificate_number"),
        db.UniqueConstraint("verification_code", name="uix_certificate_verification"),
    )

    participant = db.relationship("Participant", foreign_keys=[participant_id])
    event = db.relationship("Event")
    template = db.relationship("CertificateTemplate")


@event.listens_for(Certificate, "before_update")
def _certificate_is_immutable(mapper, connection, target):
    state = inspect(target)
    for column_attr in mapper.column_attrs:
        history = state.attrs[column_attr.key].history
        if not history.has_changes():
            continue
        # the renderer URL may be filled in once, after the row is claimed
        if column_attr.key == "certificate_url" and all(
            value is None for value in history.deleted
        ):
            continue
        raise ValueError(
            f"certificate field {column_attr.key!r} cannot change once issued"
        )
