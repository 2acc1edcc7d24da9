"""event lifecycle schema

Revision ID: 0001_lifecycle_schema
Revises:
Create Date: 2025-01-01 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_lifecycle_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column(
            "is_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_users_email_lower", "users", [sa.text("lower(email)")], unique=True
    )

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("starts_at", sa.DateTime(), nullable=False),
        sa.Column("ends_at", sa.DateTime(), nullable=True),
        sa.Column("registration_deadline", sa.DateTime(), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column(
            "current_participants",
            sa.Integer(),
            nullable=False,
            server_default="0",
        ),
        sa.Column(
            "is_published",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
        ),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint(
            "current_participants >= 0", name="ck_events_participants_non_negative"
        ),
        sa.CheckConstraint(
            "max_participants IS NULL OR current_participants <= max_participants",
            name="ck_events_capacity",
        ),
    )

    op.create_table(
        "certificate_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("background_image", sa.String(length=1024), nullable=True),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("placeholders", sa.JSON(), nullable=False),
        sa.Column(
            "is_default",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")
        ),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "uix_certificate_templates_single_default",
        "certificate_templates",
        ["is_default"],
        unique=True,
        postgresql_where=sa.text("is_default"),
        sqlite_where=sa.text("is_default = 1"),
    )

    op.create_table(
        "participants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_number", sa.String(length=32), nullable=False),
        sa.Column(
            "has_attended",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column("attended_at", sa.DateTime(), nullable=True),
        sa.Column("certificate_id", sa.Integer(), nullable=True),
        sa.Column("registered_at", sa.DateTime(), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("event_id", "user_id", name="uix_participant_event_user"),
        sa.UniqueConstraint(
            "event_id", "token_number", name="uix_participant_event_token"
        ),
        sa.CheckConstraint(
            "(has_attended AND attended_at IS NOT NULL)"
            " OR (NOT has_attended AND attended_at IS NULL)",
            name="ck_participants_attended_at",
        ),
        sa.CheckConstraint(
            "certificate_id IS NULL OR has_attended",
            name="ck_participants_certificate_requires_attendance",
        ),
    )
    op.create_index(
        "ix_participants_certificate_id", "participants", ["certificate_id"]
    )

    op.create_table(
        "certificates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("participant_id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("template_id", sa.Integer(), nullable=True),
        sa.Column("certificate_number", sa.String(length=32), nullable=False),
        sa.Column("verification_code", sa.String(length=32), nullable=False),
        sa.Column("certificate_url", sa.String(length=512), nullable=True),
        sa.Column("issued_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["participant_id"], ["participants.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["template_id"], ["certificate_templates.id"], ondelete="SET NULL"
        ),
        sa.UniqueConstraint("participant_id", name="uix_certificate_participant"),
        sa.UniqueConstraint("certificate_number", name="uix_certificate_number"),
        sa.UniqueConstraint(
            "verification_code", name="uix_certificate_verification"
        ),
    )


def downgrade() -> None:
    op.drop_table("certificates")
    op.drop_index("ix_participants_certificate_id", table_name="participants")
    op.drop_table("participants")
    op.drop_index(
        "uix_certificate_templates_single_default",
        table_name="certificate_templates",
    )
    op.drop_table("certificate_templates")
    op.drop_table("events")
    op.drop_index("ix_users_email_lower", table_name="users")
    op.drop_table("users")
