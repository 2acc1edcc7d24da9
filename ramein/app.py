import logging
import os
from datetime import timedelta

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from .models import User, Event, Participant, Certificate  # noqa: E402,F401
from .models import template  # noqa: E402,F401 ensures ramein/models/template.py is imported
from .shared.errors import LifecycleError  # noqa: E402
from .shared.renderer import PdfRenderer  # noqa: E402


def _int_or_none(value):
    if value is None:
        return None
    if isinstance(value, int):
        return value
    value = str(value).strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logging.warning("ignoring non-integer config value %r", value)
        return None


def create_app(config: dict | None = None):
    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "dev")
    app.config["PREFERRED_URL_SCHEME"] = "https"

    DB_USER = os.getenv("DB_USER", "ramein")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "ramein")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 5 * 1024 * 1024

    app.config["SITE_ROOT"] = os.getenv("SITE_ROOT", "/srv")
    app.config["PUBLIC_BASE_URL"] = os.getenv("PUBLIC_BASE_URL", "")
    app.config["TOKEN_LENGTH"] = _int_or_none(os.getenv("TOKEN_LENGTH")) or 10
    # Unset means the attendance window never closes once the event has started.
    app.config["ATTENDANCE_CLOSE_AFTER_MINUTES"] = _int_or_none(
        os.getenv("ATTENDANCE_CLOSE_AFTER_MINUTES")
    )
    for key in (
        "SMTP_HOST",
        "SMTP_PORT",
        "SMTP_USER",
        "SMTP_PASS",
        "SMTP_FROM_DEFAULT",
        "SMTP_FROM_NAME",
    ):
        app.config[key] = os.getenv(key)

    if config:
        app.config.update(config)
    app.config["ATTENDANCE_CLOSE_AFTER_MINUTES"] = _int_or_none(
        app.config.get("ATTENDANCE_CLOSE_AFTER_MINUTES")
    )

    db.init_app(app)
    app.extensions["ramein_renderer"] = PdfRenderer(
        site_root=app.config["SITE_ROOT"]
    )

    @app.errorhandler(LifecycleError)
    def handle_lifecycle_error(exc: LifecycleError):
        db.session.rollback()
        app.logger.info("[LIFECYCLE-ERROR] code=%s detail=%s", exc.code, exc)
        return jsonify(exc.to_dict()), exc.status

    @app.get("/health")
    def health():  # pragma: no cover - simple healthcheck
        return "OK", 200

    from .routes.participants import bp as participants_bp
    from .routes.certificates import bp as certificates_bp
    from .routes.admin_events import bp as admin_events_bp
    from .routes.admin_templates import bp as admin_templates_bp

    app.register_blueprint(participants_bp)
    app.register_blueprint(certificates_bp)
    app.register_blueprint(admin_events_bp)
    app.register_blueprint(admin_templates_bp)

    return app


def attendance_close_after(app: Flask) -> timedelta | None:
    minutes = app.config.get("ATTENDANCE_CLOSE_AFTER_MINUTES")
    if minutes is None:
        return None
    return timedelta(minutes=int(minutes))
