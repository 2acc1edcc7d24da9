from ramein.app import create_app, db
import os
import sys

from flask_migrate import Migrate
from flask.cli import FlaskGroup
import click
from flask import current_app
from ramein.services import certificates, registration, templates
from ramein.shared.errors import LifecycleError
from ramein.shared.serializers import write_participants_csv


migrate = Migrate()


def create_ramein_app():
    app = create_app()
    migrate.init_app(app, db)
    return app


cli = FlaskGroup(create_app=create_ramein_app)


@cli.command("generate_certificates")
@click.option("--event", "event_id", required=True, type=int)
@click.option("--template", "template_id", type=int, default=None)
def generate_certificates(event_id: int, template_id: int | None):
    """Issue certificates for every attended participant of an event."""
    try:
        template = templates.get_template(template_id) if template_id else None
        result = certificates.generate_for_event(event_id, template=template)
    except LifecycleError as exc:
        click.echo(f"{exc.code}: {exc.message}", err=True)
        sys.exit(1)
    for certificate in result.generated:
        click.echo(f"{certificate.certificate_number} {certificate.certificate_url}")
    for participant_id, reason in result.failures:
        click.echo(f"skipped participant={participant_id} reason={reason}", err=True)
    click.echo(f"generated={len(result.generated)} failed={len(result.failures)}")


@cli.command("set_default_template")
@click.option("--template", "template_id", required=True, type=int)
def set_default_template(template_id: int):
    try:
        template = templates.set_default(template_id)
    except LifecycleError as exc:
        click.echo(f"{exc.code}: {exc.message}", err=True)
        sys.exit(1)
    click.echo(f"default template: {template.id} {template.name}")


@cli.command("export_participants")
@click.option("--event", "event_id", required=True, type=int)
@click.option(
    "--attended/--not-attended",
    "attended",
    default=None,
    help="Only include participants that did (or did not) attend",
)
@click.option("--output", "output", type=click.File("w"), default="-")
def export_participants(event_id: int, attended: bool | None, output):
    try:
        participants = registration.list_participants(event_id, attended=attended)
    except LifecycleError as exc:
        click.echo(f"{exc.code}: {exc.message}", err=True)
        sys.exit(1)
    count = write_participants_csv(participants, output)
    click.echo(f"exported={count}", err=True)


@cli.command("purge_orphan_certs")
@click.option(
    "--dry-run", is_flag=True, help="List orphaned certificate PDFs without deleting"
)
def purge_orphan_certs(dry_run: bool):
    site_root = current_app.config.get("SITE_ROOT", "/srv")
    cert_root = os.path.join(site_root, "certificates")
    if not os.path.isdir(cert_root):
        click.echo("Certificate directory missing", err=True)
        return
    if (
        not dry_run
        and current_app.config.get("ENV") == "production"
        and os.getenv("ALLOW_CERT_PURGE") != "1"
    ):
        click.echo(
            "Refusing to delete in production without ALLOW_CERT_PURGE=1", err=True
        )
        return

    orphans = certificates.find_orphan_files(site_root)
    deleted = errors = 0
    for full_path in orphans:
        click.echo(full_path)
        if dry_run:
            continue
        try:
            os.remove(full_path)
            deleted += 1
        except OSError:
            errors += 1
            current_app.logger.exception(
                "[CERT-PURGE] failed to remove %s", full_path
            )
    summary = f"orphans={len(orphans)} deleted={deleted} errors={errors}"
    click.echo(summary)
    current_app.logger.info("[CERT-PURGE] %s", summary)


if __name__ == "__main__":
    cli()
