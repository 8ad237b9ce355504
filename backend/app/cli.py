"""
Commandes d'exploitation (console script `lms-attendance`).

  lms-attendance init-db
  lms-attendance reconcile <material_id> [--all] [--threshold 80]
  lms-attendance status <material_id>
"""

import logging

import click

import app.models  # noqa: F401 (enregistre tous les modèles dans Base.metadata)
from app.config import settings
from app.database import Base, SessionLocal, engine
from app.exceptions import InvalidInputError, NotFoundError
from app.services import attendance_service, video_progress_service


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Journalisation détaillée (DEBUG)")
def cli(verbose):
    """Maintenance des présences vidéo du LMS."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@cli.command("init-db")
def init_db():
    """Crée les tables manquantes (hors migrations)."""
    Base.metadata.create_all(bind=engine)
    click.echo("Tables créées.")


@cli.command()
@click.argument("material_id", type=click.UUID)
@click.option("--all", "include_triggered", is_flag=True,
              help="Réexaminer aussi les progressions déjà déclenchées (reprise après sinistre)")
@click.option("--threshold", type=click.FloatRange(0, 100, min_open=True), default=None,
              help="Seuil global à utiliser à la place de VIDEO_COMPLETION_THRESHOLD")
def reconcile(material_id, include_triggered, threshold):
    """Crée les présences manquantes des étudiants ayant terminé la vidéo."""
    db = SessionLocal()
    try:
        report = attendance_service.reconcile_material(
            db, material_id, default_threshold=threshold, include_triggered=include_triggered
        )
    except (NotFoundError, InvalidInputError) as e:
        raise click.ClickException(str(e))
    finally:
        db.close()

    click.echo(
        f"Support {report.material_id} : {report.scanned} examinés, {report.created} créés, "
        f"{report.already_present} déjà présents, {report.skipped} ignorés"
    )
    for error in report.errors:
        click.echo(f"  erreur {error.student_id} : {error.error}", err=True)
    if report.errors:
        raise SystemExit(1)


@cli.command()
@click.argument("material_id", type=click.UUID)
def status(material_id):
    """Affiche complétions et présences déclenchées d'une vidéo."""
    db = SessionLocal()
    try:
        result = video_progress_service.get_attendance_trigger_status(db, material_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))
    finally:
        db.close()

    click.echo(f"Déclencheur : {'oui' if result.is_attendance_trigger else 'non'} (seuil {result.threshold:.1f}%)")
    click.echo(f"Complétions : {result.completed_students}")
    click.echo(f"Présences déclenchées : {result.attendance_triggered}")
    click.echo(f"En attente : {result.pending_trigger}")
    if result.needs_reconcile:
        click.echo(f"→ lancer : lms-attendance reconcile {material_id}")


if __name__ == "__main__":
    cli()
