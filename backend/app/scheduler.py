"""
Planificateur APScheduler pour la réconciliation périodique des présences vidéo.

Désactivé par défaut (AUTO_RECONCILE_INTERVAL_MINUTES = 0) : la réconciliation est
déjà lancée à l'activation d'un déclencheur. Le job sert de filet de sécurité
pour les présences dont l'insertion a échoué pendant une panne de la base.
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.database import SessionLocal
from app.exceptions import InvalidInputError, NotFoundError
from app.models.course_material import CourseMaterial

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def _reconcile_trigger_materials() -> None:
    """
    Tâche planifiée : réconcilie chaque vidéo déclencheuse.
    Import local pour éviter les imports circulaires.
    """
    from app.services.attendance_service import reconcile_material

    db = SessionLocal()
    try:
        material_ids = db.execute(
            select(CourseMaterial.id).where(CourseMaterial.is_attendance_trigger.is_(True))
        ).scalars().all()

        for material_id in material_ids:
            # Un support en échec n'empêche pas la réconciliation des suivants
            try:
                report = reconcile_material(db, material_id)
            except (NotFoundError, InvalidInputError) as exc:
                logger.warning("Réconciliation planifiée ignorée, support %s : %s", material_id, exc)
                continue
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Réconciliation planifiée en échec, support %s : %s", material_id, exc)
                continue
            if report.created or report.errors:
                logger.info(
                    "Réconciliation planifiée, support %s : %d créées, %d erreurs",
                    material_id, report.created, len(report.errors),
                )
    except SQLAlchemyError as exc:
        logger.error("Erreur lors de la réconciliation planifiée : %s", exc)
    finally:
        db.close()


def start_scheduler() -> None:
    """Démarre le planificateur si un intervalle est configuré (appelé au démarrage de l'API)."""
    interval = settings.AUTO_RECONCILE_INTERVAL_MINUTES
    if interval <= 0:
        logger.info("Réconciliation planifiée désactivée.")
        return
    scheduler.add_job(
        _reconcile_trigger_materials,
        trigger="interval",
        minutes=interval,
        id="video_attendance_reconcile",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler démarré : réconciliation des présences toutes les %d minutes.", interval)


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt de l'API)."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
