"""
Service de configuration de la présence automatique des supports de cours.

Activer is_attendance_trigger (ou abaisser le seuil d'un déclencheur actif) relance
aussitôt la réconciliation : les étudiants ayant déjà terminé la vidéo reçoivent
leur présence sans intervention manuelle.
"""

import uuid
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import NotFoundError
from app.models.course_material import CourseMaterial
from app.schemas.course_material import (
    AttendanceSettingsResult,
    AttendanceSettingsUpdate,
    CourseMaterialResponse,
)
from app.services import attendance_service
from app.services.attendance_evaluator import resolve_threshold

logger = logging.getLogger(__name__)


def get_material(db: Session, material_id: uuid.UUID) -> Optional[CourseMaterialResponse]:
    """Retourne un support par son ID, ou None s'il n'existe pas."""
    material = db.get(CourseMaterial, material_id)
    if material is None:
        return None
    return CourseMaterialResponse.model_validate(material)


def update_attendance_settings(
    db: Session,
    material_id: uuid.UUID,
    data: AttendanceSettingsUpdate,
    default_threshold: Optional[float] = None,
) -> AttendanceSettingsResult:
    """
    Met à jour is_attendance_trigger / attendance_threshold.

    La réconciliation est lancée après le commit si :
    - le déclencheur passe de False à True
    - ou le seuil effectif baisse alors que le déclencheur reste actif

    Lève NotFoundError si le support est introuvable.
    """
    if default_threshold is None:
        default_threshold = settings.VIDEO_COMPLETION_THRESHOLD

    material = db.get(CourseMaterial, material_id)
    if material is None:
        raise NotFoundError(f"Support {material_id} introuvable.")

    was_trigger = bool(material.is_attendance_trigger)
    previous_threshold = resolve_threshold(material, default_threshold)

    for field, value in data.model_dump(exclude_unset=True).items():
        if field == "is_attendance_trigger" and value is None:
            continue
        setattr(material, field, value)

    db.commit()
    db.refresh(material)

    is_trigger = bool(material.is_attendance_trigger)
    threshold = resolve_threshold(material, default_threshold)
    logger.info(
        "Support %s : déclencheur %s → %s, seuil %.1f → %.1f",
        material_id, was_trigger, is_trigger, previous_threshold, threshold,
    )

    report = None
    if is_trigger and (not was_trigger or threshold < previous_threshold):
        report = attendance_service.reconcile_material(db, material_id, default_threshold)
        db.refresh(material)

    return AttendanceSettingsResult(
        material=CourseMaterialResponse.model_validate(material),
        reconcile=report,
    )
