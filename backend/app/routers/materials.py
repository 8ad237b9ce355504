"""
Router pour la configuration de présence des supports de cours
et la réconciliation des présences vidéo.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import InvalidInputError, NotFoundError
from app.schemas.attendance import ReconcileReport
from app.schemas.course_material import (
    AttendanceSettingsResult,
    AttendanceSettingsUpdate,
    CourseMaterialResponse,
)
from app.schemas.video_progress import AttendanceTriggerStatus
from app.services import attendance_service, course_material_service, video_progress_service

router = APIRouter(prefix="/api/v1/materials", tags=["Supports de cours"])


@router.get("/{material_id}", response_model=CourseMaterialResponse, summary="Détail d'un support")
def get_material(material_id: uuid.UUID, db: Session = Depends(get_db)):
    material = course_material_service.get_material(db, material_id)
    if material is None:
        raise HTTPException(status_code=404, detail="Support introuvable.")
    return material


@router.patch(
    "/{material_id}/attendance-settings",
    response_model=AttendanceSettingsResult,
    summary="Configurer la présence automatique d'une vidéo",
)
def update_attendance_settings(
    material_id: uuid.UUID,
    data: AttendanceSettingsUpdate,
    db: Session = Depends(get_db),
):
    """
    Active/désactive le déclencheur de présence et règle le seuil propre à la vidéo.

    L'activation du déclencheur (ou la baisse du seuil) réconcilie immédiatement
    les complétions existantes ; le rapport est renvoyé dans `reconcile`.
    """
    try:
        return course_material_service.update_attendance_settings(db, material_id, data)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get(
    "/{material_id}/attendance-status",
    response_model=AttendanceTriggerStatus,
    summary="État du déclenchement de présence d'une vidéo",
)
def get_attendance_status(material_id: uuid.UUID, db: Session = Depends(get_db)):
    """Complétions, présences déclenchées et complétions en attente (needs_reconcile)."""
    try:
        return video_progress_service.get_attendance_trigger_status(db, material_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post(
    "/{material_id}/reconcile-attendance",
    response_model=ReconcileReport,
    summary="Réconcilier les présences d'une vidéo déclencheuse",
)
def reconcile_attendance(
    material_id: uuid.UUID,
    include_triggered: bool = False,
    db: Session = Depends(get_db),
):
    """
    Crée les présences manquantes des étudiants ayant terminé la vidéo.

    Idempotent : un second appel ne crée rien.
    include_triggered=true réexamine aussi les progressions déjà déclenchées
    (reprise après perte de présences).

    Retourne 404 si le support est introuvable, 400 s'il n'est pas déclencheur.
    """
    try:
        return attendance_service.reconcile_material(
            db, material_id, include_triggered=include_triggered
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
