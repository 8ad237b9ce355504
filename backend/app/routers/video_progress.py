"""
Router pour la progression vidéo.
Reçoit les rapports du lecteur et expose la reprise de lecture et les statistiques.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import InvalidInputError, NotFoundError
from app.schemas.video_progress import (
    CourseVideoStat,
    ResumePosition,
    VideoProgressResponse,
    VideoProgressUpdate,
)
from app.services import video_progress_service

router = APIRouter(prefix="/api/v1/video-progress", tags=["Progression vidéo"])


@router.post(
    "",
    response_model=VideoProgressResponse,
    summary="Enregistrer la progression de visionnage",
)
def update_progress(data: VideoProgressUpdate, db: Session = Depends(get_db)):
    """
    Appelé toutes les 5-10 secondes par le lecteur vidéo.

    - Met à jour position, pourcentage, secondes regardées et journal des sessions
    - Marque la vidéo terminée au passage du seuil (une seule fois)
    - Crée la présence auto_present si la vidéo est déclencheuse (attendance_outcome)

    Retourne 404 si l'étudiant ou le support est introuvable,
    400 si le support n'est pas une vidéo, 422 si les valeurs sont invalides.
    """
    try:
        return video_progress_service.update_progress(db, data)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get(
    "/students/{student_id}/materials/{material_id}",
    response_model=Optional[VideoProgressResponse],
    summary="Progression d'un étudiant sur une vidéo",
)
def get_progress(student_id: uuid.UUID, material_id: uuid.UUID, db: Session = Depends(get_db)):
    """Retourne null si l'étudiant n'a jamais lancé la vidéo."""
    return video_progress_service.get_progress(db, student_id, material_id)


@router.get(
    "/students/{student_id}/materials/{material_id}/resume",
    response_model=Optional[ResumePosition],
    summary="Position de reprise de lecture",
)
def get_resume_position(student_id: uuid.UUID, material_id: uuid.UUID, db: Session = Depends(get_db)):
    return video_progress_service.get_resume_position(db, student_id, material_id)


@router.get(
    "/students/{student_id}/courses/{course_id}",
    response_model=List[VideoProgressResponse],
    summary="Progressions d'un étudiant dans un cours",
)
def get_progress_by_course(student_id: uuid.UUID, course_id: uuid.UUID, db: Session = Depends(get_db)):
    """Vidéos du cours triées par semaine puis par ordre."""
    return video_progress_service.get_progress_by_course(db, student_id, course_id)


@router.get(
    "/courses/{course_id}/stats",
    response_model=List[CourseVideoStat],
    summary="Statistiques de visionnage d'un cours",
)
def get_course_video_stats(course_id: uuid.UUID, db: Session = Depends(get_db)):
    """Spectateurs, complétions, moyenne et présences déclenchées par vidéo."""
    return video_progress_service.get_course_video_stats(db, course_id)
