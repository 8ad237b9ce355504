"""
Router pour les présences : saisie et correction manuelles, consultation, statistiques.
"""

import uuid
import datetime as dt
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import ConflictError, NotFoundError
from app.schemas.attendance import (
    AttendanceCreate,
    AttendancePage,
    AttendanceQuery,
    AttendanceResponse,
    AttendanceStats,
    AttendanceUpdate,
    AutoSubmitStatus,
    CourseAttendanceByWeek,
)
from app.services import attendance_service

router = APIRouter(prefix="/api/v1/attendances", tags=["Présences"])


@router.post("", response_model=AttendanceResponse, status_code=201, summary="Saisir une présence")
def create_attendance(
    data: AttendanceCreate,
    verified_by: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
):
    """
    Enregistre une présence saisie par l'enseignant.
    Retourne 404 si l'étudiant, le cours ou le vérificateur est introuvable,
    409 si une présence existe déjà pour ce jour.
    """
    try:
        return attendance_service.create_attendance(db, data, created_by=verified_by)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch("/{attendance_id}", response_model=AttendanceResponse, summary="Corriger une présence")
def update_attendance(
    attendance_id: uuid.UUID,
    data: AttendanceUpdate,
    verified_by: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
):
    """Modifie le statut ou les notes ; verified_by / verified_at sont renseignés si fournis."""
    try:
        return attendance_service.update_attendance(db, attendance_id, data, updated_by=verified_by)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("", response_model=AttendancePage, summary="Lister les présences")
def list_attendances(query: Annotated[AttendanceQuery, Query()], db: Session = Depends(get_db)):
    """Filtres : cours, étudiant, période, statut, type. Pagination page/limit."""
    return attendance_service.list_attendances(db, query)


@router.get(
    "/courses/{course_id}/stats",
    response_model=AttendanceStats,
    summary="Statistiques de présence d'un cours",
)
def get_course_stats(
    course_id: uuid.UUID,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    db: Session = Depends(get_db),
):
    try:
        return attendance_service.get_course_attendance_stats(db, course_id, start_date, end_date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get(
    "/students/{student_id}/courses/{course_id}",
    response_model=List[AttendanceResponse],
    summary="Présences d'un étudiant dans un cours",
)
def get_student_attendance(student_id: uuid.UUID, course_id: uuid.UUID, db: Session = Depends(get_db)):
    return attendance_service.get_student_attendance(db, student_id, course_id)


@router.get(
    "/courses/{course_id}/by-week",
    response_model=CourseAttendanceByWeek,
    summary="Présences d'un cours par semaine",
)
def get_course_attendance_by_week(
    course_id: uuid.UUID,
    week: Optional[int] = Query(None, ge=1, le=attendance_service.WEEKS_PER_SEMESTER),
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    db: Session = Depends(get_db),
):
    """Regroupe les présences par semaine puis par séance, avec les inscrits sans présence."""
    try:
        return attendance_service.get_course_attendance_by_week(db, course_id, week, start_date, end_date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get(
    "/can-auto-submit/students/{student_id}/courses/{course_id}",
    response_model=AutoSubmitStatus,
    summary="Une présence automatique est-elle encore possible aujourd'hui",
)
def can_auto_submit(student_id: uuid.UUID, course_id: uuid.UUID, db: Session = Depends(get_db)):
    return AutoSubmitStatus(
        can_auto_submit=attendance_service.can_auto_submit_today(db, student_id, course_id)
    )
