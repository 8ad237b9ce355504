"""
Service de suivi de la progression vidéo et de la présence automatique.

Flux d'un rapport du lecteur :
1. Validation du support (vidéo) et de l'étudiant
2. Upsert de la progression (étudiant, support) sous verrou de ligne, commit
3. Décision de présence (attendance_evaluator), puis insertion atomique
   de la présence + drapeau has_triggered_attendance dans une seconde transaction

Une erreur à l'étape 3 est journalisée sans faire échouer le rapport :
la position de lecture reste enregistrée.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import InvalidInputError, NotFoundError
from app.models.course_material import MATERIAL_TYPE_VIDEO, CourseMaterial
from app.models.user import ROLE_STUDENT, User
from app.models.video_progress import VideoProgress
from app.schemas.video_progress import (
    AttendanceTriggerStatus,
    CourseVideoStat,
    MaterialSummary,
    ResumePosition,
    VideoProgressResponse,
    VideoProgressUpdate,
)
from app.services import attendance_service
from app.services.attendance_evaluator import resolve_threshold, should_trigger_attendance

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _lock_progress(
    db: Session, student_id: uuid.UUID, material_id: uuid.UUID
) -> Optional[VideoProgress]:
    """Relit la progression avec SELECT ... FOR UPDATE (sans effet sous SQLite)."""
    return db.execute(
        select(VideoProgress)
        .where(
            VideoProgress.student_id == student_id,
            VideoProgress.material_id == material_id,
        )
        .with_for_update()
    ).scalar()


def _get_or_create_progress(
    db: Session, student_id: uuid.UUID, material_id: uuid.UUID
) -> VideoProgress:
    """
    Retourne la ligne de progression verrouillée, créée au premier rapport.
    Deux premiers rapports simultanés : le perdant viole la contrainte unique
    (student_id, material_id) et relit la ligne du gagnant.
    """
    progress = _lock_progress(db, student_id, material_id)
    if progress is not None:
        return progress

    progress = VideoProgress(
        student_id=student_id,
        material_id=material_id,
        current_time=0.0,
        watched_percentage=0.0,
        watched_seconds=0.0,
        is_completed=False,
        has_triggered_attendance=False,
        watch_sessions=[],
    )
    try:
        with db.begin_nested():
            db.add(progress)
    except IntegrityError:
        logger.debug("Progression créée en parallèle pour %s / %s, relecture", student_id, material_id)
        progress = _lock_progress(db, student_id, material_id)
    return progress


def _compute_percentage(
    data: VideoProgressUpdate, total_duration: Optional[float]
) -> float:
    """Pourcentage déduit de la position si la durée est connue, sinon celui rapporté."""
    if total_duration and total_duration > 0:
        return min(data.current_time / total_duration * 100, 100.0)
    return data.watched_percentage or 0.0


def _append_session(progress: VideoProgress, data: VideoProgressUpdate) -> None:
    """Ajoute la session au journal en ne gardant que les WATCH_SESSIONS_LIMIT dernières."""
    if data.watch_session is None:
        return
    session_entry = data.watch_session.model_dump()
    session_entry["timestamp"] = _utcnow().isoformat()
    # Nouvelle liste : une mutation en place d'une colonne JSON n'est pas détectée
    sessions = list(progress.watch_sessions or []) + [session_entry]
    progress.watch_sessions = sessions[-settings.WATCH_SESSIONS_LIMIT:]


def update_progress(
    db: Session,
    data: VideoProgressUpdate,
    default_threshold: Optional[float] = None,
) -> VideoProgressResponse:
    """
    Enregistre un rapport de progression et déclenche la présence si besoin.

    - watched_percentage ne recule jamais (progression la plus avancée)
    - is_completed / completed_at sont posés une seule fois, jamais effacés
    - watch_sessions est plafonné à WATCH_SESSIONS_LIMIT entrées

    Lève NotFoundError si le support ou l'étudiant est introuvable,
    InvalidInputError si le support n'est pas une vidéo ou l'utilisateur pas un étudiant.
    """
    if default_threshold is None:
        default_threshold = settings.VIDEO_COMPLETION_THRESHOLD

    material = db.get(CourseMaterial, data.material_id)
    if material is None:
        raise NotFoundError(f"Support {data.material_id} introuvable.")
    if material.type != MATERIAL_TYPE_VIDEO:
        raise InvalidInputError("Le suivi de progression n'est disponible que pour les vidéos.")

    student = db.get(User, data.student_id)
    if student is None:
        raise NotFoundError(f"Étudiant {data.student_id} introuvable.")
    if student.role != ROLE_STUDENT:
        raise InvalidInputError("Seuls les étudiants ont une progression de visionnage.")

    progress = _get_or_create_progress(db, data.student_id, data.material_id)

    if data.total_duration:
        progress.total_duration = data.total_duration
    percentage = _compute_percentage(data, progress.total_duration)

    progress.current_time = data.current_time
    progress.watched_percentage = max(progress.watched_percentage or 0.0, percentage)
    if data.watched_seconds is not None:
        progress.watched_seconds = data.watched_seconds
    _append_session(progress, data)

    threshold = resolve_threshold(material, default_threshold)
    if not progress.is_completed and progress.watched_percentage >= threshold:
        progress.is_completed = True
        progress.completed_at = _utcnow()
        logger.info(
            "Étudiant %s a terminé la vidéo %s (%.1f%%)",
            data.student_id, data.material_id, progress.watched_percentage,
        )

    db.commit()
    db.refresh(progress)

    outcome = attendance_service.OUTCOME_NOT_TRIGGERED
    if should_trigger_attendance(progress, material, default_threshold):
        outcome = _trigger_attendance(db, progress, material, default_threshold)

    return _to_response(progress, material, attendance_outcome=outcome)


def _trigger_attendance(
    db: Session,
    progress: VideoProgress,
    material: CourseMaterial,
    default_threshold: float,
) -> str:
    """
    Seconde transaction : relit la progression sous verrou, réévalue, insère la présence
    et pose has_triggered_attendance, puis commit. Les erreurs de stockage sont absorbées.
    """
    try:
        locked = _lock_progress(db, progress.student_id, progress.material_id)
        if locked is None or not should_trigger_attendance(locked, material, default_threshold):
            db.rollback()
            return attendance_service.OUTCOME_ALREADY_PRESENT
        outcome = attendance_service.record_video_attendance(db, locked, material)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Échec de la présence automatique pour l'étudiant %s, vidéo %s : %s",
            progress.student_id, progress.material_id, exc, exc_info=True,
        )
        return attendance_service.OUTCOME_FAILED

    db.refresh(progress)
    return outcome


def get_progress(
    db: Session, student_id: uuid.UUID, material_id: uuid.UUID
) -> Optional[VideoProgressResponse]:
    """Progression d'un étudiant sur une vidéo, ou None s'il ne l'a jamais lancée."""
    row = db.execute(
        select(VideoProgress, CourseMaterial)
        .join(CourseMaterial, CourseMaterial.id == VideoProgress.material_id)
        .where(
            VideoProgress.student_id == student_id,
            VideoProgress.material_id == material_id,
        )
    ).first()
    if row is None:
        return None
    progress, material = row
    return _to_response(progress, material)


def get_resume_position(
    db: Session, student_id: uuid.UUID, material_id: uuid.UUID
) -> Optional[ResumePosition]:
    row = db.execute(
        select(VideoProgress.current_time, VideoProgress.watched_percentage).where(
            VideoProgress.student_id == student_id,
            VideoProgress.material_id == material_id,
        )
    ).first()
    if row is None:
        return None
    return ResumePosition(current_time=row[0], watched_percentage=row[1])


def get_progress_by_course(
    db: Session, student_id: uuid.UUID, course_id: uuid.UUID
) -> list[VideoProgressResponse]:
    """Progressions d'un étudiant sur les vidéos d'un cours, par semaine puis ordre."""
    rows = db.execute(
        select(VideoProgress, CourseMaterial)
        .join(CourseMaterial, CourseMaterial.id == VideoProgress.material_id)
        .where(
            VideoProgress.student_id == student_id,
            CourseMaterial.course_id == course_id,
            CourseMaterial.type == MATERIAL_TYPE_VIDEO,
        )
        .order_by(CourseMaterial.week, CourseMaterial.order_index)
    ).all()
    return [_to_response(progress, material) for progress, material in rows]


def get_course_video_stats(db: Session, course_id: uuid.UUID) -> list[CourseVideoStat]:
    """Statistiques de visionnage par vidéo d'un cours (vidéos sans spectateur comprises)."""
    completed = func.sum(case((VideoProgress.is_completed.is_(True), 1), else_=0))
    triggered = func.sum(case((VideoProgress.has_triggered_attendance.is_(True), 1), else_=0))

    rows = db.execute(
        select(
            CourseMaterial.id,
            CourseMaterial.title,
            func.count(VideoProgress.id),
            completed,
            func.avg(VideoProgress.watched_percentage),
            triggered,
        )
        .outerjoin(VideoProgress, VideoProgress.material_id == CourseMaterial.id)
        .where(
            CourseMaterial.course_id == course_id,
            CourseMaterial.type == MATERIAL_TYPE_VIDEO,
        )
        .group_by(CourseMaterial.id, CourseMaterial.title, CourseMaterial.week, CourseMaterial.order_index)
        .order_by(CourseMaterial.week, CourseMaterial.order_index)
    ).all()

    stats = []
    for material_id, title, viewers, completed_count, avg_completion, triggered_count in rows:
        viewers = viewers or 0
        completed_count = completed_count or 0
        stats.append(CourseVideoStat(
            material_id=material_id,
            title=title,
            total_viewers=viewers,
            completed_viewers=completed_count,
            completion_rate=round(completed_count / viewers * 100, 1) if viewers else 0.0,
            avg_completion=round(float(avg_completion or 0.0), 1),
            attendance_triggered=triggered_count or 0,
        ))
    return stats


def get_attendance_trigger_status(
    db: Session,
    material_id: uuid.UUID,
    default_threshold: Optional[float] = None,
) -> AttendanceTriggerStatus:
    """
    Compare les complétions et les présences déclenchées d'une vidéo.
    needs_reconcile signale des complétions restées sans présence.
    """
    if default_threshold is None:
        default_threshold = settings.VIDEO_COMPLETION_THRESHOLD

    material = db.get(CourseMaterial, material_id)
    if material is None:
        raise NotFoundError(f"Support {material_id} introuvable.")

    completed, triggered = db.execute(
        select(
            func.sum(case((VideoProgress.is_completed.is_(True), 1), else_=0)),
            func.sum(case((VideoProgress.has_triggered_attendance.is_(True), 1), else_=0)),
        ).where(VideoProgress.material_id == material_id)
    ).one()
    completed = completed or 0
    triggered = triggered or 0

    pending = max(completed - triggered, 0) if material.is_attendance_trigger else 0
    return AttendanceTriggerStatus(
        material_id=material.id,
        is_attendance_trigger=bool(material.is_attendance_trigger),
        threshold=resolve_threshold(material, default_threshold),
        completed_students=completed,
        attendance_triggered=triggered,
        pending_trigger=pending,
        needs_reconcile=pending > 0,
    )


def _to_response(
    progress: VideoProgress,
    material: Optional[CourseMaterial] = None,
    attendance_outcome: Optional[str] = None,
) -> VideoProgressResponse:
    return VideoProgressResponse(
        id=progress.id,
        student_id=progress.student_id,
        material_id=progress.material_id,
        current_time=progress.current_time,
        total_duration=progress.total_duration,
        watched_percentage=progress.watched_percentage,
        watched_seconds=progress.watched_seconds,
        is_completed=progress.is_completed,
        completed_at=progress.completed_at,
        has_triggered_attendance=progress.has_triggered_attendance,
        watch_sessions_count=len(progress.watch_sessions or []),
        material=MaterialSummary.model_validate(material) if material is not None else None,
        attendance_outcome=attendance_outcome,
        created_at=progress.created_at,
        updated_at=progress.updated_at,
    )
