"""
Service métier des présences.

Deux chemins d'écriture :
- automatique : record_video_attendance() appelé quand une vidéo déclencheuse est complétée,
  et reconcile_material() qui rattrape les complétions restées sans présence
- manuel : create_attendance() / update_attendance() par l'enseignant

Insertion automatique atomique :
1. Une présence existe déjà pour (étudiant, cours, date) → rien à insérer (already_present)
2. Sinon INSERT dans un SAVEPOINT ; un doublon concurrent viole l'index unique partiel
   uq_attendances_video_completion_per_day → IntegrityError absorbée (already_present)
3. Dans tous les cas has_triggered_attendance passe à True dans la même transaction
"""

import uuid
import logging
import datetime as dt
from datetime import datetime, timezone
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import ConflictError, InvalidInputError, NotFoundError
from app.models.attendance import (
    STATUS_ABSENT,
    STATUS_AUTO_PRESENT,
    STATUS_EXCUSED,
    STATUS_LATE,
    STATUS_PRESENT,
    TYPE_VIDEO_COMPLETION,
    Attendance,
)
from app.models.course import Course, CourseStudent
from app.models.course_material import CourseMaterial
from app.models.user import User
from app.models.video_progress import VideoProgress
from app.schemas.attendance import (
    AttendanceCreate,
    AttendanceDay,
    AttendancePage,
    AttendanceQuery,
    AttendanceResponse,
    AttendanceStats,
    AttendanceUpdate,
    CourseAttendanceByWeek,
    EnrolledStudent,
    ReconcileError,
    ReconcileReport,
    WeeklyAttendance,
    WeeklyAttendanceStat,
)
from app.services.attendance_evaluator import should_trigger_attendance

logger = logging.getLogger(__name__)

OUTCOME_CREATED = "created"
OUTCOME_ALREADY_PRESENT = "already_present"
OUTCOME_NOT_TRIGGERED = "not_triggered"
OUTCOME_FAILED = "failed"

WEEKS_PER_SEMESTER = 16
PRESENT_STATUSES = (STATUS_PRESENT, STATUS_AUTO_PRESENT, STATUS_LATE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def attendance_date_for(moment: Optional[datetime]) -> dt.date:
    """
    Date calendaire de la présence, dans le fuseau ATTENDANCE_TIMEZONE.
    Un datetime naïf (relu depuis SQLite par exemple) est considéré comme UTC.
    """
    moment = moment or _utcnow()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(settings.ATTENDANCE_TIMEZONE)).date()


def _existing_attendance_id(
    db: Session, student_id: uuid.UUID, course_id: uuid.UUID, attendance_date: dt.date
) -> Optional[uuid.UUID]:
    return db.execute(
        select(Attendance.id)
        .where(
            Attendance.student_id == student_id,
            Attendance.course_id == course_id,
            Attendance.attendance_date == attendance_date,
        )
        .limit(1)
    ).scalar()


def record_video_attendance(
    db: Session,
    progress: VideoProgress,
    material: CourseMaterial,
) -> str:
    """
    Crée la présence auto_present d'une complétion vidéo, au plus une fois par jour.

    S'exécute dans la transaction de l'appelant, qui commite.
    Retourne OUTCOME_CREATED ou OUTCOME_ALREADY_PRESENT ; ne lève que les erreurs de stockage.
    """
    completed_at = progress.completed_at or _utcnow()
    attendance_date = attendance_date_for(completed_at)
    percentage = float(progress.watched_percentage or 0.0)

    if _existing_attendance_id(db, progress.student_id, material.course_id, attendance_date):
        progress.has_triggered_attendance = True
        logger.debug(
            "Présence déjà enregistrée : étudiant %s, cours %s, %s",
            progress.student_id, material.course_id, attendance_date,
        )
        return OUTCOME_ALREADY_PRESENT

    attendance = Attendance(
        student_id=progress.student_id,
        course_id=material.course_id,
        trigger_material_id=material.id,
        attendance_date=attendance_date,
        week=material.week,
        status=STATUS_AUTO_PRESENT,
        attendance_type=TYPE_VIDEO_COMPLETION,
        submitted_at=completed_at,
        notes=f"Auto-submitted via video completion ({percentage:.1f}%)",
        attendance_metadata={
            "video_progress": round(percentage, 2),
            "completion_time": completed_at.isoformat(),
            "source": "video_completion",
        },
    )

    try:
        with db.begin_nested():
            db.add(attendance)
    except IntegrityError:
        # Insertion concurrente pour le même jour : l'index unique a tranché
        progress.has_triggered_attendance = True
        logger.warning(
            "Présence automatique concurrente ignorée : étudiant %s, cours %s, %s",
            progress.student_id, material.course_id, attendance_date,
        )
        return OUTCOME_ALREADY_PRESENT

    progress.has_triggered_attendance = True
    logger.info(
        "Présence automatique créée : étudiant %s, cours %s, %s (%.1f%% de la vidéo %s)",
        progress.student_id, material.course_id, attendance_date, percentage, material.id,
    )
    return OUTCOME_CREATED


def reconcile_material(
    db: Session,
    material_id: uuid.UUID,
    default_threshold: Optional[float] = None,
    include_triggered: bool = False,
) -> ReconcileReport:
    """
    Rattrape les présences des complétions d'une vidéo déclencheuse.

    Parcourt les progressions complétées (par défaut celles qui n'ont pas encore
    déclenché ; toutes si include_triggered, pour une reprise après sinistre),
    applique la même décision et la même insertion que le chemin temps réel.
    Chaque ligne est isolée dans un SAVEPOINT : une erreur est consignée puis on continue.
    Un seul commit final. Relancer la réconciliation ne crée rien de plus.

    Lève NotFoundError si le support est introuvable,
    InvalidInputError s'il n'est pas configuré comme déclencheur.
    """
    if default_threshold is None:
        default_threshold = settings.VIDEO_COMPLETION_THRESHOLD

    material = db.get(CourseMaterial, material_id)
    if material is None:
        raise NotFoundError(f"Support {material_id} introuvable.")
    if not material.is_attendance_trigger:
        raise InvalidInputError(
            f"Le support {material_id} n'est pas configuré comme déclencheur de présence."
        )

    stmt = (
        select(VideoProgress, User)
        .join(User, User.id == VideoProgress.student_id)
        .where(
            VideoProgress.material_id == material_id,
            VideoProgress.is_completed.is_(True),
        )
        .order_by(User.full_name)
    )
    if not include_triggered:
        stmt = stmt.where(VideoProgress.has_triggered_attendance.is_(False))

    rows = db.execute(stmt).all()
    logger.info(
        "Réconciliation du support %s : %d progression(s) complétée(s) à examiner",
        material_id, len(rows),
    )

    created = already_present = skipped = 0
    errors: List[ReconcileError] = []

    for progress, student in rows:
        before = progress.has_triggered_attendance
        if not should_trigger_attendance(
            progress, material, default_threshold, ignore_triggered_flag=include_triggered
        ):
            skipped += 1
            logger.debug(
                "%s : %.1f%% sous le seuil, ignoré", student.full_name, progress.watched_percentage
            )
            continue

        try:
            with db.begin_nested():
                outcome = record_video_attendance(db, progress, material)
        except SQLAlchemyError as exc:
            errors.append(ReconcileError(student_id=progress.student_id, error=str(exc)))
            logger.error("Échec de la réconciliation pour %s : %s", student.full_name, exc)
            continue

        if outcome == OUTCOME_CREATED:
            created += 1
        else:
            already_present += 1
        logger.info(
            "%s (%s) : %.1f%%, déclenché %s → %s, %s",
            student.full_name, student.student_number or "-", progress.watched_percentage,
            before, progress.has_triggered_attendance, outcome,
        )

    db.commit()

    logger.info(
        "Réconciliation du support %s terminée : %d examinés, %d créés, %d déjà présents, "
        "%d ignorés, %d erreurs",
        material_id, len(rows), created, already_present, skipped, len(errors),
    )

    return ReconcileReport(
        material_id=material_id,
        scanned=len(rows),
        created=created,
        already_present=already_present,
        skipped=skipped,
        errors=errors,
    )


def _check_verifier(db: Session, verifier_id: Optional[uuid.UUID]) -> None:
    if verifier_id is not None and db.get(User, verifier_id) is None:
        raise NotFoundError(f"Vérificateur {verifier_id} introuvable.")


def create_attendance(
    db: Session,
    data: AttendanceCreate,
    created_by: Optional[uuid.UUID] = None,
) -> AttendanceResponse:
    """
    Enregistre une présence saisie par un enseignant.

    Lève NotFoundError si l'étudiant, le cours ou le vérificateur est introuvable,
    ConflictError si une présence existe déjà pour ce jour.
    """
    if db.get(User, data.student_id) is None:
        raise NotFoundError(f"Étudiant {data.student_id} introuvable.")
    if db.get(Course, data.course_id) is None:
        raise NotFoundError(f"Cours {data.course_id} introuvable.")
    _check_verifier(db, created_by)

    if _existing_attendance_id(db, data.student_id, data.course_id, data.attendance_date):
        raise ConflictError("Une présence existe déjà pour cette date.")

    now = _utcnow()
    attendance = Attendance(
        student_id=data.student_id,
        course_id=data.course_id,
        attendance_date=data.attendance_date,
        week=data.week,
        status=data.status,
        attendance_type=data.attendance_type,
        notes=data.notes,
        submitted_at=now,
        verified_by=created_by,
        verified_at=now if created_by else None,
    )
    db.add(attendance)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Une présence existe déjà pour cette date.")
    db.refresh(attendance)
    return _to_response(attendance)


def update_attendance(
    db: Session,
    attendance_id: uuid.UUID,
    data: AttendanceUpdate,
    updated_by: Optional[uuid.UUID] = None,
) -> AttendanceResponse:
    """Correction manuelle (statut, notes). Lève NotFoundError si la présence ou le vérificateur n'existe pas."""
    attendance = db.get(Attendance, attendance_id)
    if attendance is None:
        raise NotFoundError(f"Présence {attendance_id} introuvable.")
    _check_verifier(db, updated_by)

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(attendance, field, value)

    if updated_by:
        attendance.verified_by = updated_by
        attendance.verified_at = _utcnow()

    db.commit()
    db.refresh(attendance)
    return _to_response(attendance)


def list_attendances(db: Session, query: AttendanceQuery) -> AttendancePage:
    """Présences filtrées et paginées, de la plus récente à la plus ancienne."""
    stmt = select(Attendance)
    if query.course_id:
        stmt = stmt.where(Attendance.course_id == query.course_id)
    if query.student_id:
        stmt = stmt.where(Attendance.student_id == query.student_id)
    if query.start_date:
        stmt = stmt.where(Attendance.attendance_date >= query.start_date)
    if query.end_date:
        stmt = stmt.where(Attendance.attendance_date <= query.end_date)
    if query.status:
        stmt = stmt.where(Attendance.status == query.status)
    if query.attendance_type:
        stmt = stmt.where(Attendance.attendance_type == query.attendance_type)

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar() or 0

    attendances = db.execute(
        stmt.order_by(Attendance.attendance_date.desc(), Attendance.created_at.desc())
        .offset((query.page - 1) * query.limit)
        .limit(query.limit)
    ).scalars().all()

    return AttendancePage(
        data=[_to_response(a) for a in attendances],
        total=total,
        page=query.page,
        limit=query.limit,
    )


def get_course_attendance_stats(
    db: Session,
    course_id: uuid.UUID,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
) -> AttendanceStats:
    """
    Compte les présences d'un cours par statut.
    Le taux rapporte les présences effectives (hors absent) au nombre d'inscrits.
    """
    if db.get(Course, course_id) is None:
        raise NotFoundError(f"Cours {course_id} introuvable.")

    total_students = db.execute(
        select(func.count())
        .select_from(CourseStudent)
        .where(CourseStudent.course_id == course_id)
    ).scalar() or 0

    stmt = (
        select(Attendance.status, func.count())
        .where(Attendance.course_id == course_id)
        .group_by(Attendance.status)
    )
    if start_date:
        stmt = stmt.where(Attendance.attendance_date >= start_date)
    if end_date:
        stmt = stmt.where(Attendance.attendance_date <= end_date)

    counts = {status: count for status, count in db.execute(stmt).all()}
    present = counts.get(STATUS_PRESENT, 0)
    auto_present = counts.get(STATUS_AUTO_PRESENT, 0)
    excused = counts.get(STATUS_EXCUSED, 0)
    late = counts.get(STATUS_LATE, 0)

    attended = present + auto_present + excused + late
    rate = attended / total_students * 100 if total_students else 0.0

    return AttendanceStats(
        course_id=course_id,
        total_students=total_students,
        present_count=present,
        absent_count=counts.get(STATUS_ABSENT, 0),
        excused_count=excused,
        late_count=late,
        auto_attendance_count=auto_present,
        attendance_rate=round(rate, 2),
    )


def get_student_attendance(
    db: Session, student_id: uuid.UUID, course_id: uuid.UUID
) -> list[AttendanceResponse]:
    """Historique des présences d'un étudiant dans un cours, plus récentes d'abord."""
    attendances = db.execute(
        select(Attendance)
        .where(Attendance.student_id == student_id, Attendance.course_id == course_id)
        .order_by(Attendance.attendance_date.desc())
    ).scalars().all()
    return [_to_response(a) for a in attendances]


def can_auto_submit_today(db: Session, student_id: uuid.UUID, course_id: uuid.UUID) -> bool:
    """True si aucune présence n'est encore enregistrée aujourd'hui pour ce cours."""
    return _existing_attendance_id(db, student_id, course_id, attendance_date_for(None)) is None


def get_course_attendance_by_week(
    db: Session,
    course_id: uuid.UUID,
    week: Optional[int] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
) -> CourseAttendanceByWeek:
    """
    Présences d'un cours regroupées par semaine puis par séance, avec les inscrits
    sans présence à chaque séance et les statistiques de la semaine.

    La semaine d'une présence est sa colonne week, sinon celle du support déclencheur,
    sinon une semaine déduite de la date. Sans filtre week, seules les semaines
    ayant au moins une présence sont renvoyées.

    Lève NotFoundError si le cours est introuvable.
    """
    if db.get(Course, course_id) is None:
        raise NotFoundError(f"Cours {course_id} introuvable.")

    students = db.execute(
        select(User)
        .join(CourseStudent, CourseStudent.student_id == User.id)
        .where(CourseStudent.course_id == course_id)
        .order_by(User.full_name)
    ).scalars().all()
    enrolled = [EnrolledStudent.model_validate(s) for s in students]

    stmt = (
        select(Attendance, CourseMaterial.week)
        .join(User, User.id == Attendance.student_id)
        .outerjoin(CourseMaterial, CourseMaterial.id == Attendance.trigger_material_id)
        .where(Attendance.course_id == course_id)
        .order_by(Attendance.attendance_date.desc(), User.full_name)
    )
    if start_date:
        stmt = stmt.where(Attendance.attendance_date >= start_date)
    if end_date:
        stmt = stmt.where(Attendance.attendance_date <= end_date)

    # semaine -> date -> présences, dates dans l'ordre décroissant de la requête
    by_week: Dict[int, Dict[dt.date, List[Attendance]]] = {}
    for attendance, material_week in db.execute(stmt).all():
        week_number = attendance.week or material_week or _week_from_date(attendance.attendance_date)
        by_week.setdefault(week_number, {}).setdefault(attendance.attendance_date, []).append(attendance)

    selected = [week] if week is not None else sorted(by_week)
    return CourseAttendanceByWeek(
        course_id=course_id,
        students=enrolled,
        weeks=[_weekly_attendance(w, by_week.get(w, {}), enrolled) for w in selected],
    )


def _week_from_date(day: dt.date) -> int:
    return (day.timetuple().tm_yday - 1) // 7 % WEEKS_PER_SEMESTER + 1


def _weekly_attendance(
    week: int, days: Dict[dt.date, List[Attendance]], enrolled: List[EnrolledStudent]
) -> WeeklyAttendance:
    present = absent = auto = 0
    day_items = []
    for attendance_date, attendances in days.items():
        recorded = {a.student_id for a in attendances}
        day_present = sum(1 for a in attendances if a.status in PRESENT_STATUSES)
        present += day_present
        absent += sum(1 for a in attendances if a.status == STATUS_ABSENT)
        auto += sum(1 for a in attendances if a.status == STATUS_AUTO_PRESENT)
        day_items.append(AttendanceDay(
            attendance_date=attendance_date,
            attendances=[_to_response(a) for a in attendances],
            present_count=day_present,
            missing_students=[s for s in enrolled if s.id not in recorded],
        ))

    total = len(enrolled)
    return WeeklyAttendance(
        week=week,
        days=day_items,
        stats=WeeklyAttendanceStat(
            week=week,
            total_students=total,
            present_count=present,
            absent_count=absent,
            auto_attendance_count=auto,
            attendance_rate=round(present / total * 100, 2) if total else 0.0,
        ),
    )


def _to_response(attendance: Attendance) -> AttendanceResponse:
    return AttendanceResponse(
        id=attendance.id,
        student_id=attendance.student_id,
        course_id=attendance.course_id,
        trigger_material_id=attendance.trigger_material_id,
        attendance_date=attendance.attendance_date,
        week=attendance.week,
        status=attendance.status,
        attendance_type=attendance.attendance_type,
        notes=attendance.notes,
        submitted_at=attendance.submitted_at,
        verified_by=attendance.verified_by,
        verified_at=attendance.verified_at,
        metadata=attendance.attendance_metadata,
        created_at=attendance.created_at,
    )
