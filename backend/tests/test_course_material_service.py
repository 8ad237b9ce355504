"""
Tests de la configuration de présence des supports (SQLite en mémoire).
L'activation du déclencheur ou la baisse du seuil doit rattraper les complétions existantes.
"""

import uuid

import pytest
from sqlalchemy import func, select

from app.exceptions import NotFoundError
from app.models.attendance import Attendance
from app.schemas.course_material import AttendanceSettingsUpdate
from app.schemas.video_progress import VideoProgressUpdate
from app.services.course_material_service import get_material, update_attendance_settings
from app.services.video_progress_service import update_progress
from factories import add_material, add_student


def watch(db, student, material, percentage):
    update_progress(db, VideoProgressUpdate(
        student_id=student.id, material_id=material.id,
        current_time=percentage, total_duration=100,
    ))


def count_attendances(db):
    return db.execute(select(func.count()).select_from(Attendance)).scalar()


def test_get_material(db_session, seed):
    result = get_material(db_session, seed.material.id)
    assert result.title == "Pertemuan 1"
    assert result.is_attendance_trigger is True
    assert result.attendance_threshold == 80.0


def test_get_material_introuvable(db_session, seed):
    assert get_material(db_session, uuid.uuid4()) is None


def test_introuvable(db_session, seed):
    with pytest.raises(NotFoundError):
        update_attendance_settings(db_session, uuid.uuid4(), AttendanceSettingsUpdate(is_attendance_trigger=True))


def test_activation_rattrape_les_completions(db_session, seed):
    """Trois étudiants terminent une vidéo non déclencheuse, puis l'enseignant active le déclencheur."""
    video = add_material(db_session, seed.course, is_attendance_trigger=False, attendance_threshold=80,
                         week=2, title="Pertemuan 2")
    students = [seed.student] + [
        add_student(db_session, full_name=name, student_number=number, course=seed.course)
        for name, number in (("Ani Lestari", "2021002"), ("Citra Ayu", "2021003"))
    ]
    for student in students:
        watch(db_session, student, video, 90)
    assert count_attendances(db_session) == 0

    result = update_attendance_settings(
        db_session, video.id, AttendanceSettingsUpdate(is_attendance_trigger=True)
    )

    assert result.material.is_attendance_trigger is True
    assert result.reconcile is not None
    assert result.reconcile.created == 3
    assert count_attendances(db_session) == 3


def test_deja_declencheur_pas_de_reconciliation(db_session, seed):
    result = update_attendance_settings(
        db_session, seed.material.id, AttendanceSettingsUpdate(is_attendance_trigger=True)
    )
    assert result.reconcile is None


def test_hausse_du_seuil_pas_de_reconciliation(db_session, seed):
    result = update_attendance_settings(
        db_session, seed.material.id, AttendanceSettingsUpdate(attendance_threshold=90)
    )
    assert result.material.attendance_threshold == 90.0
    assert result.reconcile is None


def test_baisse_du_seuil_reconcilie(db_session, seed):
    result = update_attendance_settings(
        db_session, seed.material.id, AttendanceSettingsUpdate(attendance_threshold=70)
    )
    assert result.material.attendance_threshold == 70.0
    assert result.reconcile is not None
    assert result.reconcile.scanned == 0


def test_desactivation(db_session, seed):
    watch(db_session, seed.student, seed.material, 50)
    result = update_attendance_settings(
        db_session, seed.material.id, AttendanceSettingsUpdate(is_attendance_trigger=False)
    )
    assert result.material.is_attendance_trigger is False
    assert result.reconcile is None

    watch(db_session, seed.student, seed.material, 95)
    assert count_attendances(db_session) == 0


def test_seuil_remis_au_global(db_session, seed):
    result = update_attendance_settings(
        db_session, seed.material.id, AttendanceSettingsUpdate(attendance_threshold=None),
        default_threshold=60,
    )
    assert result.material.attendance_threshold is None
    assert result.reconcile is not None  # 80 → 60 : seuil effectif abaissé
