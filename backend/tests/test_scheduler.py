"""
Tests du planificateur de réconciliation (APScheduler).
"""

from unittest.mock import patch

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app import scheduler as scheduler_module
from app.config import settings
from app.exceptions import InvalidInputError
from app.models.attendance import Attendance
from app.models.video_progress import VideoProgress
from app.schemas.attendance import ReconcileReport
from factories import add_material


def test_desactive_par_defaut(monkeypatch):
    monkeypatch.setattr(settings, "AUTO_RECONCILE_INTERVAL_MINUTES", 0)
    with patch.object(scheduler_module, "scheduler") as sched:
        scheduler_module.start_scheduler()

    sched.add_job.assert_not_called()
    sched.start.assert_not_called()


def test_job_planifie(monkeypatch):
    monkeypatch.setattr(settings, "AUTO_RECONCILE_INTERVAL_MINUTES", 15)
    with patch.object(scheduler_module, "scheduler") as sched:
        scheduler_module.start_scheduler()

    kwargs = sched.add_job.call_args.kwargs
    assert kwargs["minutes"] == 15
    assert kwargs["id"] == "video_attendance_reconcile"
    sched.start.assert_called_once()


def test_job_reconcilie_les_declencheurs(session_factory, db_session, seed):
    """Seules les vidéos déclencheuses sont réconciliées."""
    plain = add_material(db_session, seed.course, is_attendance_trigger=False, week=2, title="Pertemuan 2")
    for material in (seed.material, plain):
        db_session.add(VideoProgress(
            student_id=seed.student.id, material_id=material.id,
            current_time=95, total_duration=100, watched_percentage=95, watched_seconds=95,
            is_completed=True, has_triggered_attendance=False,
        ))
    db_session.commit()
    db_session.close()

    with patch.object(scheduler_module, "SessionLocal", session_factory):
        scheduler_module._reconcile_trigger_materials()

    check = session_factory()
    attendances = check.execute(select(Attendance)).scalars().all()
    pending = check.execute(
        select(func.count()).select_from(VideoProgress).where(VideoProgress.has_triggered_attendance.is_(False))
    ).scalar()
    check.close()

    assert len(attendances) == 1
    assert attendances[0].trigger_material_id is not None
    assert pending == 1


def test_job_continue_apres_un_echec(session_factory, db_session, seed):
    """Un support en erreur est journalisé puis ignoré, les suivants sont réconciliés."""
    for week in (2, 3):
        add_material(db_session, seed.course, week=week, title=f"Pertemuan {week}")
    db_session.close()

    report = ReconcileReport(material_id=seed.material.id, scanned=1, created=1, already_present=0, skipped=0)
    with patch.object(scheduler_module, "SessionLocal", session_factory), \
         patch("app.services.attendance_service.reconcile_material") as mock_reconcile:
        mock_reconcile.side_effect = [
            InvalidInputError("Le support n'est pas une vidéo."),
            OperationalError("SELECT 1", {}, Exception("server closed the connection")),
            report,
        ]
        scheduler_module._reconcile_trigger_materials()

    assert mock_reconcile.call_count == 3
