"""
Tests d'intégration API pour la configuration de présence des supports
et la réconciliation des présences vidéo.
"""

import uuid
from datetime import datetime
from unittest.mock import patch

from app.exceptions import InvalidInputError, NotFoundError
from app.schemas.attendance import ReconcileError, ReconcileReport
from app.schemas.course_material import AttendanceSettingsResult, CourseMaterialResponse
from app.schemas.video_progress import AttendanceTriggerStatus


# --- Helpers ---

MATERIAL_ID = uuid.uuid4()


def make_material_response(**kwargs) -> CourseMaterialResponse:
    return CourseMaterialResponse(
        id=MATERIAL_ID,
        course_id=kwargs.get("course_id", uuid.uuid4()),
        title=kwargs.get("title", "Pertemuan 3 - Routing"),
        type="video",
        week=3,
        order_index=1,
        is_attendance_trigger=kwargs.get("is_attendance_trigger", True),
        attendance_threshold=kwargs.get("attendance_threshold", 80.0),
        updated_at=datetime.now(),
    )


def make_report(**kwargs) -> ReconcileReport:
    return ReconcileReport(
        material_id=MATERIAL_ID,
        scanned=kwargs.get("scanned", 3),
        created=kwargs.get("created", 3),
        already_present=kwargs.get("already_present", 0),
        skipped=kwargs.get("skipped", 0),
        errors=kwargs.get("errors", []),
    )


# ============================================================
# GET /api/v1/materials/{id}
# ============================================================

def test_get_material(client):
    with patch("app.routers.materials.course_material_service.get_material") as mock:
        mock.return_value = make_material_response()
        response = client.get(f"/api/v1/materials/{MATERIAL_ID}")

    assert response.status_code == 200
    assert response.json()["is_attendance_trigger"] is True


def test_get_material_introuvable(client):
    with patch("app.routers.materials.course_material_service.get_material") as mock:
        mock.return_value = None
        response = client.get(f"/api/v1/materials/{MATERIAL_ID}")

    assert response.status_code == 404


# ============================================================
# PATCH /api/v1/materials/{id}/attendance-settings
# ============================================================

def test_activation_avec_reconciliation(client):
    with patch("app.routers.materials.course_material_service.update_attendance_settings") as mock:
        mock.return_value = AttendanceSettingsResult(
            material=make_material_response(), reconcile=make_report(created=3),
        )
        response = client.patch(
            f"/api/v1/materials/{MATERIAL_ID}/attendance-settings",
            json={"is_attendance_trigger": True},
        )

    assert response.status_code == 200
    assert response.json()["reconcile"]["created"] == 3
    sent = mock.call_args[0][2]
    assert sent.is_attendance_trigger is True
    assert "attendance_threshold" not in sent.model_dump(exclude_unset=True)


def test_seuil_hors_bornes(client):
    for threshold in (0, -5, 100.5):
        response = client.patch(
            f"/api/v1/materials/{MATERIAL_ID}/attendance-settings",
            json={"attendance_threshold": threshold},
        )
        assert response.status_code == 422


def test_reglages_support_introuvable(client):
    with patch("app.routers.materials.course_material_service.update_attendance_settings") as mock:
        mock.side_effect = NotFoundError("Support introuvable.")
        response = client.patch(
            f"/api/v1/materials/{MATERIAL_ID}/attendance-settings",
            json={"attendance_threshold": 70},
        )

    assert response.status_code == 404


# ============================================================
# GET /api/v1/materials/{id}/attendance-status
# ============================================================

def test_statut_declencheur(client):
    with patch("app.routers.materials.video_progress_service.get_attendance_trigger_status") as mock:
        mock.return_value = AttendanceTriggerStatus(
            material_id=MATERIAL_ID, is_attendance_trigger=True, threshold=80.0,
            completed_students=10, attendance_triggered=8, pending_trigger=2, needs_reconcile=True,
        )
        response = client.get(f"/api/v1/materials/{MATERIAL_ID}/attendance-status")

    assert response.status_code == 200
    assert response.json()["needs_reconcile"] is True
    assert response.json()["pending_trigger"] == 2


def test_statut_introuvable(client):
    with patch("app.routers.materials.video_progress_service.get_attendance_trigger_status") as mock:
        mock.side_effect = NotFoundError("Support introuvable.")
        response = client.get(f"/api/v1/materials/{MATERIAL_ID}/attendance-status")

    assert response.status_code == 404


# ============================================================
# POST /api/v1/materials/{id}/reconcile-attendance
# ============================================================

def test_reconciliation(client):
    student_id = uuid.uuid4()
    with patch("app.routers.materials.attendance_service.reconcile_material") as mock:
        mock.return_value = make_report(
            scanned=2, created=1, errors=[ReconcileError(student_id=student_id, error="timeout")],
        )
        response = client.post(f"/api/v1/materials/{MATERIAL_ID}/reconcile-attendance")

    assert response.status_code == 200
    body = response.json()
    assert body["created"] == 1
    assert body["errors"][0]["student_id"] == str(student_id)
    assert mock.call_args.kwargs["include_triggered"] is False


def test_reconciliation_reprise(client):
    with patch("app.routers.materials.attendance_service.reconcile_material") as mock:
        mock.return_value = make_report()
        client.post(f"/api/v1/materials/{MATERIAL_ID}/reconcile-attendance?include_triggered=true")

    assert mock.call_args.kwargs["include_triggered"] is True


def test_reconciliation_support_introuvable(client):
    with patch("app.routers.materials.attendance_service.reconcile_material") as mock:
        mock.side_effect = NotFoundError("Support introuvable.")
        response = client.post(f"/api/v1/materials/{MATERIAL_ID}/reconcile-attendance")

    assert response.status_code == 404


def test_reconciliation_support_non_declencheur(client):
    with patch("app.routers.materials.attendance_service.reconcile_material") as mock:
        mock.side_effect = InvalidInputError("Le support n'est pas configuré comme déclencheur de présence.")
        response = client.post(f"/api/v1/materials/{MATERIAL_ID}/reconcile-attendance")

    assert response.status_code == 400


# ============================================================
# Parcours complet sur SQLite
# ============================================================

def test_activation_puis_reconciliation_idempotente(sqlite_client, db_session, seed):
    """L'activation rattrape la complétion existante ; une réconciliation manuelle ensuite ne crée rien."""
    seed.material.is_attendance_trigger = False
    db_session.commit()
    student_id = str(seed.student.id)
    material_id = str(seed.material.id)
    db_session.commit()

    response = sqlite_client.post("/api/v1/video-progress", json={
        "student_id": student_id, "material_id": material_id,
        "current_time": 90, "total_duration": 100,
    })
    assert response.json()["is_completed"] is True
    assert response.json()["attendance_outcome"] == "not_triggered"

    response = sqlite_client.patch(
        f"/api/v1/materials/{material_id}/attendance-settings",
        json={"is_attendance_trigger": True},
    )
    assert response.status_code == 200
    assert response.json()["reconcile"]["created"] == 1

    response = sqlite_client.post(f"/api/v1/materials/{material_id}/reconcile-attendance")
    assert response.status_code == 200
    assert response.json()["scanned"] == 0
    assert response.json()["created"] == 0
