"""
Schémas Pydantic pour les présences (saisie manuelle, consultation, réconciliation).
"""

import uuid
import datetime as dt
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator, model_validator

VALID_STATUSES = {"present", "absent", "auto_present", "excused", "late"}
VALID_ATTENDANCE_TYPES = {"manual", "video_completion", "qr_code", "location_based"}
MAX_PAGE_SIZE = 100


class AttendanceCreate(BaseModel):
    """Présence saisie manuellement par un enseignant."""
    student_id: uuid.UUID
    course_id: uuid.UUID
    attendance_date: dt.date
    status: str = "present"
    attendance_type: str = "manual"
    week: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in VALID_STATUSES:
            raise ValueError(f"Statut invalide. Valeurs acceptées : {VALID_STATUSES}")
        return v

    @field_validator("attendance_type")
    @classmethod
    def manual_types_only(cls, v: str) -> str:
        # video_completion est réservé au déclenchement automatique
        allowed = VALID_ATTENDANCE_TYPES - {"video_completion"}
        if v not in allowed:
            raise ValueError(f"Type de présence invalide. Valeurs acceptées : {allowed}")
        return v


class AttendanceUpdate(BaseModel):
    """Correction manuelle d'une présence existante."""
    status: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: Optional[str]) -> Optional[str]:
        # Un statut omis reste inchangé ; un statut explicitement nul est refusé
        if v is None:
            raise ValueError("Le statut ne peut pas être nul.")
        if v not in VALID_STATUSES:
            raise ValueError(f"Statut invalide. Valeurs acceptées : {VALID_STATUSES}")
        return v


class AttendanceQuery(BaseModel):
    """Filtres de GET /api/v1/attendances."""
    course_id: Optional[uuid.UUID] = None
    student_id: Optional[uuid.UUID] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    status: Optional[str] = None
    attendance_type: Optional[str] = None
    page: int = 1
    limit: int = 20

    @field_validator("page")
    @classmethod
    def page_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("page doit être au moins 1.")
        return v

    @field_validator("limit")
    @classmethod
    def limit_in_range(cls, v: int) -> int:
        if not 1 <= v <= MAX_PAGE_SIZE:
            raise ValueError(f"limit doit être compris entre 1 et {MAX_PAGE_SIZE}.")
        return v

    @model_validator(mode="after")
    def dates_ordered(self) -> "AttendanceQuery":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date doit précéder end_date.")
        return self


class AttendanceResponse(BaseModel):
    id: uuid.UUID
    student_id: uuid.UUID
    course_id: uuid.UUID
    trigger_material_id: Optional[uuid.UUID]
    attendance_date: dt.date
    week: Optional[int]
    status: str
    attendance_type: str
    notes: Optional[str]
    submitted_at: Optional[datetime]
    verified_by: Optional[uuid.UUID]
    verified_at: Optional[datetime]
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class AttendancePage(BaseModel):
    data: List[AttendanceResponse]
    total: int
    page: int
    limit: int


class AttendanceStats(BaseModel):
    """Répartition des présences d'un cours par statut."""
    course_id: uuid.UUID
    total_students: int
    present_count: int
    absent_count: int
    excused_count: int
    late_count: int
    auto_attendance_count: int
    attendance_rate: float


class EnrolledStudent(BaseModel):
    id: uuid.UUID
    full_name: str
    student_number: Optional[str]
    email: str

    model_config = {"from_attributes": True}


class AttendanceDay(BaseModel):
    """Présences d'une séance (une date)."""
    attendance_date: dt.date
    attendances: List[AttendanceResponse]
    present_count: int
    missing_students: List[EnrolledStudent]  # Inscrits sans aucune présence enregistrée ce jour-là


class WeeklyAttendanceStat(BaseModel):
    week: int
    total_students: int
    present_count: int      # present, auto_present, late
    absent_count: int
    auto_attendance_count: int
    attendance_rate: float


class WeeklyAttendance(BaseModel):
    week: int
    days: List[AttendanceDay]
    stats: WeeklyAttendanceStat


class CourseAttendanceByWeek(BaseModel):
    """Tableau de bord enseignant : présences d'un cours par semaine (pertemuan)."""
    course_id: uuid.UUID
    students: List[EnrolledStudent]
    weeks: List[WeeklyAttendance]


class AutoSubmitStatus(BaseModel):
    can_auto_submit: bool


class ReconcileError(BaseModel):
    student_id: uuid.UUID
    error: str


class ReconcileReport(BaseModel):
    """Rapport de réconciliation des présences d'une vidéo déclencheuse."""
    material_id: uuid.UUID
    scanned: int
    created: int
    already_present: int
    skipped: int
    errors: List[ReconcileError] = []
