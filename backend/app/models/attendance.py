"""
Modèle SQLAlchemy pour les présences.

Deux origines :
- saisie manuelle par l'enseignant (attendance_type = manual)
- complétion d'une vidéo déclencheuse (attendance_type = video_completion, status = auto_present)

L'index unique partiel uq_attendances_video_completion_per_day garantit au niveau
de la base une seule présence automatique par (étudiant, cours, date).
"""

import uuid
from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
    text,
)

from app.database import Base

STATUS_PRESENT = "present"
STATUS_ABSENT = "absent"
STATUS_AUTO_PRESENT = "auto_present"
STATUS_EXCUSED = "excused"
STATUS_LATE = "late"

TYPE_MANUAL = "manual"
TYPE_VIDEO_COMPLETION = "video_completion"
TYPE_QR_CODE = "qr_code"
TYPE_LOCATION_BASED = "location_based"


class Attendance(Base):
    __tablename__ = "attendances"
    __table_args__ = (
        Index("ix_attendances_student_course_date", "student_id", "course_id", "attendance_date"),
        Index("ix_attendances_course_date", "course_id", "attendance_date"),
        Index(
            "uq_attendances_video_completion_per_day",
            "student_id", "course_id", "attendance_date", "attendance_type",
            unique=True,
            postgresql_where=text("attendance_type = 'video_completion'"),
            sqlite_where=text("attendance_type = 'video_completion'"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    trigger_material_id = Column(
        Uuid, ForeignKey("course_materials.id", ondelete="SET NULL"), nullable=True
    )

    attendance_date = Column(Date, nullable=False)
    week = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default=STATUS_PRESENT)        # present, absent, auto_present, excused, late
    attendance_type = Column(String(20), nullable=False, default=TYPE_MANUAL)  # manual, video_completion, qr_code, location_based

    notes = Column(Text, nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(Uuid, ForeignKey("users.id"), nullable=True)  # Correction manuelle uniquement
    verified_at = Column(DateTime(timezone=True), nullable=True)

    # "metadata" est réservé par la déclarative SQLAlchemy : attribut renommé, colonne inchangée
    attendance_metadata = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
