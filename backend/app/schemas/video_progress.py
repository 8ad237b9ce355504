"""
Schémas Pydantic pour la progression vidéo.
Endpoint principal : POST /api/v1/video-progress (appelé toutes les 5-10 s par le lecteur).
"""

import math
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

ATTENDANCE_OUTCOMES = {"created", "already_present", "not_triggered", "failed"}


def _finite(v: Optional[float]) -> Optional[float]:
    if v is not None and not math.isfinite(v):
        raise ValueError("La valeur doit être un nombre fini.")
    return v


class WatchSession(BaseModel):
    """Intervalle de lecture continu rapporté par le lecteur (secondes)."""
    start_time: float
    end_time: float
    duration: Optional[float] = None

    @model_validator(mode="after")
    def valid_interval(self) -> "WatchSession":
        _finite(self.start_time)
        _finite(self.end_time)
        if self.start_time < 0:
            raise ValueError("start_time ne peut pas être négatif.")
        if self.end_time < self.start_time:
            raise ValueError("end_time doit être supérieur ou égal à start_time.")
        if self.duration is None:
            self.duration = self.end_time - self.start_time
        return self


class VideoProgressUpdate(BaseModel):
    """Rapport de progression envoyé par le lecteur vidéo."""

    student_id: uuid.UUID
    material_id: uuid.UUID
    current_time: float                       # Position de lecture courante (s)
    total_duration: Optional[float] = None    # Durée totale si connue (s)
    watched_percentage: Optional[float] = None  # Ramené dans [0, 100]
    watched_seconds: Optional[float] = None
    watch_session: Optional[WatchSession] = None

    @field_validator("current_time", "watched_seconds")
    @classmethod
    def non_negative(cls, v: Optional[float]) -> Optional[float]:
        _finite(v)
        if v is not None and v < 0:
            raise ValueError("La valeur ne peut pas être négative.")
        return v

    @field_validator("total_duration")
    @classmethod
    def duration_positive(cls, v: Optional[float]) -> Optional[float]:
        _finite(v)
        if v is not None and v <= 0:
            raise ValueError("La durée totale doit être strictement positive.")
        return v

    @field_validator("watched_percentage")
    @classmethod
    def clamp_percentage(cls, v: Optional[float]) -> Optional[float]:
        _finite(v)
        if v is None:
            return v
        return min(max(v, 0.0), 100.0)


class MaterialSummary(BaseModel):
    id: uuid.UUID
    title: str
    type: str
    is_attendance_trigger: bool
    attendance_threshold: Optional[float]

    model_config = {"from_attributes": True}


class VideoProgressResponse(BaseModel):
    id: uuid.UUID
    student_id: uuid.UUID
    material_id: uuid.UUID
    current_time: float
    total_duration: Optional[float]
    watched_percentage: float
    watched_seconds: float
    is_completed: bool
    completed_at: Optional[datetime]
    has_triggered_attendance: bool
    watch_sessions_count: int = 0
    material: Optional[MaterialSummary] = None
    attendance_outcome: Optional[str] = None  # created, already_present, not_triggered, failed
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ResumePosition(BaseModel):
    """Position de reprise de lecture."""
    current_time: float
    watched_percentage: float


class CourseVideoStat(BaseModel):
    """Statistiques de visionnage d'une vidéo d'un cours (tableau de bord enseignant)."""
    material_id: uuid.UUID
    title: str
    total_viewers: int
    completed_viewers: int
    completion_rate: float
    avg_completion: float
    attendance_triggered: int


class AttendanceTriggerStatus(BaseModel):
    """État du déclenchement de présence pour une vidéo."""
    material_id: uuid.UUID
    is_attendance_trigger: bool
    threshold: float
    completed_students: int
    attendance_triggered: int
    pending_trigger: int
    needs_reconcile: bool
