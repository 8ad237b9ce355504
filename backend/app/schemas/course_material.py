"""
Schémas Pydantic pour la configuration de présence des supports de cours.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from app.schemas.attendance import ReconcileReport


class AttendanceSettingsUpdate(BaseModel):
    """PATCH /api/v1/materials/{id}/attendance-settings : seuls les champs fournis changent."""
    is_attendance_trigger: Optional[bool] = None
    attendance_threshold: Optional[float] = None

    @field_validator("attendance_threshold")
    @classmethod
    def threshold_in_range(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not 0 < v <= 100:
            raise ValueError("Le seuil doit être compris entre 0 (exclu) et 100.")
        return v


class CourseMaterialResponse(BaseModel):
    id: uuid.UUID
    course_id: uuid.UUID
    title: str
    type: str
    week: Optional[int]
    order_index: Optional[int]
    is_attendance_trigger: bool
    attendance_threshold: Optional[float]
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AttendanceSettingsResult(BaseModel):
    """Support mis à jour + rapport de réconciliation si elle a été déclenchée."""
    material: CourseMaterialResponse
    reconcile: Optional[ReconcileReport] = None
