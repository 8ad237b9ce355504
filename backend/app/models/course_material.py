"""
Modèle SQLAlchemy pour les supports de cours.

is_attendance_trigger : la vidéo accorde une présence automatique une fois visionnée.
attendance_threshold  : pourcentage propre au support, sinon VIDEO_COMPLETION_THRESHOLD.
"""

import uuid
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, Uuid, func

from app.database import Base

MATERIAL_TYPE_VIDEO = "video"


class CourseMaterial(Base):
    __tablename__ = "course_materials"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False)  # pdf, video, document, presentation, link
    url = Column(String(500), nullable=True)
    week = Column(Integer, default=1)
    order_index = Column(Integer, default=1)
    is_visible = Column(Boolean, default=True)

    is_attendance_trigger = Column(Boolean, nullable=False, default=False)
    attendance_threshold = Column(Float, nullable=True)

    uploaded_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
