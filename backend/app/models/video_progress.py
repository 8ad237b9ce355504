"""
Modèle SQLAlchemy pour la progression de visionnage des vidéos.

Une seule ligne par (étudiant, support) : créée au premier rapport du lecteur,
mise à jour à chaque rapport suivant, supprimée uniquement en cascade.
"""

import uuid
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    UniqueConstraint,
    Uuid,
    func,
)

from app.database import Base


class VideoProgress(Base):
    __tablename__ = "video_progress"
    __table_args__ = (
        UniqueConstraint("student_id", "material_id", name="uq_video_progress_student_material"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    material_id = Column(Uuid, ForeignKey("course_materials.id", ondelete="CASCADE"), nullable=False)

    current_time = Column(Float, nullable=False, default=0)       # Dernière position de lecture (s)
    total_duration = Column(Float, nullable=True)                 # Durée totale connue (s)
    watched_percentage = Column(Float, nullable=False, default=0)  # Progression la plus avancée
    watched_seconds = Column(Float, nullable=False, default=0)     # Secondes réellement regardées

    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)  # Jamais écrasé une fois posé
    has_triggered_attendance = Column(Boolean, nullable=False, default=False)

    watch_sessions = Column(JSON, nullable=True)  # [{start_time, end_time, duration, timestamp}]

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
