"""
Modèles SQLAlchemy pour les cours et leurs inscriptions.
"""

import uuid
from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid, func

from app.database import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String(20), unique=True, nullable=False)  # Ex: "IF-301"
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    lecturer_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class CourseStudent(Base):
    """Association cours ↔ étudiants inscrits."""
    __tablename__ = "course_students"

    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True)
    student_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    enrolled_at = Column(DateTime, server_default=func.now())
