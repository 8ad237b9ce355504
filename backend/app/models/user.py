"""
Modèle SQLAlchemy pour les utilisateurs (étudiants, enseignants, administrateurs).
Version minimale : l'authentification est gérée en dehors de ce service.
"""

import uuid
from sqlalchemy import Column, DateTime, String, Uuid, func

from app.database import Base

ROLE_STUDENT = "student"
ROLE_LECTURER = "lecturer"
ROLE_ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    student_number = Column(String(50), nullable=True)  # NIM, uniquement pour les étudiants
    role = Column(String(20), nullable=False, default=ROLE_STUDENT)  # student, lecturer, admin
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
