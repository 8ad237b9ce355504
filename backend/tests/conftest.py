"""
Configuration partagée pour tous les tests.

- client        : TestClient avec get_db remplacé par un MagicMock (aucune connexion réelle)
- db_session    : session SQLite en mémoire, schéma complet, pour les tests transactionnels
- sqlite_client : TestClient branché sur cette même base SQLite (tests de bout en bout)
- seed          : étudiant, enseignant, cours et vidéo déclencheuse prêts à l'emploi
"""

import uuid
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from unittest.mock import MagicMock

import app.models  # noqa: F401
from app.database import Base, build_engine, get_db
from app.main import app
from app.models.course import Course
from app.models.user import User
from factories import add_material, add_student


@pytest.fixture
def client():
    """Client HTTP de test avec la BDD mockée."""
    mock_db = MagicMock()
    app.dependency_overrides[get_db] = lambda: mock_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def sqlite_engine():
    """Base SQLite en mémoire partagée entre threads (StaticPool), SAVEPOINT et clés étrangères actifs."""
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return sessionmaker(bind=sqlite_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def sqlite_client(session_factory):
    """Client HTTP de test branché sur la base SQLite en mémoire."""
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def seed(db_session):
    """Un enseignant, un cours, un étudiant inscrit et une vidéo déclencheuse (seuil 80 %)."""
    lecturer = User(
        id=uuid.uuid4(),
        email="dosen@univ.ac.id",
        full_name="Dr. Sari Dewi",
        role="lecturer",
    )
    db_session.add(lecturer)
    db_session.flush()
    course = Course(id=uuid.uuid4(), code="IF-301", title="Pemrograman Web", lecturer_id=lecturer.id)
    db_session.add(course)
    db_session.commit()

    student = add_student(db_session, course=course)
    material = add_material(db_session, course)

    return SimpleNamespace(lecturer=lecturer, course=course, student=student, material=material)
