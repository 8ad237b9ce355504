"""
Tests du moteur SQLAlchemy : options PostgreSQL, SAVEPOINT et clés étrangères sous SQLite.
"""

import uuid
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from app import database
from app.models.course import CourseStudent
from app.models.user import User


def test_postgres_pool_pre_ping():
    with patch.object(database, "create_engine") as mock_create:
        database.build_engine("postgresql://user:pw@localhost/lms", pool_size=5)

    mock_create.assert_called_once_with("postgresql://user:pw@localhost/lms", pool_pre_ping=True, pool_size=5)


def test_sqlite_cle_etrangere_appliquee(db_session):
    db_session.add(CourseStudent(course_id=uuid.uuid4(), student_id=uuid.uuid4()))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_sqlite_savepoint_preserve_la_transaction(db_session):
    """L'échec d'un SAVEPOINT n'annule pas le reste de la transaction."""
    db_session.add(User(id=uuid.uuid4(), email="a@univ.ac.id", full_name="Ani"))
    db_session.flush()

    with pytest.raises(IntegrityError):
        with db_session.begin_nested():
            db_session.add(User(id=uuid.uuid4(), email="a@univ.ac.id", full_name="Doublon"))
            db_session.flush()

    db_session.commit()
    assert db_session.execute(select(func.count()).select_from(User)).scalar() == 1
