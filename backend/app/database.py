"""
Connexion à la base de données (PostgreSQL en production, SQLite pour les tests).
Utilise SQLAlchemy avec un moteur synchrone.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from app.config import settings


def build_engine(url: str, **kwargs):
    """
    Crée le moteur SQLAlchemy.

    PostgreSQL : pool_pre_ping détecte une connexion coupée avant usage plutôt qu'en pleine requête.
    SQLite : pysqlite gère mal les SAVEPOINT (begin_nested), on lui retire donc la gestion
    des transactions et SQLAlchemy émet lui-même BEGIN. Les clés étrangères sont activées
    pour se comporter comme PostgreSQL.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, **kwargs)

    engine = create_engine(url, connect_args={"check_same_thread": False}, **kwargs)

    @event.listens_for(engine, "connect")
    def _configure_sqlite(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dépendance FastAPI : fournit une session BDD et la ferme après usage."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
