"""
Connexion à la base de données.
PostgreSQL en production ; SQLite accepté pour le développement local et les tests.
"""

from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.config import settings


def build_engine(url: str, **kwargs) -> Engine:
    """
    Crée le moteur SQLAlchemy.

    Sous SQLite, les clés étrangères sont désactivées par défaut : sans elles,
    ni la libération des codes (owner_id → NULL) ni la suppression en cascade
    de l'historique ne seraient appliquées.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_engine(url, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(url, pool_pre_ping=True, **kwargs)


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def utcnow() -> datetime:
    """Horodatage UTC naïf, horloge unique de l'application (colonnes DateTime sans fuseau)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    """Dépendance FastAPI : fournit une session BDD et la ferme après usage."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
