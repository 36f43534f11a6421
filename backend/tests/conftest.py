"""
Configuration partagée pour tous les tests.

- `client` : override de get_db par un MagicMock (aucune connexion BDD réelle)
- `db_session` : SQLite en mémoire (StaticPool) pour exécuter la vraie logique
  des services et vérifier les garanties (unicité, historique, cascade)
- `db_client` : client HTTP branché sur cette même base SQLite
"""

import os

# Doit précéder tout import de app.* : Settings est instancié à l'import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-qrtrack-jwt-signing-0123456789"

import uuid
from unittest.mock import MagicMock

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.config import settings
from app.database import Base, build_engine, get_db
from app.main import app
from app.models.user import User


def make_auth_header(role: str, principal_id=None) -> dict:
    """En-tête Authorization avec un JWT signé comme le ferait le service d'authentification."""
    token = jwt.encode(
        {"sub": str(principal_id or uuid.uuid4()), "role": role},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    return {"Authorization": f"Bearer {token}"}


def make_user(db, role="user", email=None, name="Utilisateur Test") -> User:
    user = User(email=email or f"{uuid.uuid4().hex[:8]}@example.com", name=name, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def client():
    """Client HTTP de test avec la BDD mockée."""
    mock_db = MagicMock()
    app.dependency_overrides[get_db] = lambda: mock_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Session SQLite en mémoire, schéma complet, clés étrangères activées."""
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSession()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db_client(db_session):
    """Client HTTP branché sur la base SQLite de test."""
    app.dependency_overrides[get_db] = lambda: db_session
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_header():
    """Fabrique d'en-têtes Authorization : auth_header("admin", principal_id)."""
    return make_auth_header


@pytest.fixture
def user_factory(db_session):
    """Fabrique d'utilisateurs persistés dans la base SQLite de test."""
    def _make(role="user", email=None, name="Utilisateur Test"):
        return make_user(db_session, role=role, email=email, name=name)
    return _make
