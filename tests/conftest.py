import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from championship.database import Base, get_db
from championship.main import app
from championship.models import User
from championship.security import hash_password
from championship.services import ensure_admin_user


ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "pit-wall"
VIEWER_EMAIL = "viewer@example.com"
VIEWER_PASSWORD = "grandstand"


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    db = factory()
    ensure_admin_user(db, ADMIN_EMAIL, ADMIN_PASSWORD)
    db.add(User(email=VIEWER_EMAIL, hashed_password=hash_password(VIEWER_PASSWORD)))
    db.commit()
    db.close()

    yield factory
    engine.dispose()


@pytest.fixture()
def client(session_factory, monkeypatch):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    monkeypatch.setattr("championship.main.SessionLocal", session_factory)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _login(client, email, password):
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture()
def admin_headers(client):
    return _login(client, ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture()
def viewer_headers(client):
    return _login(client, VIEWER_EMAIL, VIEWER_PASSWORD)
