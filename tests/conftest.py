"""
Pytest Configuration and Fixtures

Each test gets its own SQLite database file and blob storage root; the API
is pointed at them through dependency overrides.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from pcos_portal.database import create_db_engine, get_session_factory, init_db
from pcos_portal.main import app
from pcos_portal.storage import BlobStorage, get_storage

PARTICIPANT_PAYLOAD = {
    "participant_id": "PCOS-001",
    "age": 28,
    "sex": "F",
    "ethnicity": "South Asian",
    "height_cm": 165.0,
    "weight_kg": 60.0,
    "date_of_birth": "1997-03-14",
    "consent": True,
}


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'portal.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path) -> BlobStorage:
    return BlobStorage(tmp_path / "storage")


@pytest.fixture
def client(session_factory, storage):
    """API client bound to the per-test database and storage."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client, username: str = "researcher", password: str = "secret123") -> str:
    response = client.post("/api/auth/register", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["token"]


def enroll(client, token: str, **overrides) -> str:
    payload = {**PARTICIPANT_PAYLOAD, **overrides, "token": token}
    response = client.post("/api/participants", json=payload)
    assert response.status_code == 200, response.text
    return response.json()["participant"]["id"]


@pytest.fixture
def token(client) -> str:
    return register(client)


@pytest.fixture
def participant_pk(client, token) -> str:
    return enroll(client, token)
