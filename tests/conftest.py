import os
from pathlib import Path

# templates/ and static/ are resolved from the working directory
os.chdir(Path(__file__).resolve().parent.parent)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from db import get_session
from identity import IdentityProvider, get_identity_provider
from main import app
from tests.factories import ADMIN_EMAIL, PASSWORD


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def provider():
    return IdentityProvider("test-secret-key", max_age_seconds=3600, admin_emails=[ADMIN_EMAIL])


@pytest.fixture
def make_client(session, provider):
    """Factory for a TestClient signed in as a fresh account."""
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_identity_provider] = lambda: provider
    clients = []

    def _make(email: str = "user@example.com", name: str = "Test User", signed_in: bool = True):
        client = TestClient(app)
        clients.append(client)
        if signed_in:
            response = client.post(
                "/signup",
                data={
                    "email": email,
                    "name": name,
                    "password": PASSWORD,
                    "confirm_password": PASSWORD,
                },
                follow_redirects=False,
            )
            assert response.status_code == 303, response.text
        return client

    yield _make
    for client in clients:
        client.close()
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def anon_client(make_client):
    return make_client(signed_in=False)


@pytest.fixture
def admin_client(make_client):
    return make_client(ADMIN_EMAIL, "Admin")
