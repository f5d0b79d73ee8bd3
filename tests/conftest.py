from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.database import Base, get_db
from backend.main import app
from backend.schemas.patient import IdentityRecord
from backend.services.events import ChangeFeed, get_change_feed
from backend.services.identity import get_identity_source
from backend.services.selection import WorkingSetRegistry, get_working_sets


class FakeIdentitySource:
    """Identity source backed by a dict; unknown keys have no record."""

    def __init__(self, records: dict[str, IdentityRecord] | None = None):
        self.records = records or {}
        self.calls: list[str] = []

    def lookup(self, patient_id: str) -> IdentityRecord | None:
        self.calls.append(patient_id)
        return self.records.get(patient_id)


@pytest.fixture()
def db_session() -> Generator:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture()
def registry() -> WorkingSetRegistry:
    return WorkingSetRegistry()


@pytest.fixture()
def identity_source() -> FakeIdentitySource:
    return FakeIdentitySource(
        {
            "A100": IdentityRecord(
                patient_id="A100",
                name="Jane Doe",
                date_of_birth="1985-04-12",
                gender="Female",
                phone="+960 765-4321",
                address="Hulhumalé",
                external_record={"insurance_status": "active", "policy_number": "ASSA100"},
            )
        }
    )


@pytest.fixture()
def client(db_session, feed, registry, identity_source) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_change_feed] = lambda: feed
    app.dependency_overrides[get_working_sets] = lambda: registry
    app.dependency_overrides[get_identity_source] = lambda: identity_source

    # Tests use an in-memory DB via dependency override; skip app startup side effects.
    original_startup = list(app.router.on_startup)
    app.router.on_startup.clear()
    with TestClient(app) as test_client:
        yield test_client
    app.router.on_startup[:] = original_startup
    app.dependency_overrides.clear()
