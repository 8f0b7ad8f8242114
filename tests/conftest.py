# tests/conftest.py

import pytest
from starlette.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.api import deps
from app.core.limiter import limiter
from app.db.session import get_db
from app.db.base_class import Base
from app.services.campaign_jobs import CampaignJobManager, get_job_manager
from app import models  # noqa: F401

from tests.utils.email import FakeProvider, make_gateway
from tests.utils.jobs import InlineExecutor


# --- Test Database Setup ---
# One in-memory database shared by the request session and the dispatch
# job's own session, so commits on either side are visible to the other.
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


# --- Mock Dependencies Setup ---
class MockTokenPayload:
    def __init__(self, sub="user_123", org_id="org_abc"):
        self.sub = sub
        self.org_id = org_id

    @property
    def owner_id(self):
        return self.org_id or self.sub


def override_get_current_user():
    return MockTokenPayload()


@pytest.fixture(scope="function")
def owner_id():
    return override_get_current_user().owner_id


@pytest.fixture(scope="function")
def fake_provider():
    return FakeProvider()


@pytest.fixture(scope="function")
def gateway(fake_provider):
    return make_gateway(fake_provider)


@pytest.fixture(scope="function")
def job_manager(gateway):
    """Job manager that dispatches synchronously inside submit()."""
    return CampaignJobManager(
        session_factory=TestingSessionLocal,
        gateway=gateway,
        executor=InlineExecutor(),
        sleep=lambda seconds: None,
    )


# --- Test Client Fixtures ---
@pytest.fixture(scope="function")
def client(db_session, job_manager):
    """
    Provides a TestClient on the in-memory database with auth mocked and
    campaign dispatch running inline through the fake email provider.
    """

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_current_user] = override_get_current_user
    app.dependency_overrides[get_job_manager] = lambda: job_manager
    limiter.enabled = False

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    limiter.enabled = True
