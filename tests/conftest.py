"""Shared fixtures: in-memory database, controllable clock, API clients."""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.client.plans_api import PlansApiClient
from app.database import Base, get_db
from app.dependencies import get_current_user, get_plan_store
from app.main import app
from app.models import plan_record  # noqa: F401  registers the Plan table
from app.services.plan_store import PlanStore
from app.services.route_service import get_route_service
from tests.factories import TTL_MINUTES, USER_ID, FakeClock, make_route_service


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(db, clock):
    return PlanStore(db, clock=clock, ttl_minutes=TTL_MINUTES, max_vineyards=3)


@pytest.fixture
def route_service():
    return make_route_service()


@pytest.fixture
def current_user():
    return {"id": USER_ID, "email": "alice@example.com", "name": "Alice"}


@pytest.fixture
def api_app(db, clock, route_service, current_user):
    """The FastAPI app wired to the test database, clock and route adapter."""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_current_user] = lambda: current_user
    app.dependency_overrides[get_plan_store] = lambda: PlanStore(
        db, clock=clock, ttl_minutes=TTL_MINUTES, max_vineyards=3
    )
    app.dependency_overrides[get_route_service] = lambda: route_service
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(api_app):
    # no context manager: skips the startup hook that creates the file database
    return TestClient(api_app)


@pytest.fixture
def plans_api(api_app):
    """PlansApiClient talking to the app in-process."""
    http_client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=api_app),
        base_url="http://test/api/v1",
    )
    return PlansApiClient(http_client=http_client)
