"""Shared test fixtures: MagicMock sessions and in-memory SQLite sessions."""
import os

# Must be set before app.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("CONVOYTRACK_API_TOKEN", None)

import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.database import get_db, set_sqlite_pragmas
from app.models import Base


@pytest.fixture
def mock_db():
    """MagicMock database session — returns None for all queries by default."""
    session = MagicMock()
    # Default: query().filter().first() returns None (not found)
    session.query.return_value.filter.return_value.first.return_value = None
    session.query.return_value.filter.return_value.all.return_value = []
    return session


@pytest.fixture
def api_client(mock_db):
    """TestClient with DB dependency overridden to use a MagicMock session."""
    def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    """In-memory SQLite session with all tables, FK enforcement on."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", set_sqlite_pragmas)
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False)
    session = Session()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def db_client(db):
    """TestClient whose requests share the in-memory SQLite session."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def truck():
    return {
        "vehicle_type": "truck",
        "registration_number": "DL-01-AB-1234",
        "load_type": "supplies",
        "load_weight_kg": 500,
        "capacity_kg": 1000,
        "driver_name": "Raj Kumar",
    }


@pytest.fixture
def ambulance():
    return {
        "vehicle_type": "ambulance",
        "registration_number": "DL-01-AB-5678",
        "load_type": "medical",
        "load_weight_kg": 300,
        "capacity_kg": 800,
        "driver_name": "Anil Sharma",
    }


@pytest.fixture
def alpha_route():
    return {
        "source": {"lat": 28.6139, "lon": 77.2090, "place": "New Delhi"},
        "destination": {"lat": 30.7333, "lon": 76.7794, "place": "Chandigarh"},
        "priority": "high",
    }
