# This project was developed with assistance from AI tools.
"""Fixtures for functional tests.

The real app from ``eservice.main`` is a module singleton. ``_clean_overrides``
ensures dependency_overrides are cleared after every test so persona
configuration from one test never leaks into the next.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from eservice.main import app as real_app
from eservice.schemas.auth import UserContext
from tests.functional.mock_db import configure_app_for_persona, make_services


@pytest.fixture(autouse=True)
def _clean_overrides():
    """Clear app dependency overrides after each test."""
    yield
    real_app.dependency_overrides.clear()


@pytest.fixture
def app():
    """Return the real FastAPI app with all routers mounted."""
    return real_app


@pytest.fixture
def services():
    return make_services()


@pytest.fixture
def make_client(app, services):
    """Factory fixture: configure persona + mock session + mock services, return TestClient."""

    def _make(user: UserContext) -> TestClient:
        configure_app_for_persona(app, user, AsyncMock(), services)
        return TestClient(app)

    return _make
