"""Fixtures for F5 tests - Web API and CLI."""

import pytest
from fastapi.testclient import TestClient

from portal.web.api import create_app
from portal.web.services import reset_services


@pytest.fixture
def client(course):
    """Test client over the sample course with fresh engine services."""
    reset_services()
    app = create_app()
    yield TestClient(app)
    reset_services()


@pytest.fixture
def stu01() -> dict[str, str]:
    return {"X-Student-Id": "stu01"}


@pytest.fixture
def stu02() -> dict[str, str]:
    return {"X-Student-Id": "stu02"}
