"""Fixtures for HTTP-level tests."""

import pytest
from fastapi.testclient import TestClient

from fleetprov.application import create_app

ACCOUNT_HEADERS = {"X-Account-ID": "acct-1"}


@pytest.fixture
def client():
    """Test client with the lifespan run, so a CA is generated in memory."""
    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return dict(ACCOUNT_HEADERS)
