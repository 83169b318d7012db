from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from modsearch.server.app import create_app


@pytest.fixture
def gateway_client() -> Iterator[TestClient]:
    """Gateway app talking to the live catalog API. e2e/integration suites only."""
    with TestClient(create_app()) as client:
        yield client
