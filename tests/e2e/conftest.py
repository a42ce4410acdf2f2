"""
E2E test fixtures for FastData.

These tests need a running FastData API with sandbox write endpoints,
e.g. `python -m playground` on port 3001.
"""

import os
import socket
import time
import uuid
from urllib.parse import urlparse

import pytest

# Skip E2E tests if not in E2E mode
E2E_ENABLED = os.environ.get("FASTDATA_E2E_TESTS", "0") == "1"

API_URL = os.environ.get("FASTDATA_API_URL", "http://localhost:3001")

pytestmark = pytest.mark.skipif(
    not E2E_ENABLED,
    reason="E2E tests disabled. Set FASTDATA_E2E_TESTS=1 to enable."
)


def wait_for_service(host: str, port: int, timeout: int = 30) -> bool:
    """Wait for a service to accept connections."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1):
                return True
        except OSError:
            time.sleep(1)
    return False


@pytest.fixture(scope="session")
def api_url() -> str:
    """Base URL of the API under test, once it accepts connections."""
    parsed = urlparse(API_URL)
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    assert wait_for_service(parsed.hostname, port), f"{API_URL} not reachable"
    return API_URL


@pytest.fixture
def test_account() -> str:
    """Unique account id for test isolation."""
    return f"e2e-{uuid.uuid4().hex[:8]}.near"
