"""
Shared pytest options and fixtures for backend tests.
"""
import os
import sys
from pathlib import Path

import httpx
import pytest

BACKEND = str(Path(__file__).parent.parent)
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)


def pytest_addoption(parser):
    parser.addoption(
        "--base-url",
        action="store",
        default=os.environ.get("BACKEND_URL", ""),
        help="Base URL for live API tests.",
    )
    parser.addoption(
        "--api-key",
        action="store",
        default=os.environ.get("API_MASTER_KEY", ""),
        help="Master key for protected /v1/* endpoints.",
    )
    parser.addoption(
        "--request-timeout",
        action="store",
        type=float,
        default=float(os.environ.get("TEST_REQUEST_TIMEOUT", "120")),
        help="HTTP timeout (seconds) for live API tests.",
    )


@pytest.fixture(scope="session")
def base_url(request):
    value = (request.config.getoption("base_url") or "").strip()
    if not value:
        pytest.skip(
            "Live API tests require --base-url or BACKEND_URL. "
            "Skipping integration tests."
        )
    return value.rstrip("/")


@pytest.fixture(scope="session")
def api_key(request):
    return request.config.getoption("api_key")


@pytest.fixture(scope="session")
def request_timeout(request):
    return float(request.config.getoption("request_timeout"))


@pytest.fixture(scope="session")
def live_client(base_url, api_key, request_timeout):
    headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
    timeout = httpx.Timeout(connect=5.0, read=request_timeout, write=request_timeout, pool=5.0)
    with httpx.Client(base_url=base_url, headers=headers, timeout=timeout) as c:
        yield c


@pytest.fixture
def make_config():
    """Build a GatewayConfig with `n_accounts` complete slots plus overrides."""
    from config import GatewayConfig

    def _make(n_accounts: int = 2, **overrides) -> GatewayConfig:
        slots = {i: (f"token-{i}", f"acct-{i}") for i in range(1, n_accounts + 1)}
        overrides.setdefault("account_slots", slots)
        return GatewayConfig(**overrides)

    return _make
