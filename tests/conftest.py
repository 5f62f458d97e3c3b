"""
Pytest configuration and shared fixtures for the test suite.
"""
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Make the src layout importable without an editable install
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from bspl_harvester.captcha.circuit_breaker import CircuitBreaker, CircuitBreakerConfig  # noqa: E402

from tests.fixtures.fakes import FakeRecognizer, FakeSite, RecordingSleep  # noqa: E402
from tests.fixtures.servers import FakeNopecha, FakePortal, start_server  # noqa: E402


@pytest.fixture
def anyio_backend():
    """Backend for anyio async tests."""
    return "asyncio"


@pytest.fixture
def events():
    """Shared, ordered call log for the fakes."""
    return []


@pytest.fixture
def fake_site(events):
    return FakeSite(events=events)


@pytest.fixture
def fake_recognizer(events):
    return FakeRecognizer(events=events)


@pytest.fixture
def quota_breaker():
    """Breaker configured the way the pipeline shares it between stages."""
    return CircuitBreaker("recognition_quota", CircuitBreakerConfig.quota_latch())


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest_asyncio.fixture
async def portal():
    """Local stand-in for the captcha-gated portal."""
    fake = FakePortal()
    runner, fake.base_url = await start_server(fake.build_app())
    yield fake
    await runner.cleanup()


@pytest_asyncio.fixture
async def nopecha():
    """Local stand-in for the NopeCHA recognition API."""
    fake = FakeNopecha()
    runner, fake.base_url = await start_server(fake.build_app())
    yield fake
    await runner.cleanup()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every harvester variable for the duration of a test.

    Each variable is set before being deleted so monkeypatch also removes
    whatever a .env file loads during the test.
    """
    names = [
        "NOPECHA_KEY",
        "NOPECHA_BASE_URL",
        "SMES_BASE_URL",
        "SMES_PAGE_PATH",
        "HARVEST_CHALLENGE_BUFFER",
        "HARVEST_DOWNSTREAM_BUFFER",
        "HARVEST_POLL_MAX_ATTEMPTS",
        "HARVEST_POLL_DELAY",
        "HARVEST_REQUEST_TIMEOUT",
        "HARVEST_EMIT_FAILURES",
    ]
    for name in names:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
