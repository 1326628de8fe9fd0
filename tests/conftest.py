"""Shared test fixtures for pytest."""

import pytest

from tests.helpers import Spy, make_service, make_tool
from toolproxy.config import Settings
from toolproxy.dispatcher import Dispatcher
from toolproxy.metrics import metrics
from toolproxy.services import ServiceRegistry
from toolproxy.services.builtin import demo_service


@pytest.fixture(autouse=True)
def reset_metrics():
    """Each test starts from empty metrics."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def registry() -> ServiceRegistry:
    """Registry holding only the built-in demo service."""
    return ServiceRegistry([demo_service()])


@pytest.fixture
def dispatcher(registry) -> Dispatcher:
    return Dispatcher(registry, timeout=2.0)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        log_level="WARNING",
        call_timeout_seconds=0.5,
        service_modules=[],
    )


@pytest.fixture
def spy() -> Spy:
    return Spy(result="spied")


@pytest.fixture
def client(settings, spy):
    """Test client for a server serving the demo service plus an ``ops`` service.

    ``ops`` exposes ``spy`` (records calls), ``boom`` (always raises) and
    ``slow`` (outlives the 0.5s call timeout).
    """
    from fastapi.testclient import TestClient

    from toolproxy.server import create_app

    services = [
        demo_service(),
        make_service(
            "ops",
            make_tool("spy", spy),
            make_tool("boom", Spy(error=RuntimeError("upstream exploded"))),
            make_tool("slow", Spy(delay=5.0)),
        ),
    ]
    app = create_app(settings=settings, services=services)
    with TestClient(app) as test_client:
        yield test_client
