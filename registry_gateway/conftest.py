import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from registry_gateway.deps.registry import get_registry_service
from registry_gateway.main import app
from registry_gateway.packages.registry import GatewayConfig, RetryPolicy, WorkerPool
from registry_gateway.packages.registry.tests.registry_test_utils import (
    INTERNAL_REGISTRY,
    FakeRegistry,
    no_sleep,
)
from registry_gateway.packages.registry.types import RetrySettings
from registry_gateway.services.registry_service import RegistryService


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
async def registry_service(fake_registry: FakeRegistry):
    config = GatewayConfig(
        internal_registries=(INTERNAL_REGISTRY,),
        retry=RetrySettings(min_delay_ms=0, max_delay_ms=0, deadline_seconds=5),
        worker_pool_size=4,
    )
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_registry.handler))
    service = RegistryService(
        config=config,
        http=http,
        pool=WorkerPool(config.worker_pool_size),
        retry_policy=RetryPolicy(config.retry, sleep=no_sleep),
    )
    app.state.http_client = http

    yield service

    await http.aclose()


@pytest.fixture
async def client(registry_service: RegistryService):
    """API client talking to the app in-process, backed by the fake registry."""
    app.dependency_overrides[get_registry_service] = lambda: registry_service
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://localhost"
    ) as client:
        yield client
    app.dependency_overrides.clear()
