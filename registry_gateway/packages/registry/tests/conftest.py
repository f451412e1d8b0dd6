from typing import Callable

import httpx
import pytest

from registry_gateway.packages.registry import (
    GatewayConfig,
    RegistryClient,
    RegistryMetadataResolver,
    RepoAddressResolver,
    RetryPolicy,
)
from registry_gateway.packages.registry.tests.registry_test_utils import (
    INTERNAL_REGISTRY,
    no_sleep,
)
from registry_gateway.packages.registry.types import RetrySettings


@pytest.fixture
def config() -> GatewayConfig:
    return GatewayConfig(
        internal_registries=(INTERNAL_REGISTRY,),
        retry=RetrySettings(min_delay_ms=0, max_delay_ms=0, deadline_seconds=5),
        worker_pool_size=4,
    )


@pytest.fixture
def address_resolver(config: GatewayConfig) -> RepoAddressResolver:
    return RepoAddressResolver(RegistryMetadataResolver(config))


@pytest.fixture
def retry_policy(config: GatewayConfig) -> RetryPolicy:
    return RetryPolicy(config.retry, sleep=no_sleep)


@pytest.fixture
async def make_client(retry_policy: RetryPolicy):
    """Build a RegistryClient whose traffic goes to the given handler."""
    opened: list[httpx.AsyncClient] = []

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> RegistryClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        opened.append(http)
        return RegistryClient(http, retry_policy)

    yield _make

    for http in opened:
        await http.aclose()


@pytest.fixture
def registry_client(make_client, fake_registry) -> RegistryClient:
    return make_client(fake_registry.handler)
