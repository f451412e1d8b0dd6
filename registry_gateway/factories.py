from functools import lru_cache

import httpx

from registry_gateway.packages.registry import GatewayConfig, WorkerPool, create_http_client
from registry_gateway.services.registry_service import RegistryService
from registry_gateway.settings import settings


@lru_cache
def gateway_config_factory() -> GatewayConfig:
    return settings.gateway_config()


def http_client_factory() -> httpx.AsyncClient:
    """Create the registry http client. The caller owns and closes it."""
    return create_http_client(gateway_config_factory())


def registry_service_factory(http: httpx.AsyncClient) -> RegistryService:
    """Factory function for the registry service.

    One service, and with it one worker pool, exists per process. The pool is
    sized like the http connection pool so registry work queues in the pool
    rather than waiting on connections.
    """
    config = gateway_config_factory()
    return RegistryService(
        config=config,
        http=http,
        pool=WorkerPool(config.worker_pool_size),
    )
