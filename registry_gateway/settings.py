from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from registry_gateway.packages.registry.types import (
    GatewayConfig,
    RetrySettings,
    TimeoutSettings,
)


class GeneralConfig(BaseSettings):
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = ""


class RegistryConfig(BaseSettings):
    REGISTRY_INTERNAL_URLS: list[str] = ["docker-registry.default.svc:5000"]
    """Registries (host[:port]) spoken to over http with a bearer token"""

    REGISTRY_ALLOWED_URLS: list[str] = []
    """Every registry the gateway may use. Empty allows any registry."""


class HttpClientConfig(BaseSettings):
    HTTP_CONNECT_TIMEOUT: float = 30.0
    HTTP_READ_TIMEOUT: float = 30.0
    HTTP_WRITE_TIMEOUT: float = 30.0
    HTTP_POOL_TIMEOUT: float = 10.0
    HTTP_VERIFY_TLS: bool = True


class RetryConfig(BaseSettings):
    RETRY_MAX_RETRIES: int = 3
    RETRY_MIN_DELAY_MS: int = 100
    RETRY_MAX_DELAY_MS: int = 1000
    OPERATION_DEADLINE_SECONDS: float = 300.0

    @model_validator(mode="after")
    def validate_delays(self):
        if self.RETRY_MIN_DELAY_MS > self.RETRY_MAX_DELAY_MS:
            raise ValueError("RETRY_MIN_DELAY_MS must not exceed RETRY_MAX_DELAY_MS")
        return self


class WorkerPoolConfig(BaseSettings):
    REGISTRY_WORKER_POOL_SIZE: int = 16


class Settings(
    GeneralConfig,
    RegistryConfig,
    HttpClientConfig,
    RetryConfig,
    WorkerPoolConfig,
    BaseSettings,
):
    model_config = SettingsConfigDict(
        env_file=(".env", ".env.prod", ".env.test"),
        extra="allow",
    )

    def gateway_config(self) -> GatewayConfig:
        """Project process settings onto the immutable core configuration."""
        return GatewayConfig(
            internal_registries=tuple(self.REGISTRY_INTERNAL_URLS),
            allowed_registries=tuple(self.REGISTRY_ALLOWED_URLS),
            retry=RetrySettings(
                max_retries=self.RETRY_MAX_RETRIES,
                min_delay_ms=self.RETRY_MIN_DELAY_MS,
                max_delay_ms=self.RETRY_MAX_DELAY_MS,
                deadline_seconds=self.OPERATION_DEADLINE_SECONDS,
            ),
            timeouts=TimeoutSettings(
                connect=self.HTTP_CONNECT_TIMEOUT,
                read=self.HTTP_READ_TIMEOUT,
                write=self.HTTP_WRITE_TIMEOUT,
                pool=self.HTTP_POOL_TIMEOUT,
            ),
            worker_pool_size=self.REGISTRY_WORKER_POOL_SIZE,
            verify_tls=self.HTTP_VERIFY_TLS,
        )


settings = Settings()
