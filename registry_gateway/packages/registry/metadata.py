"""Registry connection policy.

Maps a registry address to the scheme and authentication it is spoken to
with. Internal registries (cluster registries reached over plain http with a
bearer token) are recognised by an allow-list or by an IPv4 literal address.
"""

import re

from .types import AuthMethod, GatewayConfig, RegistryPolicy

_IPV4_WITH_PORT = re.compile(r"^\d{1,3}(\.\d{1,3}){3}:\d+$")


def _host(registry: str) -> str:
    return registry.rsplit(":", 1)[0] if ":" in registry else registry


class RegistryMetadataResolver:
    def __init__(self, config: GatewayConfig):
        self._internal_hosts = frozenset(_host(r) for r in config.internal_registries)
        self._allowed = frozenset(config.allowed_registries)

    def is_internal(self, registry: str) -> bool:
        return _host(registry) in self._internal_hosts or bool(
            _IPV4_WITH_PORT.match(registry)
        )

    def is_known(self, registry: str) -> bool:
        """Internal registries are always known; others must be allowed."""
        if not self._allowed or self.is_internal(registry):
            return True
        return registry in self._allowed

    def resolve(self, registry: str) -> RegistryPolicy:
        if self.is_internal(registry):
            return RegistryPolicy(
                registry=registry,
                scheme="http",
                auth_method=AuthMethod.BEARER_TOKEN,
                is_internal=True,
            )
        return RegistryPolicy(
            registry=registry,
            scheme="https",
            auth_method=AuthMethod.NONE,
            is_internal=False,
        )
