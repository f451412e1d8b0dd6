"""Docker Registry HTTP API v2 client and copy orchestration.

This package resolves image references, talks to registries through a
retrying protocol client, normalizes manifests and orchestrates batch lookups
and cross-registry copies. No dependencies on registry_gateway.* modules
outside this package.
"""

from .address import RepoAddressResolver
from .batch import BatchOrchestrator
from .client import RegistryClient, create_http_client
from .errors import (
    AuthRequired,
    InvalidRequest,
    MalformedReference,
    NotFound,
    ProtocolViolation,
    RegistryGatewayError,
    SourceSystemError,
    UnexpectedError,
)
from .manifest import ManifestNormalizer
from .metadata import RegistryMetadataResolver
from .pool import WorkerPool
from .resilience import RetryPolicy
from .tagging import CopyOrchestrator, CopyResult
from .types import (
    BatchResult,
    Failure,
    GatewayConfig,
    NormalizedManifest,
    Outcome,
    RepoCommand,
    Success,
    TagEntry,
    TagKind,
)

__all__ = [
    # Resolvers
    "RegistryMetadataResolver",
    "RepoAddressResolver",
    # Protocol
    "RegistryClient",
    "RetryPolicy",
    "create_http_client",
    # Orchestration
    "BatchOrchestrator",
    "CopyOrchestrator",
    "CopyResult",
    "ManifestNormalizer",
    "WorkerPool",
    # Types
    "BatchResult",
    "Failure",
    "GatewayConfig",
    "NormalizedManifest",
    "Outcome",
    "RepoCommand",
    "Success",
    "TagEntry",
    "TagKind",
    # Errors
    "AuthRequired",
    "InvalidRequest",
    "MalformedReference",
    "NotFound",
    "ProtocolViolation",
    "RegistryGatewayError",
    "SourceSystemError",
    "UnexpectedError",
]
