"""Registry gateway types and data structures.

This module contains the value objects shared across the registry package.
No dependencies on registry_gateway.* modules outside this package.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

from .errors import RegistryGatewayError

T = TypeVar("T")


class AuthMethod(str, Enum):
    NONE = "none"
    BEARER_TOKEN = "bearer-token"


MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
MANIFEST_V1_SIGNED = "application/vnd.docker.distribution.manifest.v1+prettyjws"
MANIFEST_V1 = "application/vnd.docker.distribution.manifest.v1+json"

MANIFEST_ACCEPT = (MANIFEST_V2, MANIFEST_V1_SIGNED, MANIFEST_V1)


class ManifestSchema(str, Enum):
    """Docker manifest generations the gateway understands."""

    V2 = MANIFEST_V2
    V1 = MANIFEST_V1_SIGNED

    @classmethod
    def from_content_type(cls, content_type: str) -> Optional["ManifestSchema"]:
        media_type = content_type.split(";")[0].strip()
        if media_type == MANIFEST_V2:
            return cls.V2
        if media_type in (MANIFEST_V1_SIGNED, MANIFEST_V1):
            return cls.V1
        return None


class TagKind(str, Enum):
    LATEST = "LATEST"
    SNAPSHOT = "SNAPSHOT"
    MAJOR = "MAJOR"
    MINOR = "MINOR"
    BUGFIX = "BUGFIX"
    AURORA_VERSION = "AURORA_VERSION"
    AURORA_SNAPSHOT_VERSION = "AURORA_SNAPSHOT_VERSION"
    COMMIT_HASH = "COMMIT_HASH"


@dataclass(frozen=True)
class RetrySettings:
    """Retry budget for a single logical registry operation.

    Attributes:
        max_retries: Retries after the first attempt (3 means 4 attempts)
        min_delay_ms: First backoff delay
        max_delay_ms: Upper bound for any backoff delay
        deadline_seconds: Overall bound for the operation including retries
    """

    max_retries: int = 3
    min_delay_ms: int = 100
    max_delay_ms: int = 1000
    deadline_seconds: float = 300.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass(frozen=True)
class TimeoutSettings:
    connect: float = 30.0
    read: float = 30.0
    write: float = 30.0
    pool: float = 10.0


@dataclass(frozen=True)
class GatewayConfig:
    """Immutable configuration handed to resolvers, client and orchestrators.

    Attributes:
        internal_registries: Registry addresses (host[:port]) that are internal
        allowed_registries: Every registry the gateway may use; empty allows any
        retry: Retry and deadline budget
        timeouts: Per-request httpx timeouts
        worker_pool_size: Concurrent registry tasks and connections
        verify_tls: Verify certificates of https registries
    """

    internal_registries: tuple[str, ...] = ()
    allowed_registries: tuple[str, ...] = ()
    retry: RetrySettings = field(default_factory=RetrySettings)
    timeouts: TimeoutSettings = field(default_factory=TimeoutSettings)
    worker_pool_size: int = 16
    verify_tls: bool = True


@dataclass(frozen=True)
class RegistryPolicy:
    registry: str
    scheme: str
    auth_method: AuthMethod
    is_internal: bool

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.registry}/v2"


@dataclass(frozen=True)
class RepoCommand:
    """A resolved, validated reference to one image (or repository).

    Attributes:
        registry: Registry address, e.g. "docker-registry.default.svc:5000"
        group: Image group, e.g. "no_skatteetaten_aurora_demo"
        name: Image name, e.g. "whoami"
        tag: Image tag, None for tag-list queries
        credential: Bearer token without the scheme prefix
        policy: Connection policy of the registry
    """

    registry: str
    group: str
    name: str
    policy: RegistryPolicy
    tag: Optional[str] = None
    credential: Optional[str] = None

    @property
    def auth_method(self) -> AuthMethod:
        return self.policy.auth_method

    @property
    def manifest_path(self) -> str:
        return "/".join(part for part in (self.group, self.name, self.tag) if part)

    @property
    def repo_path(self) -> str:
        return f"{self.group}/{self.name}"

    @property
    def qualified_repo(self) -> str:
        return f"{self.registry}/{self.group}/{self.name}"

    @property
    def full_reference(self) -> str:
        if self.tag is None:
            return self.qualified_repo
        return f"{self.qualified_repo}:{self.tag}"

    @property
    def base_url(self) -> str:
        return self.policy.base_url

    def auth_header(self) -> Optional[str]:
        if self.auth_method == AuthMethod.NONE or not self.credential:
            return None
        return f"Bearer {self.credential}"


@dataclass(frozen=True)
class ManifestEnvelope:
    """Raw manifest as returned by the registry.

    `raw` holds the exact response bytes so a push reproduces the same digest.
    """

    content_type: str
    content_digest: str
    body: dict[str, Any]
    raw: bytes

    @property
    def schema(self) -> Optional[ManifestSchema]:
        return ManifestSchema.from_content_type(self.content_type)


@dataclass(frozen=True)
class JavaVersion:
    major: str
    minor: str
    build: str


@dataclass(frozen=True)
class NormalizedManifest:
    docker_digest: str
    docker_version: str
    build_ended: str
    build_started: Optional[str] = None
    aurora_version: Optional[str] = None
    app_version: Optional[str] = None
    node_version: Optional[str] = None
    jolokia_version: Optional[str] = None
    java: Optional[JavaVersion] = None


@dataclass(frozen=True)
class TagEntry:
    name: str
    kind: TagKind


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    source: str = ""

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """A failed outcome attributed to the reference that produced it."""

    source: str
    error: RegistryGatewayError

    @property
    def ok(self) -> bool:
        return False

    @property
    def reason(self) -> str:
        return self.error.message


Outcome = Union[Success[T], Failure]


@dataclass(frozen=True)
class BatchResult(Generic[T]):
    successes: tuple[Success[T], ...] = ()
    failures: tuple[Failure, ...] = ()

    @property
    def success_count(self) -> int:
        return len(self.successes)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def count(self) -> int:
        return self.success_count + self.failure_count

    @classmethod
    def from_outcomes(cls, outcomes: list[Outcome[T]]) -> "BatchResult[T]":
        successes = tuple(o for o in outcomes if isinstance(o, Success))
        failures = tuple(o for o in outcomes if isinstance(o, Failure))
        return cls(successes=successes, failures=failures)
