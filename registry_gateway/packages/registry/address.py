"""Reference string parsing.

Turns `registry[:port]/group/name[:tag]` (or `registry/group/name/tag`) into a
validated RepoCommand. All checks here run before any network call.
"""

from typing import Optional

import structlog

from .errors import AuthRequired, MalformedReference
from .metadata import RegistryMetadataResolver
from .types import AuthMethod, RepoCommand

logger = structlog.stdlib.get_logger(__name__)

SEGMENTS_WITHOUT_TAG = 3
SEGMENTS_WITH_TAG = 4


def strip_auth_scheme(authorization: Optional[str]) -> Optional[str]:
    """Reduce an Authorization header value ("Bearer abc") to its token.

    A bare scheme with no token ("Bearer ") counts as no credential.
    """
    if authorization is None or not authorization.strip():
        return None
    scheme, sep, token = authorization.strip().partition(" ")
    if not sep:
        return None if scheme.lower() == "bearer" else scheme
    return token.strip() or None


def split_reference(reference: str) -> tuple[str, str, str, Optional[str]]:
    segments = reference.split("/")

    if len(segments) == SEGMENTS_WITH_TAG:
        registry, group, name, tag = segments
    elif len(segments) == SEGMENTS_WITHOUT_TAG:
        registry, group, name = segments
        tag = None
        if ":" in name:
            name, tag = name.rsplit(":", 1)
    else:
        raise MalformedReference(
            f"repo url={reference} malformed pattern=url:port/group/name:tag"
        )

    if not all((registry, group, name)) or tag == "":
        raise MalformedReference(
            f"repo url={reference} malformed pattern=url:port/group/name:tag"
        )
    return registry, group, name, tag


class RepoAddressResolver:
    def __init__(self, metadata_resolver: RegistryMetadataResolver):
        self.metadata_resolver = metadata_resolver

    def resolve(self, reference: str, credential: Optional[str] = None) -> RepoCommand:
        """Parse and validate a reference string.

        Args:
            reference: e.g. "docker-registry.default.svc:5000/group/name:1.2.3"
            credential: Bearer token (with or without the "Bearer " prefix)

        Returns:
            A fully populated RepoCommand

        Raises:
            MalformedReference: wrong segment count or unknown registry
            AuthRequired: the registry needs a token and none was given
        """
        registry, group, name, tag = split_reference(reference)

        if not self.metadata_resolver.is_known(registry):
            raise MalformedReference(f"Invalid Docker Registry URL url={registry}")

        policy = self.metadata_resolver.resolve(registry)
        token = strip_auth_scheme(credential)

        if policy.auth_method == AuthMethod.BEARER_TOKEN and not token:
            logger.debug("Missing credential for registry", registry=registry)
            raise AuthRequired("Registry required authentication", registry=registry)

        return RepoCommand(
            registry=registry,
            group=group,
            name=name,
            tag=tag,
            credential=token,
            policy=policy,
        )
