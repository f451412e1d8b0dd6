"""Manifest normalization.

Reduces a schema v1 or v2 manifest to a NormalizedManifest:

- v2: the image config is a separate blob, fetched by `config.digest`.
- v1: the config is embedded as a JSON string in `history[0].v1Compatibility`.

Both paths read the same three things from the config document (`config.Env`,
`docker_version`, `created`) and build the result the same way.
"""

import json
from typing import Any, Optional

import structlog

from .client import RegistryClient
from .errors import SourceSystemError
from .types import (
    JavaVersion,
    ManifestEnvelope,
    ManifestSchema,
    NormalizedManifest,
    RepoCommand,
)

logger = structlog.stdlib.get_logger(__name__)

MANIFEST_ENV_LABELS = frozenset(
    {
        "AURORA_VERSION",
        "IMAGE_BUILD_TIME",
        "APP_VERSION",
        "JOLOKIA_VERSION",
        "JAVA_VERSION_MAJOR",
        "JAVA_VERSION_MINOR",
        "JAVA_VERSION_BUILD",
        "NODEJS_VERSION",
    }
)

DOCKER_VERSION_LABEL = "docker_version"
CREATED_LABEL = "created"


def config_digest(envelope: ManifestEnvelope) -> Optional[str]:
    config = envelope.body.get("config")
    if isinstance(config, dict):
        return config.get("digest")
    return None


def _malformed(cmd: RepoCommand, what: str) -> SourceSystemError:
    return SourceSystemError(
        f"Malformed {what} image={cmd.full_reference}",
        registry=cmd.registry,
    )


def find_blobs(cmd: RepoCommand, envelope: ManifestEnvelope) -> list[str]:
    """List the blob digests a manifest references, without duplicates.

    v2: every layer digest followed by the config digest.
    v1: every fsLayers blobSum.

    Raises:
        SourceSystemError: the layer list or one of its entries has the wrong shape
    """
    body = envelope.body
    if envelope.schema == ManifestSchema.V2:
        field, key = "layers", "digest"
    else:
        field, key = "fsLayers", "blobSum"

    layers = body.get(field) or []
    if not isinstance(layers, list):
        raise _malformed(cmd, f"manifest field={field}")
    digests = []
    for layer in layers:
        if not isinstance(layer, dict) or not isinstance(layer.get(key), str):
            raise _malformed(cmd, f"manifest entry in field={field}")
        digests.append(layer[key])
    if envelope.schema == ManifestSchema.V2:
        digests.append(config_digest(envelope))
    return list(dict.fromkeys(d for d in digests if d))


def env_variables(cmd: RepoCommand, config: dict[str, Any]) -> dict[str, str]:
    """Whitelisted `KEY=VALUE` entries of config.Env, keys upper-cased."""
    container_config = config.get("config") or {}
    if not isinstance(container_config, dict):
        raise _malformed(cmd, "image config field=config")
    env = container_config.get("Env") or []
    if not isinstance(env, list):
        raise _malformed(cmd, "image config field=config.Env")

    variables: dict[str, str] = {}
    for entry in env:
        key, sep, value = str(entry).partition("=")
        if not sep:
            continue
        key = key.upper()
        if key in MANIFEST_ENV_LABELS:
            variables[key] = value
    return variables


def _java_version(env: dict[str, str]) -> Optional[JavaVersion]:
    major = env.get("JAVA_VERSION_MAJOR")
    minor = env.get("JAVA_VERSION_MINOR")
    build = env.get("JAVA_VERSION_BUILD")
    if major is None or minor is None or build is None:
        return None
    return JavaVersion(major=major, minor=minor, build=build)


def from_config(
    cmd: RepoCommand,
    envelope: ManifestEnvelope,
    config: dict[str, Any],
) -> NormalizedManifest:
    env = env_variables(cmd, config)
    docker_version = config.get(DOCKER_VERSION_LABEL)
    created = config.get(CREATED_LABEL)

    missing = [
        label
        for label, value in ((DOCKER_VERSION_LABEL, docker_version), (CREATED_LABEL, created))
        if not value
    ]
    if missing:
        raise SourceSystemError(
            f"Image config is missing required fields={','.join(missing)} "
            f"image={cmd.full_reference}",
            registry=cmd.registry,
        )

    return NormalizedManifest(
        docker_digest=envelope.content_digest,
        docker_version=str(docker_version),
        build_ended=str(created),
        build_started=env.get("IMAGE_BUILD_TIME"),
        aurora_version=env.get("AURORA_VERSION"),
        app_version=env.get("APP_VERSION"),
        node_version=env.get("NODEJS_VERSION"),
        jolokia_version=env.get("JOLOKIA_VERSION"),
        java=_java_version(env),
    )


def v1_compatibility(cmd: RepoCommand, envelope: ManifestEnvelope) -> dict[str, Any]:
    history = envelope.body.get("history") or []
    try:
        document = json.loads(history[0]["v1Compatibility"])
    except (IndexError, KeyError, TypeError, ValueError) as e:
        raise SourceSystemError(
            f"v1 manifest has no readable history[0].v1Compatibility image={cmd.full_reference}",
            registry=cmd.registry,
        ) from e
    if not isinstance(document, dict):
        raise SourceSystemError(
            f"v1Compatibility is not a JSON object image={cmd.full_reference}",
            registry=cmd.registry,
        )
    return document


class ManifestNormalizer:
    def __init__(self, client: RegistryClient):
        self.client = client

    async def load_config(
        self, cmd: RepoCommand, envelope: ManifestEnvelope
    ) -> dict[str, Any]:
        schema = envelope.schema
        if schema == ManifestSchema.V2:
            digest = config_digest(envelope)
            if not digest:
                raise SourceSystemError(
                    f"v2 manifest has no config digest image={cmd.full_reference}",
                    registry=cmd.registry,
                )
            return await self.client.get_config_blob(cmd, digest)

        if schema == ManifestSchema.V1:
            logger.debug("Old image manifest detected", image=cmd.full_reference)
            return v1_compatibility(cmd, envelope)

        raise SourceSystemError(
            f"Unsupported manifest contentType={envelope.content_type} "
            f"image={cmd.full_reference}",
            registry=cmd.registry,
        )

    async def normalize(
        self, cmd: RepoCommand, envelope: ManifestEnvelope
    ) -> NormalizedManifest:
        config = await self.load_config(cmd, envelope)
        return from_config(cmd, envelope, config)

    async def fetch(self, cmd: RepoCommand) -> NormalizedManifest:
        """Fetch the manifest for `cmd` and normalize it."""
        envelope = await self.client.get_manifest(cmd)
        return await self.normalize(cmd, envelope)
