import json

import pytest

from registry_gateway.packages.registry import ManifestNormalizer, SourceSystemError
from registry_gateway.packages.registry.manifest import env_variables, find_blobs, from_config
from registry_gateway.packages.registry.tests.registry_test_utils import (
    CONFIG_DIGEST,
    IMAGE_CONFIG,
    INTERNAL_REGISTRY,
    LAYER_DIGESTS,
    MANIFEST_DIGEST,
    V1_MANIFEST,
    V2_MANIFEST,
    FakeRegistry,
    manifest_response,
    v1_manifest_response,
)
from registry_gateway.packages.registry.types import (
    MANIFEST_V1_SIGNED,
    MANIFEST_V2,
    JavaVersion,
    ManifestEnvelope,
)

REPO = f"{INTERNAL_REGISTRY}/no_skatteetaten_aurora_demo/whoami"


@pytest.fixture
def cmd(address_resolver):
    return address_resolver.resolve(f"{REPO}:2", "token")


@pytest.fixture
def normalizer(registry_client):
    return ManifestNormalizer(registry_client)


def _envelope(body: dict, content_type: str = MANIFEST_V2) -> ManifestEnvelope:
    raw = json.dumps(body).encode()
    return ManifestEnvelope(
        content_type=content_type, content_digest=MANIFEST_DIGEST, body=body, raw=raw
    )


async def test_fetch_v2_manifest(normalizer, fake_registry: FakeRegistry, cmd):
    fake_registry.manifests[f"{REPO}:2"] = manifest_response(V2_MANIFEST)
    fake_registry.blobs[REPO] = {CONFIG_DIGEST: json.dumps(IMAGE_CONFIG).encode()}

    manifest = await normalizer.fetch(cmd)

    assert manifest.docker_digest == MANIFEST_DIGEST
    assert manifest.docker_version == "1.13.1"
    assert manifest.build_ended == "2018-01-15T13:12:10.925409386Z"
    assert manifest.build_started == "2018-01-15T13:11:52Z"
    assert manifest.aurora_version == "2.0.14-b1.11.0-flange-8.152.18"
    assert manifest.app_version == "2.0.14"
    assert manifest.jolokia_version == "1.3.7"
    assert manifest.node_version == "8.9.4"
    assert manifest.java == JavaVersion(major="8", minor="0", build="152")
    assert len(fake_registry.calls("GET", f"/blobs/{CONFIG_DIGEST}")) == 1


async def test_fetch_v1_manifest(normalizer, fake_registry: FakeRegistry, cmd):
    fake_registry.manifests[f"{REPO}:2"] = v1_manifest_response()

    manifest = await normalizer.fetch(cmd)

    assert manifest.docker_version == "1.12.6"
    assert manifest.build_ended == "2017-06-01T10:00:00Z"
    assert manifest.aurora_version == "1.0.0"
    assert manifest.java is None
    assert fake_registry.calls("GET", "/blobs/") == []


async def test_config_missing_docker_version(normalizer, fake_registry, cmd):
    config = {**IMAGE_CONFIG}
    del config["docker_version"]
    fake_registry.manifests[f"{REPO}:2"] = manifest_response(V2_MANIFEST)
    fake_registry.blobs[REPO] = {CONFIG_DIGEST: json.dumps(config).encode()}

    with pytest.raises(SourceSystemError) as exc_info:
        await normalizer.fetch(cmd)

    assert "docker_version" in exc_info.value.message
    assert exc_info.value.registry == INTERNAL_REGISTRY


async def test_v1_manifest_without_history(normalizer, cmd):
    with pytest.raises(SourceSystemError):
        await normalizer.normalize(
            cmd, _envelope({"schemaVersion": 1, "history": []}, MANIFEST_V1_SIGNED)
        )


def test_java_version_needs_all_three_keys(cmd):
    config = {
        "docker_version": "1.13.1",
        "created": "2018-01-15T13:12:10Z",
        "config": {"Env": ["JAVA_VERSION_MAJOR=8", "JAVA_VERSION_MINOR=0"]},
    }

    manifest = from_config(cmd, _envelope(V2_MANIFEST), config)

    assert manifest.java is None
    assert manifest.build_started is None


def test_env_variables_whitelist_and_first_equals(cmd):
    env = env_variables(
        cmd,
        {
            "config": {
                "Env": [
                    "app_version=1.0=rc1",
                    "HOME=/root",
                    "NOVALUE",
                    "IMAGE_BUILD_TIME=",
                ]
            }
        },
    )

    assert env == {"APP_VERSION": "1.0=rc1", "IMAGE_BUILD_TIME": ""}


def test_env_variables_without_config(cmd):
    assert env_variables(cmd, {}) == {}


def test_find_blobs_v2_layers_then_config_without_duplicates(cmd):
    assert find_blobs(cmd, _envelope(V2_MANIFEST)) == [*LAYER_DIGESTS, CONFIG_DIGEST]


def test_find_blobs_v1_fs_layers(cmd):
    assert find_blobs(cmd, _envelope(V1_MANIFEST, MANIFEST_V1_SIGNED)) == [
        "sha256:a3ed95ca",
        "sha256:b4a6d2fe",
    ]


@pytest.mark.parametrize(
    "image_config",
    [
        {"config": ["PATH=/"]},
        {"config": {"Env": "PATH=/"}},
    ],
)
def test_env_variables_rejects_malformed_config(cmd, image_config):
    with pytest.raises(SourceSystemError) as exc_info:
        env_variables(cmd, image_config)

    assert exc_info.value.registry == INTERNAL_REGISTRY


@pytest.mark.parametrize(
    "manifest",
    [
        {**V2_MANIFEST, "layers": [None]},
        {**V2_MANIFEST, "layers": {"digest": "sha256:layer1"}},
        {**V2_MANIFEST, "layers": [{"size": 1}]},
    ],
)
def test_find_blobs_rejects_malformed_layers(cmd, manifest):
    with pytest.raises(SourceSystemError):
        find_blobs(cmd, _envelope(manifest))
