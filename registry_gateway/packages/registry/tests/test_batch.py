import json

import pytest

from registry_gateway.packages.registry import (
    AuthRequired,
    BatchOrchestrator,
    InvalidRequest,
    MalformedReference,
    ManifestNormalizer,
    NotFound,
    WorkerPool,
)
from registry_gateway.packages.registry.tests.registry_test_utils import (
    CONFIG_DIGEST,
    IMAGE_CONFIG,
    INTERNAL_REGISTRY,
    V2_MANIFEST,
    manifest_response,
)

REPO = f"{INTERNAL_REGISTRY}/no_skatteetaten_aurora_demo/whoami"


@pytest.fixture
def batch(address_resolver, registry_client) -> BatchOrchestrator:
    return BatchOrchestrator(address_resolver, ManifestNormalizer(registry_client), WorkerPool(2))


@pytest.fixture(autouse=True)
def populated(fake_registry):
    fake_registry.manifests[f"{REPO}:2"] = manifest_response(V2_MANIFEST)
    fake_registry.blobs[REPO] = {CONFIG_DIGEST: json.dumps(IMAGE_CONFIG).encode()}
    return fake_registry


async def test_one_success_one_not_found(batch):
    result = await batch.manifests([f"{REPO}:2", f"{REPO}:3"], "token")

    assert result.count == 2
    assert result.success_count == 1
    assert result.failure_count == 1
    assert result.successes[0].source == f"{REPO}:2"
    assert result.successes[0].value.docker_version == "1.13.1"
    assert result.failures[0].source == f"{REPO}:3"
    assert isinstance(result.failures[0].error, NotFound)


async def test_every_reference_yields_exactly_one_outcome(batch):
    references = [
        f"{REPO}:2",
        "no_skatteetaten_aurora_demo/whaomi",
        f"{REPO}",
        f"{REPO}:2",
    ]

    result = await batch.manifests(references, "token")

    assert result.count == len(references)
    assert [s.source for s in result.successes] == [f"{REPO}:2", f"{REPO}:2"]
    errors = {f.source: type(f.error) for f in result.failures}
    assert errors == {
        "no_skatteetaten_aurora_demo/whaomi": MalformedReference,
        REPO: InvalidRequest,
    }


async def test_missing_credential_fails_every_internal_reference(batch, populated):
    result = await batch.manifests([f"{REPO}:2", f"{REPO}:3"])

    assert result.success_count == 0
    assert all(isinstance(f.error, AuthRequired) for f in result.failures)
    assert populated.requests == []


async def test_empty_batch(batch):
    result = await batch.manifests([], "token")

    assert result.count == 0
