import json

import pytest

from registry_gateway.packages.registry import (
    Failure,
    SourceSystemError,
    Success,
    UnexpectedError,
)
from registry_gateway.packages.registry.tests.registry_test_utils import (
    CONFIG_DIGEST,
    EXTERNAL_REGISTRY,
    INTERNAL_REGISTRY,
    V2_MANIFEST,
    FakeRegistry,
    manifest_response,
)
from registry_gateway.services.registry_service import RegistryService

REPO = f"{INTERNAL_REGISTRY}/no_skatteetaten_aurora_demo/whoami"
SOURCE_REPO = f"{EXTERNAL_REGISTRY}/library/whoami"


async def test_get_manifest_with_non_object_container_config(
    registry_service: RegistryService, fake_registry: FakeRegistry
):
    fake_registry.manifests[f"{REPO}:2"] = manifest_response(V2_MANIFEST)
    fake_registry.blobs[REPO] = {
        CONFIG_DIGEST: json.dumps(
            {"docker_version": "1", "created": "x", "config": ["PATH=/"]}
        ).encode()
    }

    outcome = await registry_service.get_manifest(f"{REPO}:2", "token")

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, SourceSystemError)
    assert outcome.error.registry == INTERNAL_REGISTRY
    assert outcome.source == f"{REPO}:2"


async def test_get_manifest_wraps_unclassified_errors(
    registry_service: RegistryService, monkeypatch
):
    async def broken(cmd):
        raise AttributeError("'list' object has no attribute 'get'")

    monkeypatch.setattr(registry_service.batch, "lookup_manifest", broken)

    outcome = await registry_service.get_manifest(f"{REPO}:2", "token")

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, UnexpectedError)
    assert "AttributeError" in outcome.reason


async def test_tag_image_with_null_layer(
    registry_service: RegistryService, fake_registry: FakeRegistry
):
    fake_registry.manifests[f"{SOURCE_REPO}:2"] = manifest_response(
        {**V2_MANIFEST, "layers": [None]}
    )

    outcome = await registry_service.tag_image(
        f"{SOURCE_REPO}:2", f"{REPO}:promoted", "push-token"
    )

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, SourceSystemError)
    assert fake_registry.calls("HEAD") == []
    assert fake_registry.calls("PUT") == []


async def test_tag_image_wraps_unclassified_errors(
    registry_service: RegistryService, monkeypatch
):
    async def broken(source, destination):
        raise KeyError("digest")

    monkeypatch.setattr(registry_service.copier, "tag_image", broken)

    outcome = await registry_service.tag_image(
        f"{SOURCE_REPO}:2", f"{REPO}:promoted", "push-token"
    )

    assert isinstance(outcome, Failure)
    assert isinstance(outcome.error, UnexpectedError)
    assert outcome.source == f"{REPO}:promoted"


async def test_get_tags_runs_in_pool(
    registry_service: RegistryService, fake_registry: FakeRegistry, monkeypatch
):
    fake_registry.tags[REPO] = ["1", "latest"]
    runs = []
    run = registry_service.pool.run

    async def counting_run(func):
        runs.append(func)
        return await run(func)

    monkeypatch.setattr(registry_service.pool, "run", counting_run)

    outcome = await registry_service.get_tags(REPO, "token")

    assert isinstance(outcome, Success)
    assert [e.name for e in outcome.value] == ["1", "latest"]
    assert len(runs) == 1
