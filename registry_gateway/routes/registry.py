"""
Registry routes: manifest lookups, tag listings and image tagging.

Every response uses the same envelope. Single-reference endpoints answer with
the failing error's status code; batch endpoints always answer 200 and report
per-reference failures in the envelope.
"""

import re
from datetime import datetime
from typing import Any, Optional, Sequence

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from registry_gateway.deps.registry import Credential, RegistryServiceDep, RequiredCredential
from registry_gateway.packages.registry import (
    BatchResult,
    CopyResult,
    Failure,
    NormalizedManifest,
    TagEntry,
    TagKind,
)
from registry_gateway.packages.registry.address import strip_auth_scheme

router = APIRouter(tags=["Registry"])

# Fractions beyond microseconds are dropped, docker writes nanoseconds
_FRACTION = re.compile(r"(\.\d{6})\d+")


# Pydantic Schemas
class FailureResource(BaseModel):
    url: str
    error_message: str


class GatewayResponse(BaseModel):
    items: list[Any] = []
    failure: list[FailureResource] = []
    success: bool = True
    message: str = "OK"
    success_count: int = 0
    failure_count: int = 0
    count: int = 0


class TimelineResource(BaseModel):
    build_started: Optional[datetime] = None
    build_ended: Optional[datetime] = None


class JavaResource(BaseModel):
    major: str
    minor: str
    build: str
    jolokia: Optional[str] = None


class NodeResource(BaseModel):
    node_js_version: str


class ImageTagResource(BaseModel):
    docker_digest: str
    docker_version: str
    aurora_version: Optional[str] = None
    app_version: Optional[str] = None
    request_url: str
    timeline: TimelineResource
    java: Optional[JavaResource] = None
    node: Optional[NodeResource] = None


class TagResource(BaseModel):
    name: str
    type: TagKind


class GroupedTagResource(BaseModel):
    group: TagKind
    tag_resource: list[TagResource]


class CopyResource(BaseModel):
    source: str
    destination: str
    manifest_digest: str
    blobs_copied: int
    blobs_skipped: int


class TagUrlsRequest(BaseModel):
    tag_urls: list[str]


class TagCommandRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_url: str = Field(alias="from")
    to_url: str = Field(alias="to")
    from_token: Optional[str] = None


# Helper functions
def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, returning None for anything unparseable."""
    if not value:
        return None
    normalized = _FRACTION.sub(r"\1", value.strip())
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(normalized)
    except ValueError:
        return None


def to_image_tag_resource(manifest: NormalizedManifest, request_url: str) -> ImageTagResource:
    java = None
    if manifest.java:
        java = JavaResource(
            major=manifest.java.major,
            minor=manifest.java.minor,
            build=manifest.java.build,
            jolokia=manifest.jolokia_version,
        )
    node = None
    if manifest.node_version:
        node = NodeResource(node_js_version=manifest.node_version)

    return ImageTagResource(
        docker_digest=manifest.docker_digest,
        docker_version=manifest.docker_version,
        aurora_version=manifest.aurora_version,
        app_version=manifest.app_version,
        request_url=request_url,
        timeline=TimelineResource(
            build_started=parse_timestamp(manifest.build_started),
            build_ended=parse_timestamp(manifest.build_ended),
        ),
        java=java,
        node=node,
    )


def to_tag_resources(entries: list[TagEntry]) -> list[TagResource]:
    return [TagResource(name=entry.name, type=entry.kind) for entry in entries]


def _envelope(
    items: Sequence[BaseModel], failures: Sequence[Failure] = ()
) -> GatewayResponse:
    failure = [
        FailureResource(url=f.source, error_message=f.reason) for f in failures
    ]
    return GatewayResponse(
        items=[item.model_dump(mode="json") for item in items],
        failure=failure,
        success=not failure,
        message=failure[0].error_message if failure else "OK",
        success_count=len(items),
        failure_count=len(failure),
        count=len(items) + len(failure),
    )


def _respond(envelope: GatewayResponse, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=envelope.model_dump(mode="json"))


def _failed(outcome: Failure) -> JSONResponse:
    return _respond(_envelope([], [outcome]), status_code=outcome.error.status_code)


# Routes
@router.get("/manifest", response_model=GatewayResponse)
async def get_manifest(
    service: RegistryServiceDep,
    credential: Credential,
    tag_url: str = Query(..., description="registry/group/name/tag"),
):
    outcome = await service.get_manifest(tag_url, credential)
    if isinstance(outcome, Failure):
        return _failed(outcome)
    return _respond(_envelope([to_image_tag_resource(outcome.value, tag_url)]))


@router.post("/manifest", response_model=GatewayResponse)
async def get_manifests(
    body: TagUrlsRequest,
    service: RegistryServiceDep,
    credential: Credential,
):
    result: BatchResult[NormalizedManifest] = await service.get_manifests(
        body.tag_urls, credential
    )
    items = [to_image_tag_resource(s.value, s.source) for s in result.successes]
    return _respond(_envelope(items, result.failures))


@router.get("/tags", response_model=GatewayResponse)
async def get_tags(
    service: RegistryServiceDep,
    credential: Credential,
    repo_url: str = Query(..., description="registry/group/name"),
    filter: Optional[str] = Query(None, description="Regular expression matched against tag names"),
):
    outcome = await service.get_tags(repo_url, credential, tag_filter=filter)
    if isinstance(outcome, Failure):
        return _failed(outcome)
    return _respond(_envelope(to_tag_resources(outcome.value)))


@router.get("/tags/semantic", response_model=GatewayResponse)
async def get_grouped_tags(
    service: RegistryServiceDep,
    credential: Credential,
    repo_url: str = Query(..., description="registry/group/name"),
):
    outcome = await service.get_grouped_tags(repo_url, credential)
    if isinstance(outcome, Failure):
        return _failed(outcome)
    items = [
        GroupedTagResource(group=kind, tag_resource=to_tag_resources(entries))
        for kind, entries in outcome.value.items()
    ]
    return _respond(_envelope(items))


@router.post("/tag", response_model=GatewayResponse)
async def tag_image(
    body: TagCommandRequest,
    service: RegistryServiceDep,
    credential: RequiredCredential,
):
    outcome = await service.tag_image(
        source=body.from_url,
        destination=body.to_url,
        destination_credential=credential,
        source_credential=strip_auth_scheme(body.from_token),
    )
    if isinstance(outcome, Failure):
        return _failed(outcome)
    result: CopyResult = outcome.value
    return _respond(
        _envelope(
            [
                CopyResource(
                    source=result.source,
                    destination=result.destination,
                    manifest_digest=result.manifest_digest,
                    blobs_copied=result.blobs_copied,
                    blobs_skipped=result.blobs_skipped,
                )
            ]
        )
    )
