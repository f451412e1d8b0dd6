"""Docker Registry HTTP API v2 client.

Each public method issues one logical registry request, run through the
RetryPolicy. Paths are relative to `scheme://registry/v2` as resolved by the
RegistryPolicy on the command.

See: https://docs.docker.com/registry/spec/api/
"""

import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
import structlog

from .errors import InvalidRequest, NotFound, ProtocolViolation, UnsupportedManifestSchema
from .resilience import RetryPolicy
from .types import (
    MANIFEST_ACCEPT,
    GatewayConfig,
    ManifestEnvelope,
    ManifestSchema,
    RepoCommand,
)

logger = structlog.stdlib.get_logger(__name__)

T = TypeVar("T")

CONTENT_DIGEST_HEADER = "Docker-Content-Digest"
UPLOAD_UUID_HEADER = "Docker-Upload-UUID"


async def log_request(request: httpx.Request) -> None:
    """httpx event hook, logs outbound requests with a truncated token."""
    authorization = request.headers.get("Authorization")
    bearer = None
    if authorization:
        bearer = authorization[:11].replace("Bearer", "").strip()
    logger.debug(
        "HttpRequest",
        method=request.method,
        url=str(request.url),
        bearer=bearer,
    )


def create_http_client(config: GatewayConfig) -> httpx.AsyncClient:
    """Create the shared AsyncClient used for all registry traffic."""
    timeouts = config.timeouts
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=timeouts.connect,
            read=timeouts.read,
            write=timeouts.write,
            pool=timeouts.pool,
        ),
        limits=httpx.Limits(
            max_connections=config.worker_pool_size,
            max_keepalive_connections=config.worker_pool_size,
        ),
        verify=config.verify_tls,
        follow_redirects=True,
        headers={"User-Agent": "registry-gateway"},
        event_hooks={"request": [log_request]},
    )


class RegistryClient:
    """Low-level Docker Registry v2 operations.

    The httpx.AsyncClient is shared and safe for concurrent use; the client
    holds no other mutable state.
    """

    def __init__(self, http: httpx.AsyncClient, retry_policy: RetryPolicy):
        self.http = http
        self.retry_policy = retry_policy

    def _headers(self, cmd: RepoCommand, **extra: str) -> dict[str, str]:
        headers = dict(extra)
        auth_header = cmd.auth_header()
        if auth_header:
            headers["Authorization"] = auth_header
        return headers

    def _url(self, cmd: RepoCommand, path: str) -> str:
        return f"{cmd.base_url}/{cmd.repo_path}/{path}"

    async def _call(
        self,
        cmd: RepoCommand,
        operation: str,
        func: Callable[[], Awaitable[T]],
    ) -> T:
        return await self.retry_policy.call(cmd, operation, func)

    async def get_manifest(self, cmd: RepoCommand) -> ManifestEnvelope:
        if not cmd.tag:
            raise InvalidRequest(
                f"Invalid url={cmd.full_reference}, a tag is required",
                registry=cmd.registry,
            )

        async def send() -> ManifestEnvelope:
            response = await self.http.get(
                self._url(cmd, f"manifests/{cmd.tag}"),
                headers=self._headers(cmd, Accept=", ".join(MANIFEST_ACCEPT)),
            )
            response.raise_for_status()

            content_type = response.headers.get("Content-Type")
            if not content_type:
                raise ProtocolViolation(
                    "Required header=Content-Type is not present",
                    registry=cmd.registry,
                )

            if ManifestSchema.from_content_type(content_type) is None:
                logger.info(
                    "Unsupported image manifest detected",
                    image=cmd.full_reference,
                    content_type=content_type,
                )
                raise UnsupportedManifestSchema(
                    content_type, cmd.full_reference, cmd.registry
                )

            envelope = ManifestEnvelope(
                content_type=content_type.split(";")[0].strip(),
                content_digest=response.headers.get(CONTENT_DIGEST_HEADER, ""),
                body=_parse_document(response.content, cmd),
                raw=response.content,
            )
            if not envelope.content_digest:
                raise ProtocolViolation(
                    f"Required header={CONTENT_DIGEST_HEADER} is not present",
                    registry=cmd.registry,
                )
            return envelope

        return await self._call(cmd, "GET_MANIFEST", send)

    async def get_tags(self, cmd: RepoCommand) -> list[str]:
        async def send() -> list[str]:
            response = await self.http.get(
                self._url(cmd, "tags/list"),
                headers=self._headers(cmd),
            )
            response.raise_for_status()
            return _parse_document(response.content, cmd).get("tags") or []

        tags = await self._call(cmd, "GET_TAGS", send)
        if not tags:
            raise NotFound(
                f"Resource could not be found status=404 message=Not Found "
                f"repo={cmd.qualified_repo}",
                registry=cmd.registry,
            )
        return tags

    async def get_blob(self, cmd: RepoCommand, digest: str) -> bytes:
        async def send() -> bytes:
            response = await self.http.get(
                self._url(cmd, f"blobs/{digest}"),
                headers=self._headers(cmd),
            )
            response.raise_for_status()
            return response.content

        return await self._call(cmd, "GET_BLOB", send)

    async def get_config_blob(self, cmd: RepoCommand, digest: str) -> dict[str, Any]:
        data = await self.get_blob(cmd, digest)
        if not data:
            raise ProtocolViolation(
                f"Unable to retrieve V2 manifest config for {cmd.qualified_repo}/{digest}",
                registry=cmd.registry,
            )
        return _parse_document(data, cmd)

    async def blob_exists(self, cmd: RepoCommand, digest: str) -> bool:
        async def send() -> bool:
            response = await self.http.head(
                self._url(cmd, f"blobs/{digest}"),
                headers=self._headers(cmd),
            )
            if response.status_code == 404:
                return False
            response.raise_for_status()
            return True

        return await self._call(cmd, "BLOB_EXIST", send)

    async def initiate_upload(self, cmd: RepoCommand) -> str:
        async def send() -> str:
            response = await self.http.post(
                self._url(cmd, "blobs/uploads/"),
                headers=self._headers(cmd, **{"Content-Length": "0"}),
            )
            response.raise_for_status()
            session_id = response.headers.get(UPLOAD_UUID_HEADER)
            if not session_id:
                raise ProtocolViolation(
                    f"Response to generate upload session did not contain {UPLOAD_UUID_HEADER}",
                    registry=cmd.registry,
                )
            return session_id

        return await self._call(cmd, "INITIATE_UPLOAD", send)

    async def upload_blob(
        self,
        cmd: RepoCommand,
        session_id: str,
        digest: str,
        data: bytes,
    ) -> None:
        async def send() -> None:
            response = await self.http.put(
                self._url(cmd, f"blobs/uploads/{session_id}"),
                params={"digest": digest},
                content=data,
                headers=self._headers(cmd, **{"Content-Type": "application/octet-stream"}),
            )
            response.raise_for_status()

        await self._call(cmd, "UPLOAD_LAYER", send)

    async def put_manifest(self, cmd: RepoCommand, manifest: ManifestEnvelope) -> None:
        if not cmd.tag:
            raise InvalidRequest(
                f"Invalid url={cmd.full_reference}, a tag is required",
                registry=cmd.registry,
            )

        async def send() -> None:
            response = await self.http.put(
                self._url(cmd, f"manifests/{cmd.tag}"),
                content=manifest.raw,
                headers=self._headers(cmd, **{"Content-Type": manifest.content_type}),
            )
            response.raise_for_status()

        await self._call(cmd, "PUT_MANIFEST", send)


def _parse_document(data: bytes, cmd: RepoCommand) -> dict[str, Any]:
    try:
        document = json.loads(data) if data else None
    except ValueError as e:
        raise ProtocolViolation(
            f"Response from registry was not valid JSON image={cmd.full_reference}",
            registry=cmd.registry,
        ) from e
    if not isinstance(document, dict):
        raise ProtocolViolation(
            f"Response from registry was not a JSON object image={cmd.full_reference}",
            registry=cmd.registry,
        )
    return document


__all__ = [
    "CONTENT_DIGEST_HEADER",
    "UPLOAD_UUID_HEADER",
    "RegistryClient",
    "create_http_client",
    "log_request",
]
