"""Cross-registry image copy ("tagging").

Copies an image by moving every blob the source manifest references into the
destination repository, then pushing the unchanged manifest under the
destination tag:

1. GET the manifest at `from`.
2. For each referenced digest, concurrently: HEAD at `to`; if absent, POST an
   upload session at `to`, GET the blob at `from`, PUT it to the session.
3. When every blob task has finished, PUT the manifest at `to`.

Blob tasks are not cancelled when a sibling fails. Blobs copied before a
failure stay in the destination; they are content addressed and unreferenced.
"""

from dataclasses import dataclass

import structlog

from .client import RegistryClient
from .errors import InvalidRequest, RegistryGatewayError
from .manifest import find_blobs
from .pool import WorkerPool
from .types import Failure, Outcome, RepoCommand, Success

logger = structlog.stdlib.get_logger(__name__)


@dataclass(frozen=True)
class CopyResult:
    source: str
    destination: str
    manifest_digest: str
    blobs_copied: int
    blobs_skipped: int


class CopyOrchestrator:
    def __init__(self, client: RegistryClient, pool: WorkerPool):
        self.client = client
        self.pool = pool

    async def ensure_blob_exists(
        self, source: RepoCommand, destination: RepoCommand, digest: str
    ) -> bool:
        """Copy one blob unless the destination already has it.

        Returns:
            True if the blob was uploaded, False if it was already present
        """
        if await self.client.blob_exists(destination, digest):
            logger.debug(
                "Blob already exists in registry",
                digest=digest,
                repo=destination.qualified_repo,
            )
            return False

        session_id = await self.client.initiate_upload(destination)
        data = await self.client.get_blob(source, digest)
        await self.client.upload_blob(destination, session_id, digest, data)
        logger.debug(
            "Blob pushed",
            digest=digest,
            repo=destination.qualified_repo,
            size=len(data),
        )
        return True

    async def tag_image(
        self, source: RepoCommand, destination: RepoCommand
    ) -> Outcome[CopyResult]:
        if not source.tag:
            return Failure(
                source=source.full_reference,
                error=InvalidRequest(
                    f"From spec={source.full_reference} does not contain a tag"
                ),
            )
        if not destination.tag:
            return Failure(
                source=destination.full_reference,
                error=InvalidRequest(
                    f"To spec={destination.full_reference} does not contain a tag"
                ),
            )

        fetched = await self.pool.settle(
            source.full_reference, lambda: self.client.get_manifest(source)
        )
        if isinstance(fetched, Failure):
            return fetched
        manifest = fetched.value

        try:
            digests = find_blobs(source, manifest)
        except RegistryGatewayError as e:
            return Failure(source=source.full_reference, error=e)

        outcomes = await self.pool.map_settled(
            digests,
            source=lambda digest: digest,
            func=lambda digest: self.ensure_blob_exists(source, destination, digest),
        )

        failures = [o for o in outcomes if isinstance(o, Failure)]
        if failures:
            first = failures[0]
            logger.warning(
                "Blob copy failed, manifest not pushed",
                source=source.full_reference,
                destination=destination.full_reference,
                failed_blobs=len(failures),
                digest=first.source,
                error=first.reason,
            )
            return Failure(source=destination.full_reference, error=first.error)

        pushed = await self.pool.settle(
            destination.full_reference,
            lambda: self.client.put_manifest(destination, manifest),
        )
        if isinstance(pushed, Failure):
            return pushed

        copied = sum(1 for o in outcomes if isinstance(o, Success) and o.value)
        logger.info(
            "Tagged docker image",
            source=source.full_reference,
            destination=destination.full_reference,
            manifest_digest=manifest.content_digest,
            blobs_copied=copied,
            blobs_skipped=len(digests) - copied,
        )
        return Success(
            CopyResult(
                source=source.full_reference,
                destination=destination.full_reference,
                manifest_digest=manifest.content_digest,
                blobs_copied=copied,
                blobs_skipped=len(digests) - copied,
            )
        )
