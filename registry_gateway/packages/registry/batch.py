"""Batch lookups over many references.

Every reference is resolved and looked up independently in the worker pool.
One reference failing (malformed, unauthorized, upstream error) never affects
another; each reference yields exactly one success or failure.
"""

from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from .address import RepoAddressResolver
from .errors import InvalidRequest
from .manifest import ManifestNormalizer
from .pool import WorkerPool
from .types import BatchResult, NormalizedManifest, RepoCommand

logger = structlog.stdlib.get_logger(__name__)

T = TypeVar("T")


class BatchOrchestrator:
    def __init__(
        self,
        address_resolver: RepoAddressResolver,
        normalizer: ManifestNormalizer,
        pool: WorkerPool,
    ):
        self.address_resolver = address_resolver
        self.normalizer = normalizer
        self.pool = pool

    async def run(
        self,
        references: list[str],
        credential: Optional[str],
        lookup: Callable[[RepoCommand], Awaitable[T]],
    ) -> BatchResult[T]:
        async def one(reference: str) -> T:
            cmd = self.address_resolver.resolve(reference, credential)
            return await lookup(cmd)

        outcomes = await self.pool.map_settled(
            references, source=lambda reference: reference, func=one
        )
        result = BatchResult.from_outcomes(outcomes)
        logger.debug(
            "Batch lookup finished",
            count=result.count,
            success_count=result.success_count,
            failure_count=result.failure_count,
        )
        return result

    async def lookup_manifest(self, cmd: RepoCommand) -> NormalizedManifest:
        if not cmd.tag:
            raise InvalidRequest(
                f"ImageRepo with spec={cmd.full_reference} does not contain a tag",
                registry=cmd.registry,
            )
        return await self.normalizer.fetch(cmd)

    async def manifests(
        self, references: list[str], credential: Optional[str] = None
    ) -> BatchResult[NormalizedManifest]:
        return await self.run(references, credential, self.lookup_manifest)
