"""Query and copy operations offered to API callers.

Wires the registry package together and exposes one method per inbound
operation. Every method returns an Outcome (or a BatchResult); validation
and upstream errors are never raised past this service.
"""

from typing import Optional

import httpx
import structlog

from registry_gateway.packages.registry import (
    BatchOrchestrator,
    BatchResult,
    CopyOrchestrator,
    CopyResult,
    Failure,
    GatewayConfig,
    ManifestNormalizer,
    NormalizedManifest,
    Outcome,
    RegistryClient,
    RegistryGatewayError,
    RegistryMetadataResolver,
    RepoAddressResolver,
    RetryPolicy,
    Success,
    TagEntry,
    TagKind,
    UnexpectedError,
    WorkerPool,
)
from registry_gateway.packages.registry.tags import filter_tags, group_tags, to_entries

logger = structlog.stdlib.get_logger(__name__)


class RegistryService:
    def __init__(
        self,
        config: GatewayConfig,
        http: httpx.AsyncClient,
        pool: Optional[WorkerPool] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.config = config
        self.pool = pool or WorkerPool(config.worker_pool_size)
        self.address_resolver = RepoAddressResolver(RegistryMetadataResolver(config))
        self.client = RegistryClient(http, retry_policy or RetryPolicy(config.retry))
        self.normalizer = ManifestNormalizer(self.client)
        self.batch = BatchOrchestrator(self.address_resolver, self.normalizer, self.pool)
        self.copier = CopyOrchestrator(self.client, self.pool)

    async def get_manifest(
        self, reference: str, credential: Optional[str] = None
    ) -> Outcome[NormalizedManifest]:
        try:
            cmd = self.address_resolver.resolve(reference, credential)
        except RegistryGatewayError as e:
            return Failure(source=reference, error=e)
        return await self.pool.settle(reference, lambda: self.batch.lookup_manifest(cmd))

    async def get_manifests(
        self, references: list[str], credential: Optional[str] = None
    ) -> BatchResult[NormalizedManifest]:
        return await self.batch.manifests(references, credential)

    async def get_tags(
        self,
        reference: str,
        credential: Optional[str] = None,
        tag_filter: Optional[str] = None,
    ) -> Outcome[list[TagEntry]]:
        try:
            cmd = self.address_resolver.resolve(reference, credential)
        except RegistryGatewayError as e:
            return Failure(source=reference, error=e)

        fetched = await self.pool.settle(reference, lambda: self.client.get_tags(cmd))
        if isinstance(fetched, Failure):
            return fetched
        try:
            entries = filter_tags(to_entries(fetched.value), tag_filter)
        except RegistryGatewayError as e:
            return Failure(source=reference, error=e)
        return Success(entries, source=reference)

    async def get_grouped_tags(
        self, reference: str, credential: Optional[str] = None
    ) -> Outcome[dict[TagKind, list[TagEntry]]]:
        outcome = await self.get_tags(reference, credential)
        if isinstance(outcome, Failure):
            return outcome
        return Success(group_tags(outcome.value), source=reference)

    async def tag_image(
        self,
        source: str,
        destination: str,
        destination_credential: str,
        source_credential: Optional[str] = None,
    ) -> Outcome[CopyResult]:
        try:
            from_cmd = self.address_resolver.resolve(source, source_credential)
        except RegistryGatewayError as e:
            return Failure(source=source, error=e)
        try:
            to_cmd = self.address_resolver.resolve(destination, destination_credential)
        except RegistryGatewayError as e:
            return Failure(source=destination, error=e)

        try:
            outcome = await self.copier.tag_image(from_cmd, to_cmd)
        except Exception as e:
            logger.exception(
                "Unclassified failure tagging image", source=source, destination=destination
            )
            outcome = Failure(
                source=destination,
                error=UnexpectedError(f"Unknown error ({type(e).__name__}): {e}"),
            )
        if isinstance(outcome, Failure):
            logger.info(
                "Failed tagging image",
                source=source,
                destination=destination,
                error=outcome.reason,
            )
        return outcome
