"""Bounded pool for registry work.

One WorkerPool is created per process and handed to the orchestrators. It
caps how many registry tasks run at once, separately from whatever serves
inbound requests.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, TypeVar

import structlog

from .errors import RegistryGatewayError, UnexpectedError
from .types import Failure, Outcome, Success

logger = structlog.stdlib.get_logger(__name__)

T = TypeVar("T")
I = TypeVar("I")


class WorkerPool:
    def __init__(self, size: int):
        if size < 1:
            raise ValueError("Worker pool size must be at least 1")
        self.size = size
        self._semaphore = asyncio.Semaphore(size)

    async def run(self, func: Callable[[], Awaitable[T]]) -> T:
        async with self._semaphore:
            return await func()

    async def settle(
        self,
        source: str,
        func: Callable[[], Awaitable[T]],
    ) -> Outcome[T]:
        """Run `func` in the pool and turn its result or error into an Outcome."""
        try:
            return Success(await self.run(func), source=source)
        except RegistryGatewayError as e:
            return Failure(source=source, error=e)
        except Exception as e:
            logger.exception("Unclassified failure in registry task", source=source)
            return Failure(
                source=source,
                error=UnexpectedError(
                    f"Unknown error ({type(e).__name__}): {e}",
                ),
            )

    async def map_settled(
        self,
        items: Iterable[I],
        source: Callable[[I], str],
        func: Callable[[I], Awaitable[T]],
    ) -> list[Outcome[T]]:
        """Run `func` for every item and wait for all of them.

        Siblings are never cancelled when one fails; every item yields exactly
        one Outcome, in input order.
        """
        return await asyncio.gather(
            *(self.settle(source(item), lambda item=item: func(item)) for item in items)
        )
