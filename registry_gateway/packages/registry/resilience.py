"""Retry, deadline and failure classification for registry calls.

Every protocol operation runs through RetryPolicy.call():

- Attempt 1 is immediate, later attempts back off exponentially from
  `min_delay_ms` up to `max_delay_ms` (tenacity wait_exponential).
- Only 5xx responses and transport failures are retried. 4xx responses and
  gateway errors raised by the client itself (ProtocolViolation, unsupported
  manifest schema) end the call on the first attempt.
- The whole retried operation is bounded by `deadline_seconds`.
- Whatever escapes is converted to a RegistryGatewayError attributed to the
  registry of the command.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .errors import (
    AuthRequired,
    NotFound,
    RegistryGatewayError,
    SourceSystemError,
    UnexpectedError,
)
from .types import RepoCommand, RetrySettings

logger = structlog.stdlib.get_logger(__name__)

T = TypeVar("T")

_BODY_PREVIEW = 500


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.is_server_error
    return isinstance(
        error,
        (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError),
    )


def _describe(cmd: RepoCommand) -> str:
    return (
        f'registry="{cmd.registry}" imageGroup="{cmd.group}" '
        f'imageName="{cmd.name}" imageTag="{cmd.tag}"'
    )


def classify_failure(
    error: BaseException,
    cmd: RepoCommand,
    operation: str,
    attempts: int = 1,
) -> RegistryGatewayError:
    """Map whatever a registry call raised onto the gateway error taxonomy."""
    if isinstance(error, RegistryGatewayError):
        if error.registry is None:
            error.registry = cmd.registry
        return error

    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        request = error.request
        if response.status_code == 401:
            return AuthRequired(
                f"Registry rejected credentials status=401 operation={operation}",
                registry=cmd.registry,
            )
        if response.status_code == 404:
            return NotFound(
                f"Resource could not be found status=404 operation={operation} "
                f"image={cmd.full_reference}",
                registry=cmd.registry,
            )
        return SourceSystemError(
            f"Error in response, status={response.status_code} "
            f'message={response.reason_phrase} body="{response.text[:_BODY_PREVIEW]}" '
            f'request_url="{request.url}" request_method="{request.method}" '
            f"attempts={attempts} operation={operation}",
            registry=cmd.registry,
        )

    if isinstance(error, httpx.TimeoutException):
        return SourceSystemError(
            f"Timeout when calling docker registry, {_describe(cmd)} "
            f"attempts={attempts} operation={operation}",
            registry=cmd.registry,
        )

    if isinstance(error, httpx.TransportError):
        return SourceSystemError(
            f"Retry failed after {attempts} attempts cause={type(error).__name__} "
            f"lastError={error} operation={operation}",
            registry=cmd.registry,
        )

    return UnexpectedError(
        f"Error in response or request name={type(error).__name__} "
        f"errorMessage={error} operation={operation}",
        registry=cmd.registry,
    )


class RetryPolicy:
    """Runs a single logical registry operation with retries and a deadline.

    Attributes:
        settings: Attempt budget, backoff bounds and deadline.
    """

    def __init__(
        self,
        settings: RetrySettings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self._sleep = sleep

    def _retrying(self, operation: str, cmd: RepoCommand) -> AsyncRetrying:
        min_delay = self.settings.min_delay_ms / 1000
        max_delay = self.settings.max_delay_ms / 1000

        def log_retry(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            logger.debug(
                "retry_attempt",
                operation=operation,
                registry=cmd.registry,
                attempt=state.attempt_number,
                max_attempts=self.settings.max_attempts,
                error_type=type(error).__name__,
                error=str(error),
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.settings.max_attempts),
            wait=wait_exponential(multiplier=min_delay, min=min_delay, max=max_delay),
            retry=retry_if_exception(is_retryable),
            before_sleep=log_retry,
            sleep=self._sleep,
            reraise=True,
        )

    async def call(
        self,
        cmd: RepoCommand,
        operation: str,
        func: Callable[[], Awaitable[T]],
    ) -> T:
        """Run `func` under the retry policy.

        Args:
            cmd: Command the call is made for, used for error attribution
            operation: Short name for logs, e.g. "GET_MANIFEST"
            func: Zero-argument coroutine function issuing one request

        Returns:
            Whatever `func` returns on its first successful attempt

        Raises:
            RegistryGatewayError: any failure, classified
        """
        retrying = self._retrying(operation, cmd)
        try:
            return await asyncio.wait_for(
                retrying(func), timeout=self.settings.deadline_seconds
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                "Registry operation exceeded deadline",
                operation=operation,
                registry=cmd.registry,
                deadline_seconds=self.settings.deadline_seconds,
            )
            raise SourceSystemError(
                f"Operation exceeded deadline of {self.settings.deadline_seconds}s, "
                f"{_describe(cmd)} operation={operation}",
                registry=cmd.registry,
            ) from e
        except Exception as e:
            attempts = retrying.statistics.get("attempt_number", 1)
            failure = classify_failure(e, cmd, operation, attempts)
            if failure is not e:
                logger.warning(
                    "Registry operation failed",
                    operation=operation,
                    registry=cmd.registry,
                    attempts=attempts,
                    error_type=type(e).__name__,
                    error=failure.message,
                )
                raise failure from e
            raise
