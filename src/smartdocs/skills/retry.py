"""
Retry policy for generative-service calls.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from smartdocs.config import Settings, get_settings
from smartdocs.exceptions import ProviderError, ProviderNotConfiguredError, RetryExhaustedError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Value of a successful call plus the errors of the attempts before it."""

    value: T
    attempts: int
    failures: list[str] = field(default_factory=list)


@dataclass
class RetryPolicy:
    """
    Exponential backoff: attempt n waits base_delay * multiplier ** (n - 1).

    With the defaults that is up to 3 attempts with 1s then 2s between them.
    Only exceptions in ``retry_on`` are retried; anything else propagates
    from the first attempt.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    sleep: Callable[[float], None] = time.sleep
    retry_on: tuple[type[BaseException], ...] = (ProviderError,)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            multiplier=settings.retry_multiplier,
        )

    def delays(self) -> list[float]:
        """Waits between consecutive attempts."""
        return [self.base_delay * self.multiplier**i for i in range(self.max_attempts - 1)]

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> RetryResult[T]:
        failures: list[str] = []

        def record_failure(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            failures.append(f"{type(error).__name__}: {error}")
            logger.warning(
                "retry_attempt_failed",
                attempt=retry_state.attempt_number,
                max_attempts=self.max_attempts,
                error=str(error),
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=self.multiplier),
            retry=(
                retry_if_exception_type(self.retry_on)
                & retry_if_not_exception_type(ProviderNotConfiguredError)
            ),
            sleep=self.sleep,
            after=record_failure,
            reraise=True,
        )

        try:
            value = retrying(fn, *args, **kwargs)
        except self.retry_on as e:
            if isinstance(e, ProviderNotConfiguredError):
                raise
            raise RetryExhaustedError(
                f"Call failed after {len(failures)} attempt(s): {e}",
                failures=failures,
                original_error=e,
            ) from e

        return RetryResult(value=value, attempts=len(failures) + 1, failures=failures)
