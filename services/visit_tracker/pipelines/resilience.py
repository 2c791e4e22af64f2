"""Retry helpers for source reads, powered by Tenacity."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings for an outbound read."""

    attempts: int = 3
    initial_delay: float = 0.2
    max_delay: float = 2.0
    backoff_multiplier: float = 2.0
    retry_exceptions: tuple[type[BaseException], ...] = (Exception,)


NO_RETRY = RetryPolicy(attempts=1)


async def call_async_with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy | None = None,
    **kwargs: Any,
) -> T:
    """Await ``func`` until it succeeds or the policy gives up, then re-raise."""

    resolved_policy = policy or RetryPolicy()
    retrying = AsyncRetrying(
        retry=retry_if_exception_type(resolved_policy.retry_exceptions),
        stop=stop_after_attempt(resolved_policy.attempts),
        wait=wait_exponential(
            multiplier=resolved_policy.initial_delay,
            min=resolved_policy.initial_delay,
            max=resolved_policy.max_delay,
            exp_base=resolved_policy.backoff_multiplier,
        ),
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            return await func(*args, **kwargs)

    raise RuntimeError("Async retry loop terminated without executing the function.")


__all__ = ["NO_RETRY", "RetryPolicy", "call_async_with_retry"]
