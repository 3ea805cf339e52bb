"""
Retry and bounded-concurrency helpers shared by every remote call.

with_retry
    Exponential backoff with jitter around any awaitable factory. A
    ``retry_after`` attribute on the raised exception (set from a server's
    Retry-After header) replaces the computed delay.

map_with_concurrency
    Runs one coroutine per item over a fixed pool of workers and returns a
    settled outcome per item, in input order. A failing item never cancels
    its siblings.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, Sequence, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class RetryableError(Exception):
    """A transient failure that is safe to retry."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


@dataclass(frozen=True)
class RetryOptions:
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 15.0
    is_retryable: Optional[Callable[[BaseException], bool]] = None


DEFAULT_RETRY = RetryOptions()


def is_retryable_error(error: BaseException) -> bool:
    return isinstance(error, RetryableError)


def backoff_delay(attempt: int, options: RetryOptions, error: Optional[BaseException] = None) -> float:
    """
    Delay in seconds before the retry that follows failed attempt ``attempt`` (1-based).

    A server-supplied ``retry_after`` hint wins, capped at ``max_delay``.
    Otherwise: base * 2^(attempt-1) + uniform(0, base), capped at ``max_delay``.
    """
    retry_after = getattr(error, "retry_after", None) if error is not None else None
    if retry_after is not None:
        return min(float(retry_after), options.max_delay)

    exponential = options.base_delay * (2 ** (attempt - 1))
    jitter = random.uniform(0, options.base_delay)
    return min(exponential + jitter, options.max_delay)


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
) -> T:
    """
    Await ``operation()`` up to ``options.max_attempts`` times.

    A failure is retried only while attempts remain and ``is_retryable``
    (when given) accepts the error. The last error is re-raised unchanged.
    """
    opts = options or DEFAULT_RETRY
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= opts.max_attempts:
                raise
            if opts.is_retryable is not None and not opts.is_retryable(exc):
                raise

            delay = backoff_delay(attempt, opts, exc)
            logger.info(
                "Attempt %d/%d failed (%s); retrying in %.2fs",
                attempt,
                opts.max_attempts,
                exc,
                delay,
            )
            await _sleep(delay)
            attempt += 1


# ---------------------------------------------------------------------------
# Bounded concurrency
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Fulfilled(Generic[R]):
    value: R

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    error: Exception

    @property
    def ok(self) -> bool:
        return False


Settled = Union[Fulfilled[Any], Rejected]


async def map_with_concurrency(
    items: Sequence[T],
    concurrency: int,
    fn: Callable[[T, int], Awaitable[R]],
) -> list[Settled]:
    """
    Apply ``fn(item, index)`` to every item with at most ``concurrency``
    invocations in flight, returning one Fulfilled/Rejected per item in
    input order.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")

    results: list[Optional[Settled]] = [None] * len(items)
    next_index = 0

    async def worker() -> None:
        nonlocal next_index
        while next_index < len(items):
            index = next_index
            next_index += 1
            try:
                value = await fn(items[index], index)
                results[index] = Fulfilled(value)
            except Exception as exc:
                results[index] = Rejected(exc)

    workers = [worker() for _ in range(min(concurrency, len(items)))]
    await asyncio.gather(*workers)
    return results  # type: ignore[return-value]
