"""Resilient fetch: one HTTP GET with a per-attempt deadline and fixed-delay retry.

Cancellation (the caller's signal firing) aborts immediately and is never
retried. Any other attempt failure is retried until the budget is spent,
then surfaces as UpstreamUnavailable. Non-2xx responses are returned as-is;
status validation belongs to the caller.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx

from modsearch.core.config import config
from modsearch.core.errors import Cancelled, UpstreamUnavailable
from modsearch.core.logger import logger


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int
    timeout: float  # per attempt, seconds
    retry_delay: float  # constant between attempts, seconds

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


DEFAULT_POLICY = RetryPolicy(
    max_retries=config.default_max_retries,
    timeout=config.default_timeout_seconds,
    retry_delay=config.default_retry_delay_seconds,
)

# The catalog search endpoint is flakier than a well-behaved API: shorter
# deadline, more attempts, shorter wait.
SEARCH_POLICY = RetryPolicy(
    max_retries=config.search_max_retries,
    timeout=config.search_timeout_seconds,
    retry_delay=config.search_retry_delay_seconds,
)


class AttemptTimeout(Exception):
    """One attempt ran past its deadline."""


async def _wait_or_cancel(
    awaitable, timeout: float | None, cancel: asyncio.Event | None
) -> Any:
    """Await ``awaitable`` racing the deadline and the cancel signal."""
    work = asyncio.ensure_future(awaitable)
    waiters: set[asyncio.Future] = {work}
    cancel_waiter: asyncio.Future | None = None
    if cancel is not None:
        cancel_waiter = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_waiter)
    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()

    if work in done:
        return work.result()
    work.cancel()
    if cancel_waiter is not None and cancel_waiter in done:
        raise Cancelled()
    raise AttemptTimeout(f"no response within {timeout}s")


async def resilient_fetch(
    client: httpx.AsyncClient,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    policy: RetryPolicy = DEFAULT_POLICY,
    cancel: asyncio.Event | None = None,
) -> httpx.Response:
    last_error: Exception | None = None
    remaining = policy.max_retries
    attempt = 0
    while True:
        if cancel is not None and cancel.is_set():
            raise Cancelled()
        attempt += 1
        logger.upstream_attempt(url, attempt, policy.max_attempts)
        try:
            return await _wait_or_cancel(
                client.get(url, headers=headers, params=params, timeout=policy.timeout),
                policy.timeout,
                cancel,
            )
        except (httpx.HTTPError, AttemptTimeout) as e:
            last_error = e
        if remaining <= 0:
            break
        logger.upstream_retry(url, remaining, policy.retry_delay, last_error)
        remaining -= 1
        if policy.retry_delay > 0:
            if cancel is None:
                await asyncio.sleep(policy.retry_delay)
            else:
                try:
                    await asyncio.wait_for(cancel.wait(), timeout=policy.retry_delay)
                except asyncio.TimeoutError:
                    pass
                else:
                    raise Cancelled()
    raise UpstreamUnavailable(
        f"Upstream unavailable after {attempt} attempts: {last_error}",
        attempts=attempt,
        cause=last_error,
    ) from last_error


async def fetch_game_list(
    client: httpx.AsyncClient,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    policy: RetryPolicy = SEARCH_POLICY,
    cancel: asyncio.Event | None = None,
) -> httpx.Response:
    """Fetch from the catalog search endpoint with the aggressive retry budget."""
    return await resilient_fetch(
        client, url, headers=headers, params=params, policy=policy, cancel=cancel
    )
