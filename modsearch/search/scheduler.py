"""Batched fan-out: bounded-concurrency processing in fixed-size groups with pacing."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from modsearch.core.errors import Cancelled, is_cancellation

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ItemOutcome(Generic[T]):
    """Settled result of one item. ``error`` is set when the processor raised."""

    item: T
    ok: bool
    error: BaseException | None = None


@dataclass
class BatchReport(Generic[T]):
    batch_sizes: list[int] = field(default_factory=list)
    outcomes: list[ItemOutcome[T]] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failures(self) -> list[ItemOutcome[T]]:
        return [o for o in self.outcomes if not o.ok]


async def _settle(item: T, processor: Callable[[T], Awaitable[bool]]) -> ItemOutcome[T]:
    try:
        ok = await processor(item)
    except Exception as e:
        if is_cancellation(e):
            raise
        logger.debug("Scheduler: processor failed for %r: %s", item, e)
        return ItemOutcome(item=item, ok=False, error=e)
    return ItemOutcome(item=item, ok=bool(ok))


async def run_batched(
    items: Sequence[T],
    processor: Callable[[T], Awaitable[bool]],
    *,
    batch_size: int,
    pacing: float,
    cancel: asyncio.Event | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> BatchReport[T]:
    """Run ``processor`` over ``items`` in groups of at most ``batch_size``.

    Every item of a group starts concurrently; the group is done once all of
    them settle. A processor returns True on success, False on a failure it
    already handled, or raises. Raised errors are captured per item and never
    abort siblings or later groups; cancellation is the exception and stops
    the run. ``pacing`` seconds pass between groups, never after the last.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    report: BatchReport[T] = BatchReport()
    for start in range(0, len(items), batch_size):
        if cancel is not None and cancel.is_set():
            raise Cancelled("Batch run cancelled before next batch")
        batch = items[start : start + batch_size]
        report.batch_sizes.append(len(batch))
        settled = await asyncio.gather(
            *(_settle(item, processor) for item in batch), return_exceptions=True
        )
        batch_outcomes: list[ItemOutcome[T]] = []
        for item, result in zip(batch, settled):
            if isinstance(result, BaseException):
                if is_cancellation(result):
                    raise Cancelled("Batch item cancelled", cause=result)
                batch_outcomes.append(ItemOutcome(item=item, ok=False, error=result))
                continue
            batch_outcomes.append(result)
        # Merged after the join; no counter is shared between concurrent items.
        report.outcomes.extend(batch_outcomes)
        if start + batch_size < len(items):
            await sleep(pacing)
    return report
