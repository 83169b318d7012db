"""One-shot interface: run a single search, print results, exit."""

from __future__ import annotations

import asyncio

import httpx

from modsearch.client.consumer import StreamConsumer
from modsearch.client.session import StatusState
from modsearch.client.view import ConsoleView


async def run_oneshot(keyword: str, gateway_url: str | None = None) -> int:
    text = (keyword or "").strip()
    if not text:
        print("Error: keyword must not be empty")
        return 2

    async with httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=None)) as client:
        consumer = StreamConsumer(client, ConsoleView(), gateway_url=gateway_url)
        try:
            status = await consumer.search(text)
        finally:
            await consumer.close()
    return 1 if status.state == StatusState.ERROR else 0


def main(keyword: str, gateway_url: str | None = None) -> int:
    return asyncio.run(run_oneshot(keyword=keyword, gateway_url=gateway_url))
