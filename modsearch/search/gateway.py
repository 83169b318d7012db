"""Search gateway: one upstream catalog search streamed back as NDJSON frames.

Per request: INIT -> SEARCHING -> (SUCCESS | EMPTY | FAILED) -> CLOSED.

A pipeline task produces frames into a queue while ``stream`` drains it, so
each record is sent as soon as it is processed. Closing the stream (the
client went away) sets the cancel signal and cancels the pipeline; no
terminal frame is sent in that case.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from enum import StrEnum
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from modsearch.contracts.stream_v1 import (
    EndFrame,
    ErrorFrame,
    GameErrorFrame,
    GameStartFrame,
    InitFrame,
    ResultRecord,
    SearchQuery,
    UpstreamEnvelope,
    encode_frame,
)
from modsearch.core.config import Config, config as default_config
from modsearch.core.errors import BadUpstreamResponse, SearchError, is_cancellation
from modsearch.core.logger import logger
from modsearch.net.fetch import SEARCH_POLICY, RetryPolicy, fetch_game_list
from modsearch.search.scheduler import run_batched

MSG_SEARCHING = "Searching..."
MSG_NO_RESULTS = "No modules found"
MSG_ALL_SENT = "All modules sent"
MSG_NONE_SENT = "Could not load any modules, please retry"
MSG_RECORD_FAILED = "Failed to read module information"
MSG_SEARCH_FAILED = "Module search failed, please try again later"

_DONE = object()


class GatewayState(StrEnum):
    INIT = "init"
    SEARCHING = "searching"
    SUCCESS = "success"
    EMPTY = "empty"
    FAILED = "failed"
    CLOSED = "closed"


class SearchGateway:
    """Runs one catalog search per ``stream`` call. Holds no per-request state."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: Config | None = None,
        search_policy: RetryPolicy = SEARCH_POLICY,
    ):
        self._client = client
        self._settings = settings or default_config
        self._search_policy = search_policy

    def _upstream_headers(self) -> dict[str, str]:
        return {
            "User-Agent": self._settings.user_agent,
            "Accept": "application/json",
            "Accept-Language": "en-US,en;q=0.9",
        }

    async def stream(
        self, query: SearchQuery, cancel: asyncio.Event | None = None
    ) -> AsyncIterator[bytes]:
        """Yield encoded frames for ``query``. Always ends with `end` or `error` unless closed early."""
        cancel = cancel or asyncio.Event()
        queue: asyncio.Queue[Any] = asyncio.Queue()
        pipeline = asyncio.create_task(self._run(query, queue, cancel))
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                yield item
        finally:
            if not pipeline.done():
                logger.info(f"Search '{query.keyword}' closed by client, cancelling")
                cancel.set()
                pipeline.cancel()
                try:
                    await pipeline
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.debug(f"Pipeline for '{query.keyword}' ended with {e!r} after close")

    def _emit(self, queue: asyncio.Queue, frame: BaseModel, keyword: str) -> None:
        logger.frame_emitted(frame.type, keyword)
        queue.put_nowait(encode_frame(frame))

    async def _run(self, query: SearchQuery, queue: asyncio.Queue, cancel: asyncio.Event) -> None:
        keyword = query.keyword
        state = GatewayState.INIT
        logger.search_started(keyword, side="gateway")
        try:
            self._emit(queue, InitFrame(message=MSG_SEARCHING), keyword)
            state = GatewayState.SEARCHING
            try:
                records = await self._search_upstream(query, cancel)
            except Exception as e:
                if is_cancellation(e):
                    raise
                state = GatewayState.FAILED
                message = e.message if isinstance(e, SearchError) else MSG_SEARCH_FAILED
                logger.error(f"Search '{keyword}' failed: {e}")
                self._emit(queue, ErrorFrame(message=message), keyword)
                logger.search_finished(keyword, state.value, error_reason=str(e))
                return

            if records is None:
                state = GatewayState.EMPTY
                self._emit(queue, EndFrame(message=MSG_NO_RESULTS), keyword)
                logger.search_finished(keyword, state.value, success_count=0)
                return

            self._emit(queue, InitFrame(total=len(records)), keyword)

            async def process(entry: tuple[int, Any]) -> bool:
                position, raw = entry
                try:
                    return self._process_record(raw, queue, keyword)
                except Exception as e:
                    if is_cancellation(e):
                        raise
                    self._emit_record_error(queue, raw, position, e, keyword)
                    return False

            report = await run_batched(
                list(enumerate(records)),
                process,
                batch_size=self._settings.batch_size,
                pacing=self._settings.batch_pacing_seconds,
                cancel=cancel,
            )
            success_count = report.success_count
            state = GatewayState.SUCCESS
            self._emit(
                queue,
                EndFrame(
                    message=MSG_ALL_SENT if success_count > 0 else MSG_NONE_SENT,
                    success_count=success_count,
                ),
                keyword,
            )
            logger.search_finished(keyword, state.value, success_count=success_count)
        except Exception as e:
            if is_cancellation(e):
                logger.info(f"Search '{keyword}' cancelled while {state.value}")
                return
            logger.exception(f"Search '{keyword}' crashed while {state.value}")
            self._emit(queue, ErrorFrame(message=MSG_SEARCH_FAILED), keyword)
            logger.search_finished(keyword, GatewayState.FAILED.value, error_reason=str(e))
        finally:
            queue.put_nowait(_DONE)
            logger.debug(f"Search '{keyword}' {GatewayState.CLOSED.value}")

    async def _search_upstream(
        self, query: SearchQuery, cancel: asyncio.Event
    ) -> list[Any] | None:
        """Return the first page of raw records, or None when nothing matched."""
        response = await fetch_game_list(
            self._client,
            self._settings.upstream_search_url,
            headers=self._upstream_headers(),
            params={"keyword": query.keyword},
            policy=self._search_policy,
            cancel=cancel,
        )
        logger.debug(f"Upstream status {response.status_code} for '{query.keyword}'")
        if not response.is_success:
            raise BadUpstreamResponse(
                f"Upstream search error: {response.status_code}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise BadUpstreamResponse("Upstream returned invalid JSON", cause=e) from e
        try:
            envelope = UpstreamEnvelope.model_validate(body)
        except ValidationError as e:
            raise BadUpstreamResponse("Upstream returned an unexpected response", cause=e) from e

        logger.debug(f"Upstream totalCount={envelope.data.total_count} for '{query.keyword}'")
        if envelope.data.total_count == 0:
            return None
        return envelope.data.items[: self._settings.page_cap]

    def _process_record(self, raw: Any, queue: asyncio.Queue, keyword: str) -> bool:
        # Full cover images are not fetched here, so gameComplete is never emitted.
        record = ResultRecord.from_upstream(raw)
        self._emit(queue, GameStartFrame(game=record), keyword)
        return True

    def _emit_record_error(
        self,
        queue: asyncio.Queue,
        raw: Any,
        position: int,
        error: BaseException | None,
        keyword: str,
    ) -> None:
        record_id = getattr(error, "record_id", None)
        if record_id is None and isinstance(raw, dict):
            record_id = raw.get("_id")
        # Records without a usable id are named by their position in the page.
        if isinstance(record_id, bool) or not isinstance(record_id, (str, int)):
            record_id = position
        logger.warning(f"Record {record_id!r} failed for '{keyword}': {error}")
        self._emit(
            queue,
            GameErrorFrame(game_id=record_id, error=MSG_RECORD_FAILED),
            keyword,
        )
