"""Stream consumer: reads gateway frames incrementally into a live result set.

Exactly one session is authoritative at a time. Starting a search supersedes
the previous session: it is marked inert and its connection cancelled, and
any frame it still decodes is dropped before touching results or status.
"""

import asyncio
import json

import httpx

from modsearch.client.lines import FrameLineBuffer
from modsearch.client.session import (
    LiveResultSet,
    SearchSession,
    SearchStatus,
    StatusState,
)
from modsearch.client.view import SearchView
from modsearch.contracts.stream_v1 import (
    EndFrame,
    ErrorFrame,
    GameCompleteFrame,
    GameErrorFrame,
    GameStartFrame,
    InitFrame,
    decode_frame,
)
from modsearch.core.config import Config, config as default_config
from modsearch.core.errors import BadUpstreamResponse, is_cancellation
from modsearch.core.logger import logger

MSG_IDLE = "Enter a module name to search"
MSG_EMPTY_KEYWORD = "Please enter a module name"
MSG_SEARCHING = "Searching..."
MSG_SLOW = "Search is taking longer than usual, still working..."
MSG_NO_RESULTS = "No matching modules found"
MSG_FRAME_ERROR = "Search failed"
MSG_CONNECTION_ERROR = "Search failed, check your connection and retry"


class StreamConsumer:
    def __init__(
        self,
        client: httpx.AsyncClient,
        view: SearchView,
        gateway_url: str | None = None,
        settings: Config | None = None,
    ):
        self._client = client
        self._view = view
        self._settings = settings or default_config
        self._gateway_url = gateway_url or self._settings.gateway_url
        self._current: SearchSession | None = None
        self.results = LiveResultSet()
        self.total = 0
        self.last_keyword = ""
        self.status = SearchStatus(StatusState.IDLE, MSG_IDLE)

    @property
    def current_session(self) -> SearchSession | None:
        return self._current

    @property
    def is_searching(self) -> bool:
        return self._current is not None and self._current.authoritative

    def start(self, keyword: str, retry: bool = False) -> asyncio.Task | None:
        """Begin a search and return its task, superseding any search in flight."""
        term = self.last_keyword if retry else (keyword or "").strip()
        if not term:
            self._set_status(StatusState.IDLE, MSG_EMPTY_KEYWORD)
            return None

        self._supersede_current()
        session = SearchSession(keyword=term, retry=retry)
        self._current = session
        if not retry:
            self.results = LiveResultSet()
            self.total = 0
            self._render()
        self.last_keyword = term
        self._set_status(StatusState.SEARCHING, MSG_SEARCHING)
        session.task = asyncio.create_task(self._run(session), name=f"search-{session.id}")
        return session.task

    async def search(self, keyword: str, retry: bool = False) -> SearchStatus:
        """Run a search to completion (or supersession) and return the resulting status."""
        task = self.start(keyword, retry=retry)
        if task is not None:
            # wait() rather than await: a superseded task ends cancelled, which is not an error here
            await asyncio.wait({task})
        return self.status

    async def retry(self) -> SearchStatus:
        """Replay the last keyword, keeping what was already received."""
        return await self.search(self.last_keyword, retry=True)

    async def clear(self) -> None:
        await self._cancel_current()
        self.results = LiveResultSet()
        self.total = 0
        self.last_keyword = ""
        self._render()
        self._set_status(StatusState.IDLE, MSG_IDLE)

    async def close(self) -> None:
        """Teardown: cancel any search in flight."""
        await self._cancel_current()

    def _supersede_current(self) -> None:
        previous = self._current
        if previous is None or not previous.authoritative:
            return
        logger.session_superseded(previous.id, previous.keyword)
        previous.supersede()

    async def _cancel_current(self) -> None:
        previous = self._current
        self._current = None
        if previous is None:
            return
        previous.supersede()
        if previous.task is not None:
            await asyncio.wait({previous.task})

    async def _run(self, session: SearchSession) -> None:
        logger.search_started(session.keyword, side="client")
        loop = asyncio.get_running_loop()
        slow_notice = loop.call_later(
            self._settings.slow_search_notice_seconds, self._slow_notice, session
        )
        try:
            async with self._client.stream(
                "GET", self._gateway_url, params={"q": session.keyword}
            ) as response:
                if not response.is_success:
                    body = await response.aread()
                    raise BadUpstreamResponse(
                        _gateway_error_message(response.status_code, body),
                        status_code=response.status_code,
                    )
                buffer = FrameLineBuffer()
                async for chunk in response.aiter_text():
                    if not session.authoritative:
                        logger.debug(f"Stream for '{session.keyword}' interrupted by a newer search")
                        return
                    for line in buffer.feed(chunk):
                        self._handle_line(session, line)
                for line in buffer.flush():
                    self._handle_line(session, line)

            if session.authoritative and not session.saw_end and not session.saw_error:
                logger.debug(f"Stream for '{session.keyword}' closed without an end frame")
                self._finish(session, None)
        except asyncio.CancelledError:
            if session.authoritative:
                raise
            logger.debug(f"Search '{session.keyword}' cancelled after being superseded")
        except Exception as e:
            if not session.authoritative or is_cancellation(e):
                logger.debug(f"Ignoring failure of superseded search '{session.keyword}': {e!r}")
                return
            logger.error(f"Search '{session.keyword}' failed: {e}")
            self._view.notify_failure("Search failed", getattr(e, "message", None) or str(e) or MSG_CONNECTION_ERROR)
            self._set_status(StatusState.ERROR, MSG_CONNECTION_ERROR)
        finally:
            slow_notice.cancel()
            if session.authoritative:
                logger.search_finished(
                    session.keyword, self.status.state.value, success_count=len(self.results)
                )
            if self._current is session:
                self._current = None

    def _handle_line(self, session: SearchSession, line: str) -> None:
        if not session.authoritative:
            return
        try:
            frame = decode_frame(line)
        except ValueError as e:
            logger.warning(f"Skipping malformed frame {line[:120]!r}: {e}")
            return
        self._apply_frame(session, frame)

    def _apply_frame(self, session: SearchSession, frame) -> None:
        if not session.authoritative:
            return

        if isinstance(frame, InitFrame):
            if frame.total is not None:
                self.total = frame.total
                self._set_status(
                    StatusState.SEARCHING,
                    f"Found {frame.total} results, loading covers...",
                )
            else:
                self._set_status(StatusState.SEARCHING, MSG_SEARCHING)

        elif isinstance(frame, (GameStartFrame, GameCompleteFrame)):
            self.results.upsert(frame.game)
            self._render()

        elif isinstance(frame, GameErrorFrame):
            logger.warning(f"Module {frame.game_id!r} failed to load: {frame.error}")

        elif isinstance(frame, ErrorFrame):
            session.saw_error = True
            self._view.notify_failure("Search error", frame.message)
            self._set_status(StatusState.ERROR, frame.message or MSG_FRAME_ERROR)

        elif isinstance(frame, EndFrame):
            session.saw_end = True
            self._finish(session, frame.message)

    def _finish(self, session: SearchSession, message: str | None) -> None:
        if self.results:
            self._set_status(StatusState.SUCCESS, "")
        else:
            self._set_status(StatusState.NO_RESULTS, message or MSG_NO_RESULTS)

    def _slow_notice(self, session: SearchSession) -> None:
        if (
            session.authoritative
            and self._current is session
            and self.status.state == StatusState.SEARCHING
        ):
            self._set_status(StatusState.SEARCHING, MSG_SLOW)

    def _render(self) -> None:
        self._view.render_results(self.results.snapshot(), self.total)

    def _set_status(self, state: StatusState, message: str) -> None:
        self.status = SearchStatus(state, message)
        self._view.set_status(self.status)


def _gateway_error_message(status_code: int, body: bytes) -> str:
    try:
        payload = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = {}
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return f"Search request failed: {status_code}"
