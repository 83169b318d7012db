import asyncio
import json
from dataclasses import replace

import httpx
import pytest

from modsearch.client.consumer import (
    MSG_CONNECTION_ERROR,
    MSG_EMPTY_KEYWORD,
    MSG_IDLE,
    MSG_NO_RESULTS,
    MSG_SLOW,
    StreamConsumer,
)
from modsearch.client.session import SearchSession, SearchStatus, StatusState
from modsearch.contracts.stream_v1 import GameStartFrame, ResultRecord, SearchQuery
from modsearch.net.fetch import RetryPolicy
from modsearch.search.gateway import SearchGateway


class RecordingView:
    def __init__(self):
        self.renders: list[tuple[list[ResultRecord], int]] = []
        self.statuses: list[SearchStatus] = []
        self.failures: list[tuple[str, str]] = []

    def render_results(self, records, total):
        self.renders.append((list(records), total))

    def set_status(self, status):
        self.statuses.append(status)

    def notify_failure(self, title, description):
        self.failures.append((title, description))


def _line(frame: dict) -> bytes:
    return (json.dumps(frame) + "\n").encode()


def _game(record_id, name) -> dict:
    return {"id": record_id, "name": name}


def _ndjson(*frames: dict) -> bytes:
    return b"".join(_line(f) for f in frames)


def _serving(body_for, seen: list | None = None):
    """Transport whose response body is ``body_for(keyword)``."""

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(200, content=body_for(request.url.params["q"]))

    return httpx.MockTransport(handler)


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


@pytest.mark.asyncio
async def test_upsert_by_id_keeps_one_entry_with_latest_name(fast_settings):
    body = _ndjson(
        {"type": "init", "message": "Searching..."},
        {"type": "init", "total": 1},
        {"type": "gameStart", "game": _game(42, "Draft")},
        {"type": "gameComplete", "game": _game(42, "Final")},
        {"type": "end", "message": "All modules sent", "successCount": 1},
    )
    view = RecordingView()
    async with httpx.AsyncClient(transport=_serving(lambda q: body)) as client:
        consumer = StreamConsumer(client, view, settings=fast_settings)
        status = await consumer.search("masks")

    assert [r.name for r in consumer.results.snapshot()] == ["Final"]
    assert consumer.total == 1
    assert status == SearchStatus(StatusState.SUCCESS, "")
    assert any(s.message == "Found 1 results, loading covers..." for s in view.statuses)
    assert view.renders[-1][0][0].name == "Final"


@pytest.mark.asyncio
async def test_frames_split_across_chunks_are_reassembled(fast_settings):
    payload = _ndjson(
        {"type": "gameStart", "game": _game("a", "Alpha")},
        {"type": "gameStart", "game": _game("b", "Beta")},
        {"type": "end", "successCount": 2},
    )

    async def chunks():
        for i in range(0, len(payload), 7):
            yield payload[i : i + 7]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=chunks())

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        consumer = StreamConsumer(client, RecordingView(), settings=fast_settings)
        status = await consumer.search("x")

    assert [r.id for r in consumer.results.snapshot()] == ["a", "b"]
    assert status.state == StatusState.SUCCESS


@pytest.mark.asyncio
async def test_stream_closing_without_end_frame_still_finishes(fast_settings):
    with_results = _ndjson({"type": "gameStart", "game": _game(1, "One")})
    without_results = _ndjson({"type": "init", "message": "Searching..."})

    async with httpx.AsyncClient(transport=_serving(lambda q: with_results)) as client:
        status = await StreamConsumer(client, RecordingView(), settings=fast_settings).search("x")
    assert status.state == StatusState.SUCCESS

    async with httpx.AsyncClient(transport=_serving(lambda q: without_results)) as client:
        status = await StreamConsumer(client, RecordingView(), settings=fast_settings).search("x")
    assert status == SearchStatus(StatusState.NO_RESULTS, MSG_NO_RESULTS)


@pytest.mark.asyncio
async def test_end_frame_without_results_uses_its_message(fast_settings):
    body = _ndjson({"type": "init", "message": "Searching..."}, {"type": "end", "message": "No modules found"})
    async with httpx.AsyncClient(transport=_serving(lambda q: body)) as client:
        status = await StreamConsumer(client, RecordingView(), settings=fast_settings).search("zzz")

    assert status == SearchStatus(StatusState.NO_RESULTS, "No modules found")


@pytest.mark.asyncio
async def test_error_frame_sets_error_status_and_notifies(fast_settings):
    body = _ndjson(
        {"type": "init", "message": "Searching..."},
        {"type": "error", "message": "Upstream search error: 500"},
    )
    view = RecordingView()
    async with httpx.AsyncClient(transport=_serving(lambda q: body)) as client:
        status = await StreamConsumer(client, view, settings=fast_settings).search("x")

    assert status == SearchStatus(StatusState.ERROR, "Upstream search error: 500")
    assert status.can_retry
    assert view.failures == [("Search error", "Upstream search error: 500")]


@pytest.mark.asyncio
async def test_malformed_line_is_skipped(fast_settings):
    body = (
        b"this is not json\n"
        + _line({"type": "mystery"})
        + _line({"type": "gameStart", "game": _game(1, "Kept")})
        + _line({"type": "end", "successCount": 1})
    )
    async with httpx.AsyncClient(transport=_serving(lambda q: body)) as client:
        consumer = StreamConsumer(client, RecordingView(), settings=fast_settings)
        status = await consumer.search("x")

    assert [r.name for r in consumer.results.snapshot()] == ["Kept"]
    assert status.state == StatusState.SUCCESS


@pytest.mark.asyncio
async def test_game_error_frame_does_not_touch_results(fast_settings):
    body = _ndjson(
        {"type": "gameError", "gameId": "bad", "error": "Failed to read module information"},
        {"type": "end", "successCount": 0},
    )
    view = RecordingView()
    async with httpx.AsyncClient(transport=_serving(lambda q: body)) as client:
        consumer = StreamConsumer(client, view, settings=fast_settings)
        status = await consumer.search("x")

    assert len(consumer.results) == 0
    assert view.failures == []
    assert status.state == StatusState.NO_RESULTS


@pytest.mark.asyncio
async def test_newer_search_supersedes_one_in_flight(fast_settings):
    release_x = asyncio.Event()

    async def slow_x():
        yield _line({"type": "gameStart", "game": _game("x1", "From X")})
        await release_x.wait()
        yield _line({"type": "gameStart", "game": _game("x2", "Late X")})
        yield _line({"type": "end", "successCount": 2})

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["q"] == "x":
            return httpx.Response(200, content=slow_x())
        return httpx.Response(
            200,
            content=_ndjson(
                {"type": "gameStart", "game": _game("y1", "From Y")},
                {"type": "end", "successCount": 1},
            ),
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        consumer = StreamConsumer(client, RecordingView(), settings=fast_settings)
        first = consumer.start("x")
        await _wait_until(lambda: "x1" in consumer.results)
        old_session = consumer.current_session

        status = await consumer.search("y")
        release_x.set()
        await asyncio.wait({first})

    assert old_session.authoritative is False
    assert first.done()
    assert [r.id for r in consumer.results.snapshot()] == ["y1"]
    assert status == SearchStatus(StatusState.SUCCESS, "")
    assert consumer.last_keyword == "y"


@pytest.mark.asyncio
async def test_newer_search_issued_before_first_frame_wins_silently(fast_settings):
    seen: list[httpx.Request] = []

    def body_for(keyword: str) -> bytes:
        return _ndjson(
            {"type": "gameStart", "game": _game(f"{keyword}1", f"From {keyword}")},
            {"type": "end", "successCount": 1},
        )

    view = RecordingView()
    async with httpx.AsyncClient(transport=_serving(body_for, seen)) as client:
        consumer = StreamConsumer(client, view, settings=fast_settings)
        first = consumer.start("x")
        status = await consumer.search("y")
        await asyncio.wait({first})

    assert first.done()
    assert [r.url.params["q"] for r in seen] == ["y"]
    assert [r.id for r in consumer.results.snapshot()] == ["y1"]
    assert status == SearchStatus(StatusState.SUCCESS, "")
    assert view.failures == []
    assert all(s.state != StatusState.ERROR for s in view.statuses)


@pytest.mark.asyncio
async def test_frames_from_a_superseded_session_are_ignored(fast_settings):
    async with httpx.AsyncClient(transport=_serving(lambda q: b"")) as client:
        consumer = StreamConsumer(client, RecordingView(), settings=fast_settings)
        stale = SearchSession(keyword="old", authoritative=False)
        consumer._apply_frame(stale, GameStartFrame(game=ResultRecord(id=1, name="Stale")))
        consumer._handle_line(stale, '{"type":"error","message":"boom"}')

    assert len(consumer.results) == 0
    assert consumer.status.state == StatusState.IDLE


@pytest.mark.asyncio
async def test_gateway_rejection_surfaces_its_error_message(fast_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "Search keyword must not be empty"})

    view = RecordingView()
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        status = await StreamConsumer(client, view, settings=fast_settings).search("x")

    assert status == SearchStatus(StatusState.ERROR, MSG_CONNECTION_ERROR)
    assert view.failures == [("Search failed", "Search keyword must not be empty")]


@pytest.mark.asyncio
async def test_connection_failure_sets_retryable_error(fast_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("gateway down", request=request)

    view = RecordingView()
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        consumer = StreamConsumer(client, view, settings=fast_settings)
        status = await consumer.search("x")

    assert status.state == StatusState.ERROR
    assert status.can_retry
    assert len(view.failures) == 1
    assert consumer.current_session is None


@pytest.mark.asyncio
async def test_retry_replays_last_keyword_and_keeps_results(fast_settings):
    seen: list[httpx.Request] = []
    bodies = iter(
        [
            _ndjson(
                {"type": "gameStart", "game": _game("a", "Alpha")},
                {"type": "error", "message": "Upstream search error: 502"},
            ),
            _ndjson(
                {"type": "gameStart", "game": _game("b", "Beta")},
                {"type": "end", "successCount": 1},
            ),
        ]
    )

    async with httpx.AsyncClient(transport=_serving(lambda q: next(bodies), seen)) as client:
        consumer = StreamConsumer(client, RecordingView(), settings=fast_settings)
        assert (await consumer.search("masks")).state == StatusState.ERROR
        status = await consumer.retry()

    assert [r.url.params["q"] for r in seen] == ["masks", "masks"]
    assert [r.id for r in consumer.results.snapshot()] == ["a", "b"]
    assert status.state == StatusState.SUCCESS


@pytest.mark.asyncio
async def test_new_search_resets_previous_results(fast_settings):
    body = _ndjson({"type": "gameStart", "game": _game("a", "Alpha")}, {"type": "end"})
    async with httpx.AsyncClient(transport=_serving(lambda q: body)) as client:
        consumer = StreamConsumer(client, RecordingView(), settings=fast_settings)
        await consumer.search("first")
        consumer.results.upsert(ResultRecord(id="old", name="Old"))
        await consumer.search("second")

    assert "old" not in consumer.results
    assert [r.id for r in consumer.results.snapshot()] == ["a"]


@pytest.mark.asyncio
async def test_empty_keyword_makes_no_request(fast_settings):
    seen: list[httpx.Request] = []
    view = RecordingView()
    async with httpx.AsyncClient(transport=_serving(lambda q: b"", seen)) as client:
        consumer = StreamConsumer(client, view, settings=fast_settings)
        assert consumer.start("   ") is None
        status = await consumer.search("")

    assert seen == []
    assert status == SearchStatus(StatusState.IDLE, MSG_EMPTY_KEYWORD)


@pytest.mark.asyncio
async def test_clear_cancels_search_in_flight(fast_settings):
    never = asyncio.Event()

    async def stalled():
        yield _line({"type": "gameStart", "game": _game(1, "One")})
        await never.wait()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=stalled())

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        consumer = StreamConsumer(client, RecordingView(), settings=fast_settings)
        task = consumer.start("x")
        await _wait_until(lambda: len(consumer.results) == 1)
        await consumer.clear()

    assert task.done()
    assert len(consumer.results) == 0
    assert consumer.last_keyword == ""
    assert consumer.status == SearchStatus(StatusState.IDLE, MSG_IDLE)
    assert not consumer.is_searching


@pytest.mark.asyncio
async def test_close_cancels_search_in_flight(fast_settings):
    never = asyncio.Event()

    async def stalled():
        yield _line({"type": "init", "message": "Searching..."})
        await never.wait()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=stalled())

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        consumer = StreamConsumer(client, RecordingView(), settings=fast_settings)
        task = consumer.start("x")
        await asyncio.sleep(0.01)
        await consumer.close()

    assert task.done()
    assert consumer.current_session is None


@pytest.mark.asyncio
async def test_slow_search_shows_notice_while_waiting(fast_settings):
    settings = replace(fast_settings, slow_search_notice_seconds=0.01)

    async def slow():
        await asyncio.sleep(0.1)
        yield _line({"type": "gameStart", "game": _game(1, "One")})
        yield _line({"type": "end", "successCount": 1})

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=slow())

    view = RecordingView()
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        status = await StreamConsumer(client, view, settings=settings).search("x")

    assert SearchStatus(StatusState.SEARCHING, MSG_SLOW) in view.statuses
    assert status.state == StatusState.SUCCESS


@pytest.mark.asyncio
async def test_consumes_frames_produced_by_the_gateway(fast_settings):
    catalog = {
        "data": {
            "totalCount": 3,
            "data": [
                {"_id": "a", "title": "Alpha", "coverUrl": "https://img.test/a.jpg"},
                {"_id": "b"},
                {"_id": "c", "title": "Gamma"},
            ],
        }
    }
    upstream = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json=catalog))
    )
    gateway = SearchGateway(
        upstream, fast_settings, search_policy=RetryPolicy(max_retries=0, timeout=1.0, retry_delay=0.0)
    )

    def handler(request: httpx.Request) -> httpx.Response:
        query = SearchQuery.parse(request.url.params["q"])
        return httpx.Response(200, content=gateway.stream(query))

    view = RecordingView()
    async with upstream, httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        consumer = StreamConsumer(client, view, settings=fast_settings)
        status = await consumer.search("alpha")

    assert {r.id for r in consumer.results.snapshot()} == {"a", "c"}
    assert consumer.results.get("a").image == "https://img.test/a.jpg"
    assert consumer.total == 3
    assert status == SearchStatus(StatusState.SUCCESS, "")
    assert view.failures == []
