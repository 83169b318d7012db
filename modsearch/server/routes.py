from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
import httpx

from modsearch.contracts.stream_v1 import SearchQuery
from modsearch.core.errors import InvalidInput, UpstreamUnavailable
from modsearch.core.logger import logger
from modsearch.net.fetch import DEFAULT_POLICY, resilient_fetch

router = APIRouter(tags=["search"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/api/search")
async def search(request: Request, q: str | None = Query(default=None)):
    """Stream matching modules as newline-delimited JSON frames."""
    query = SearchQuery.parse(q)
    gateway = request.app.state.gateway
    return StreamingResponse(
        gateway.stream(query),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


@router.get("/api/image")
async def image(request: Request, url: str | None = Query(default=None)):
    """Proxy a cover image so the browser can embed it without CORS trouble."""
    if not url or not url.strip():
        raise InvalidInput("Image URL must not be empty")
    try:
        target = httpx.URL(url.strip())
    except httpx.InvalidURL as e:
        raise InvalidInput(f"Invalid image URL: {url}", cause=e) from e
    if target.scheme not in ("http", "https") or not target.host:
        raise InvalidInput(f"Invalid image URL: {url}")

    try:
        upstream = await resilient_fetch(
            request.app.state.http_client,
            str(target),
            headers={"User-Agent": request.app.state.settings.user_agent},
            policy=DEFAULT_POLICY,
        )
    except UpstreamUnavailable as e:
        logger.error(f"Image fetch failed for {target}: {e}")
        return JSONResponse(status_code=502, content={"error": "Failed to fetch image"})

    if not upstream.is_success:
        return JSONResponse(
            status_code=upstream.status_code,
            content={"error": f"Image request failed: {upstream.status_code}"},
        )
    return Response(
        content=upstream.content,
        media_type=upstream.headers.get("content-type", "application/octet-stream"),
        headers={"Cache-Control": "public, max-age=86400"},
    )


@router.get("/health")
async def health():
    return {"status": "ok"}
