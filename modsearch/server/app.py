from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from modsearch.core.config import Config, config as default_config
from modsearch.core.errors import InvalidInput
from modsearch.core.logger import logger
from modsearch.net.fetch import SEARCH_POLICY, RetryPolicy
from modsearch.search.gateway import SearchGateway
from modsearch.server.routes import router


def create_app(
    settings: Config | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    search_policy: RetryPolicy = SEARCH_POLICY,
) -> FastAPI:
    """Build the gateway app. ``transport`` replaces the network for upstream calls."""
    settings = settings or default_config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with httpx.AsyncClient(transport=transport, follow_redirects=True) as client:
            app.state.http_client = client
            app.state.gateway = SearchGateway(client, settings, search_policy=search_policy)
            logger.info(f"Gateway ready, upstream {settings.upstream_search_url}")
            yield

    app = FastAPI(
        title="modsearch gateway",
        description="Streams catalog module search results as NDJSON frames.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        logger.warning(f"Rejected {request.url.path}: {exc.message}")
        return JSONResponse(status_code=400, content={"error": exc.message})

    app.include_router(router)
    return app


app = create_app()
