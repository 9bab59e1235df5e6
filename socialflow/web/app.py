# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import os
import time
import uuid
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from ..api.client import WebhookClient
from ..cache import Mutations, Queries, QueryCache
from ..config import Settings, get_settings
from ..logging_setup import log_event, request_id_var, setup_logging
from . import pages
from .components import error_alert, layout


def create_app(settings: Settings | None = None, client: WebhookClient | None = None, cache: QueryCache | None = None) -> FastAPI:
    """Build the dashboard.

    The query cache and webhook client live for the lifespan of the app and
    are torn down with it. Tests pass their own client (usually a mock) and
    may pass a cache to inspect after requests.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        webhook = client or WebhookClient.from_settings(settings)
        query_cache = cache or QueryCache(default_retry=settings.query_retry, retry_delay=settings.query_retry_delay)
        app.state.settings = settings
        app.state.client = webhook
        app.state.cache = query_cache
        app.state.queries = Queries(webhook)
        app.state.mutations = Mutations(webhook, query_cache)
        log_event("app_started", api_base=settings.api_base, environment=settings.environment)
        try:
            yield
        finally:
            if cache is None:
                await query_cache.aclose()
            if client is None:
                webhook.close()
            log_event("app_stopped")

    app = FastAPI(title="SocialFlow Dashboard", lifespan=lifespan)

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        req_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_var.set(req_id)
        start = time.time()
        try:
            response = await call_next(request)
            duration_ms = int((time.time() - start) * 1000)
            log_event("request_completed", method=request.method, path=request.url.path,
                      status_code=response.status_code, duration_ms=duration_ms)
            response.headers["X-Request-ID"] = req_id
            return response
        finally:
            request_id_var.reset(token)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        log_event("unhandled_error", level="error", path=request.url.path, error_type=type(exc).__name__, error=str(exc))
        content = error_alert("Unexpected error. Try again or check the server logs.", request.url.path)
        return HTMLResponse(layout("Error", content, n8n_url=settings.n8n_dashboard_url), status_code=500)

    app.include_router(pages.router)
    return app


def main():
    load_dotenv()
    settings = get_settings()
    setup_logging(settings.log_level)
    port = int(os.getenv("PORT", "8000"))
    print(f"Starting SocialFlow dashboard at http://0.0.0.0:{port}")
    uvicorn.run(create_app(settings), host="0.0.0.0", port=port, reload=False)


if __name__ == "__main__":
    main()
