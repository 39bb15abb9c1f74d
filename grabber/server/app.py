"""
HTTP service mode.

- GET  /      -> welcome page with the bound port
- POST /grab  -> run the recipe in the body; 200 {"result": INPUT} or 500
Every route is rate limited per client address. The browser is started once
in the app lifespan and shared by all requests; each request gets its own
context and pages.
"""
# @file purpose: FastAPI app exposing recipe execution over HTTP.

from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response

import grabber.actions.impl  # noqa: F401  (register built-ins)
from grabber.core.controller.runner import Runner
from grabber.core.display import display_error, display_text
from grabber.core.errors import GrabberError
from grabber.core.loader import parse_recipe
from grabber.core.settings import Settings
from grabber.core.settings import settings as default_settings
from grabber.io.driver import BrowserDriver
from grabber.io.playwright_driver import PlaywrightDriver

from .ratelimit import SlidingWindowLimiter

log = structlog.get_logger(__name__)

RATE_LIMIT_BODY = {
    "error": "Too many requests",
    "message": "You have exceeded the rate limit. Please try again later.",
}

WELCOME_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Welcome to grabber</title>
  <style>
    body {{ font-family: Arial, sans-serif; margin: 0; display: flex; justify-content: center; background-color: #f4f4f4; }}
    .card {{ margin-top: 40px; width: 430px; background-color: #fff; box-shadow: 0 4px 8px rgba(0,0,0,0.1); padding: 20px; border-radius: 8px; text-align: center; }}
    code {{ background-color: #eee; padding: 2px 4px; border-radius: 4px; }}
  </style>
</head>
<body>
  <div class="card">
    <h1>grabber</h1>
    <p>The server is running on port <strong>{port}</strong>.</p>
    <p>Send a recipe as JSON with <code>POST /grab</code> to run it.</p>
  </div>
</body>
</html>
"""


def _encode(value: Any) -> Any:
    try:
        return jsonable_encoder(value)
    except (TypeError, ValueError):
        return str(value)


def create_app(settings: Settings | None = None, driver: BrowserDriver | None = None) -> FastAPI:
    cfg = settings or default_settings
    browser: Any = driver or PlaywrightDriver(
        headless=cfg.headless, slow_mo_ms=cfg.slow_mo_ms, default_timeout_ms=cfg.default_timeout_ms
    )
    limiter = SlidingWindowLimiter(cfg.rate_limit_max_requests, cfg.rate_limit_window_ms)
    runner = Runner(browser, resources_dir=cfg.resources_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await browser.start()
        display_text([(f"Server started on port {cfg.port}", "bold green")])
        log.info("server.started", host=cfg.host, port=cfg.port)
        try:
            yield
        finally:
            await browser.stop()
            log.info("server.stopped")

    app = FastAPI(title="grabber", lifespan=lifespan)
    app.state.limiter = limiter
    app.state.runner = runner

    @app.middleware("http")
    async def rate_limit(request: Request, call_next: Any) -> Response:
        client = request.client.host if request.client else "anonymous"
        retry_after = limiter.hit(client)
        if retry_after is not None:
            log.warning("server.rate_limited", ip=client, path=request.url.path)
            return JSONResponse(
                RATE_LIMIT_BODY,
                status_code=429,
                headers={"Retry-After": str(max(int(retry_after + 0.999), 1))},
            )
        return await call_next(request)

    @app.get("/", response_class=HTMLResponse)
    async def welcome() -> str:
        return WELCOME_PAGE.format(port=cfg.port)

    def failed(request_id: str, name: Any, started: float, error: BaseException) -> Response:
        log.error(
            "grab.error",
            request_id=request_id,
            grab=name,
            duration_ms=int((time.monotonic() - started) * 1000),
            error=str(error),
            exc_info=error,
        )
        display_error(f"Server Error: {error}")
        return PlainTextResponse("Internal Server Error", status_code=500)

    @app.post("/grab")
    async def grab(request: Request) -> Response:
        request_id = str(uuid.uuid4())
        started = time.monotonic()
        name = None
        try:
            body = await request.json()
            name = body.get("name") if isinstance(body, dict) else None
            log.info("grab.request", request_id=request_id, grab=name)
            recipe = parse_recipe(body, "request body")
        except (ValueError, GrabberError) as e:
            return failed(request_id, name, started, e)

        # Runner.grab never raises; failures come back on the outcome
        outcome = await runner.grab(recipe, payload_id=request_id)
        if not outcome.ok:
            return failed(
                request_id, name, started, outcome.error or GrabberError(f"Grab {recipe.name} failed")
            )

        log.info(
            "grab.success",
            request_id=request_id,
            grab=name,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return JSONResponse({"result": _encode(outcome.result)})

    return app
