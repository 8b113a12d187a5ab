"""
Reference transfer endpoint (aiohttp.web application factory).

Implements the three routes the measurement engine speaks:

* ``GET  /api/ping``                  -- trivial JSON echo
* ``GET  /api/download?size=N``       -- N random bytes, streamed
* ``POST /api/upload?startTime=T``    -- swallow the body, report timing

Every response is marked ``no-store`` so no cache can short-circuit a
measurement, and download bodies are random so transport compression has
nothing to squeeze.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Awaitable, Callable, Optional

from aiohttp import web

from .constants import (
    DEFAULT_DOWNLOAD_SIZE,
    DEFAULT_SERVE_HOST,
    DEFAULT_SERVE_PORT,
    DOWNLOAD_PATH,
    MAX_DOWNLOAD_SIZE,
    MAX_UPLOAD_SIZE,
    NO_CACHE,
    PING_PATH,
    SERVER_CHUNK_SIZE,
    UPLOAD_PATH,
)

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _now_ms() -> float:
    return time.time() * 1000


@web.middleware
async def no_store(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Disable HTTP caching on every response, errors included."""
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        exc.headers["Cache-Control"] = NO_CACHE
        exc.headers["Pragma"] = "no-cache"
        raise
    if not response.prepared:
        response.headers["Cache-Control"] = NO_CACHE
        response.headers["Pragma"] = "no-cache"
    return response


def _bad_request(message: str) -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=json.dumps({"error": message}),
        content_type="application/json",
    )


def parse_size(raw: Optional[str], default: int = DEFAULT_DOWNLOAD_SIZE, limit: int = MAX_DOWNLOAD_SIZE) -> int:
    """Validate the ``size`` query value; raises ``ValueError`` when unusable."""
    if raw is None or raw == "":
        return min(default, limit)
    size = int(raw)
    if size <= 0:
        raise ValueError(f"size must be positive, got {size}")
    if size > limit:
        raise ValueError(f"size must be at most {limit} bytes, got {size}")
    return size


def create_app(
    max_download_size: int = MAX_DOWNLOAD_SIZE,
    max_upload_size: int = MAX_UPLOAD_SIZE,
    chunk_size: int = SERVER_CHUNK_SIZE,
) -> web.Application:
    app = web.Application(middlewares=[no_store], client_max_size=max_upload_size)
    routes = web.RouteTableDef()

    @routes.get(PING_PATH)
    async def ping(request: web.Request) -> web.Response:
        return web.json_response({"ping": "pong", "timestamp": int(_now_ms())})

    @routes.get(DOWNLOAD_PATH)
    async def download(request: web.Request) -> web.StreamResponse:
        try:
            size = parse_size(request.query.get("size"), limit=max_download_size)
        except ValueError as exc:
            raise _bad_request(str(exc))

        response = web.StreamResponse(
            headers={
                "Content-Type": "application/octet-stream",
                "Cache-Control": NO_CACHE,
                "Pragma": "no-cache",
            }
        )
        response.content_length = size
        await response.prepare(request)

        remaining = size
        while remaining > 0:
            n = min(chunk_size, remaining)
            await response.write(os.urandom(n))
            remaining -= n

        await response.write_eof()
        return response

    @routes.post(UPLOAD_PATH)
    async def upload(request: web.Request) -> web.Response:
        arrived_ms = _now_ms()
        raw_start = request.query.get("startTime")
        try:
            start_ms = float(raw_start) if raw_start else arrived_ms
        except ValueError:
            raise _bad_request(f"invalid startTime: {raw_start}")

        received = 0
        async for chunk in request.content.iter_chunked(chunk_size):
            received += len(chunk)
            if received > max_upload_size:
                raise web.HTTPRequestEntityTooLarge(
                    max_size=max_upload_size, actual_size=received
                )

        done_ms = _now_ms()
        # Clock skew between client and server must not produce negative time.
        duration = max(done_ms - start_ms, 0.0)
        speed = (received * 8) / (duration / 1000) if duration > 0 else 0.0

        return web.json_response({
            "received": received,
            "duration": round(duration, 3),
            "speed": round(speed, 2),
            "timestamp": int(done_ms),
        })

    app.add_routes(routes)
    return app


def serve(host: str = DEFAULT_SERVE_HOST, port: int = DEFAULT_SERVE_PORT) -> None:
    """Run the reference endpoint until interrupted."""
    logger.info("Transfer endpoint listening on http://%s:%d", host, port)
    web.run_app(create_app(), host=host, port=port, print=None)
