"""Stamp Notifier — HTTP Relay.

Small aiohttp server that forwards ad-hoc messages to the Telegram
channel:

    POST /bot-post   {"message": "<html text>"}
    GET  /health     liveness probe

The relay answers 200 once the send was attempted, whether or not
Telegram accepted it; failures only show up in the log. Callers that
need delivery confirmation cannot get it from this endpoint.
"""

from __future__ import annotations

import time
from typing import Awaitable, Callable, Optional

from aiohttp import web

from stamp_notifier.config import RelayConfig
from stamp_notifier.notifier.telegram_bot import TelegramNotifier
from stamp_notifier.utils.logger import get_logger

logger = get_logger(__name__)

SENDER_KEY = web.AppKey("sender", TelegramNotifier)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE",
    "Access-Control-Allow-Headers": "Content-Type",
}


@web.middleware
async def access_log_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """One line per request: method, path, status and elapsed time."""
    start = time.monotonic()
    status = 500
    try:
        response = await handler(request)
        status = response.status
        return response
    except web.HTTPException as e:
        status = e.status
        raise
    finally:
        logger.info(
            "%s %s %d - %.1f ms",
            request.method, request.path_qs, status,
            (time.monotonic() - start) * 1000,
        )


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Allow any origin, answer preflight requests directly."""
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=_CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(_CORS_HEADERS)
        raise
    response.headers.update(_CORS_HEADERS)
    return response


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Turn unexpected exceptions into a 500 with the error message."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception("[ERROR] %s %s", request.method, request.path)
        return web.Response(status=500, text=str(e))


async def bot_post_handler(request: web.Request) -> web.Response:
    """POST /bot-post: forward {"message": ...} to the channel."""
    try:
        body = await request.json()
    except ValueError:
        raise web.HTTPBadRequest(text="Request body must be JSON")

    message = body.get("message") if isinstance(body, dict) else None
    if not isinstance(message, str) or not message.strip():
        raise web.HTTPBadRequest(text="Field 'message' must be a non-empty string")

    sender = request.app[SENDER_KEY]
    try:
        msg_id = await sender.send_message(message)
        logger.info("Relayed message (msg=%s)", msg_id)
    except Exception as e:
        logger.error("Relay dispatch failed: %s", e)

    return web.json_response({"ok": True})


async def health_handler(request: web.Request) -> web.Response:
    """GET /health"""
    return web.json_response({"alive": True})


def create_app(sender: TelegramNotifier) -> web.Application:
    """Build the relay application.

    Args:
        sender: Notifier shared with the posting cycle.
    """
    app = web.Application(
        middlewares=[access_log_middleware, cors_middleware, error_middleware],
    )
    app[SENDER_KEY] = sender
    app.router.add_post("/bot-post", bot_post_handler)
    app.router.add_get("/health", health_handler)
    return app


class RelayServer:
    """Runs the relay application on the shared event loop."""

    def __init__(self, config: RelayConfig, sender: TelegramNotifier) -> None:
        self.config = config
        self.app = create_app(sender)
        self._runner: Optional[web.AppRunner] = None

    async def start(self) -> None:
        """Bind and start listening.

        Raises:
            OSError: If the port cannot be bound.
        """
        self._runner = web.AppRunner(self.app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await site.start()
        logger.info("[INIT] HTTP server listening on port %d", self.config.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("HTTP server stopped")
