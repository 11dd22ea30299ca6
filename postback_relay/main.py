"""Entry-point for the postback relay ASGI app.

This module constructs the FastAPI instance, wires global middleware,
registers the route groups, and exposes the ``app`` variable that uvicorn
imports (``uvicorn postback_relay.main:app``).
"""

from __future__ import annotations

import os
import logging
import traceback
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Callable, Awaitable

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from postback_relay import APP_ENV, TELEGRAM_GROUP_ID, TELEGRAM_TOKEN, TIMEWALL_SECRET
from postback_relay.notifier import Notifier
from postback_relay.postback import PostbackHandler
from postback_relay.settings import ENABLE_TEST_POSTBACK, LOG_LEVEL, PORT
from postback_relay.utils.logger import configure_logging, logger, request_id_ctx

_UNSET = object()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id for every log line emitted while handling the request."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:  # type: ignore[override]
        start = perf_counter()
        request_id = request.headers.get("X-Request-Id", os.urandom(4).hex())
        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            duration_ms = (perf_counter() - start) * 1000
            logger.info(
                "request.complete",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code if "response" in locals() else 500,
                    "duration_ms": round(duration_ms, 2),
                    "request_id": request_id,
                },
            )
            request_id_ctx.reset(token)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the Telegram bot on startup and release it on shutdown."""
    notifier: Notifier = app.state.notifier

    logger.info(
        "relay.startup",
        extra={"port": app.state.port, "endpoint": "/timewall-postback"},
    )
    if notifier.configured:
        await notifier.connect()
        logger.info("telegram.group_configured", extra={"group_id": notifier.group_id})
    else:
        logger.warning(
            "telegram.not_configured",
            extra={"hint": "set TELEGRAM_TOKEN and TELEGRAM_GROUP_ID"},
        )
    if not app.state.postback_handler.secret:
        logger.warning("postback.secret_not_configured", extra={"hint": "set TIMEWALL"})

    yield

    await notifier.shutdown()


def create_app(
    notifier: Notifier | None = None,
    secret: str | None | object = _UNSET,
    *,
    enable_test_route: bool = ENABLE_TEST_POSTBACK,
    port: int = PORT,
) -> FastAPI:
    """Build the relay app.

    Without arguments everything comes from the environment; tests pass an
    explicit notifier (with a fake bot client) and secret.
    """
    configure_logging()

    app = FastAPI(
        title="TimeWall Postback Relay",
        version="0.1.0",
        docs_url="/docs" if APP_ENV != "production" else None,
        redoc_url=None,
        openapi_url="/openapi.json" if APP_ENV != "production" else None,
        lifespan=lifespan,
    )

    if notifier is None:
        notifier = Notifier(TELEGRAM_TOKEN, TELEGRAM_GROUP_ID)
    if secret is _UNSET:
        secret = TIMEWALL_SECRET

    app.state.notifier = notifier
    app.state.postback_handler = PostbackHandler(notifier, secret)  # type: ignore[arg-type]
    app.state.port = port

    # Global middleware
    app.add_middleware(RequestContextMiddleware)

    # Global exception handler - logs full tracebacks for any unhandled 500s
    @app.exception_handler(Exception)
    async def log_unhandled_exceptions(request: Request, exc: Exception):
        """Log full traceback for any unhandled exception that would become a 500."""
        error_logger = logging.getLogger("uvicorn.error")
        error_logger.error(
            "UNHANDLED %s at %s %s\n%s",
            type(exc).__name__,
            request.method,
            request.url.path,
            "".join(traceback.format_tb(exc.__traceback__))
        )
        # Re-raise so FastAPI still returns the appropriate status code
        raise exc

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:  # pylint: disable=unused-variable
        return "TimeWall/Telegram postback server is online!"

    # Router imports kept local so importing this module stays cheap
    from postback_relay.routers import postback_routes, status_routes
    app.include_router(status_routes.router)
    app.include_router(postback_routes.public_router)
    if enable_test_route:
        app.include_router(postback_routes.debug_router)

    return app


# The object uvicorn imports
app = create_app()


def run() -> None:
    """Run the relay with uvicorn on ``0.0.0.0:$PORT``."""
    import uvicorn

    uvicorn.run(
        "postback_relay.main:app",
        host="0.0.0.0",
        port=PORT,
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
