"""TimeWall postback endpoint plus the debug-only synthetic postback."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import PlainTextResponse

from postback_relay.models import DebugPostbackResponse
from postback_relay.notifier import Notifier
from postback_relay.postback import PostbackHandler
from postback_relay.utils.dependencies import get_notifier, get_postback_handler
from postback_relay.utils.logger import logger

public_router = APIRouter(tags=["postbacks"])

debug_router = APIRouter(tags=["debug"])


@public_router.get("/timewall-postback", response_class=PlainTextResponse)
async def timewall_postback(
    request: Request,
    handler: PostbackHandler = Depends(get_postback_handler),
):
    """Receive a TimeWall postback and relay it to the Telegram group.

    The plain-text body is part of TimeWall's contract: ``1`` acknowledges
    the postback, any non-2xx answer makes TimeWall retry later.
    """
    status_code, body = await handler.handle(request.query_params)
    return PlainTextResponse(body, status_code=status_code)


@debug_router.get("/test-postback", response_model=DebugPostbackResponse)
async def test_postback(notifier: Notifier = Depends(get_notifier)):
    """Push a synthetic message through the notifier to check the wiring."""
    if not notifier.is_connected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Telegram service unavailable",
        )

    text = f"TEST:{datetime.now(timezone.utc).isoformat(timespec='seconds')}"
    try:
        message_id = await notifier.send(text)
    except Exception as exc:  # noqa: BLE001
        logger.error("postback.test_failed", extra={"error": str(exc)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal Server Error",
        ) from exc

    return DebugPostbackResponse(message=text, message_id=message_id)
