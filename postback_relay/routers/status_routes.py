from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from postback_relay.models import HealthResponse
from postback_relay.notifier import Notifier
from postback_relay.utils.dependencies import get_notifier

router = APIRouter(tags=["status"])


@router.get("/health", response_model=HealthResponse)
async def health(request: Request, notifier: Notifier = Depends(get_notifier)):
    """Connection and configuration snapshot for uptime checks."""
    return HealthResponse(
        telegram="connected" if notifier.is_connected else "disconnected",
        timewall_secret_configured=bool(request.app.state.postback_handler.secret),
        group_id=notifier.group_id,
        port=request.app.state.port,
    )
