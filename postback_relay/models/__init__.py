"""Request/response models shared by the routers and the postback handler."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

__all__ = ["PostbackEvent", "HealthResponse", "DebugPostbackResponse"]

CHARGEBACK = "chargeback"

# Prefixes the offerwall puts in front of the user id to tag the platform.
PLATFORM_PREFIXES = ("telegram_", "discord_")


class PostbackEvent(BaseModel):
    """A single TimeWall postback, alive for one request only."""

    user_id: str
    revenue_usd: float
    transaction_id: str
    signature: str
    event_type: str
    currency_amount_usd: float

    @property
    def label(self) -> str:
        return "CHARGEBACK" if self.event_type == CHARGEBACK else "CREDIT"

    @property
    def has_platform_prefix(self) -> bool:
        return self.user_id.startswith(PLATFORM_PREFIXES)

    @property
    def clean_user_id(self) -> str:
        for prefix in PLATFORM_PREFIXES:
            if self.user_id.startswith(prefix):
                return self.user_id[len(prefix):]
        return self.user_id


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    telegram: Literal["connected", "disconnected"]
    timewall_secret_configured: bool
    group_id: Optional[str] = None
    port: int


class DebugPostbackResponse(BaseModel):
    status: str = Field("sent")
    message: str
    message_id: Optional[int] = None
