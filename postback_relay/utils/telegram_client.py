"""Minimal async Telegram Bot API client.

Only the two calls the relay needs are implemented: ``getMe`` to validate the
token and ``sendMessage`` to post into the configured group.
"""

from __future__ import annotations

import re
from typing import Any, Dict

import httpx

from postback_relay.settings import TELEGRAM_API_BASE

__all__ = ["TelegramAPIError", "TelegramBotClient", "is_conflict_error"]

DEFAULT_TIMEOUT = 10.0

_CONFLICT_WORD = re.compile(r"\b(?:409|conflict)\b", re.IGNORECASE)


class TelegramAPIError(Exception):
    """Error reported by the Bot API (``ok: false``) or by the transport."""

    def __init__(self, description: str, error_code: int | None = None) -> None:
        super().__init__(f"{error_code}: {description}" if error_code else description)
        self.description = description
        self.error_code = error_code

    @property
    def is_conflict(self) -> bool:
        return self.error_code == 409 or bool(_CONFLICT_WORD.search(self.description))


def is_conflict_error(exc: BaseException) -> bool:
    """True when *exc* signals a simultaneous-session conflict (409)."""
    if isinstance(exc, TelegramAPIError):
        return exc.is_conflict
    return bool(_CONFLICT_WORD.search(str(exc)))


class TelegramBotClient:
    def __init__(
        self,
        token: str,
        *,
        base_url: str = TELEGRAM_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=f"{base_url}/bot{token}",
            timeout=timeout,
            transport=transport,
        )

    async def _call(self, method: str, data: Dict[str, Any] | None = None) -> Any:
        try:
            resp = await self._client.post(f"/{method}", json=data or {})
        except httpx.HTTPError as exc:
            raise TelegramAPIError(f"{method} failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            raise TelegramAPIError(
                f"{method} returned non-JSON response", error_code=resp.status_code
            ) from None

        if not body.get("ok"):
            raise TelegramAPIError(
                body.get("description") or f"{method} failed",
                error_code=body.get("error_code", resp.status_code),
            )
        return body.get("result")

    async def get_me(self) -> Dict[str, Any]:
        return await self._call("getMe")

    async def send_message(self, chat_id: str | int, text: str) -> int:
        """Post *text* to *chat_id* and return the new message id."""
        result = await self._call("sendMessage", {"chat_id": chat_id, "text": text})
        return result["message_id"]

    async def aclose(self) -> None:
        await self._client.aclose()
