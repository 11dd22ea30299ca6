"""Telegram group notifier with a self-healing connection.

The notifier owns the only shared mutable state in the relay: the bot client
and its ``connected`` flag.  Every transition between *disconnected* and
*connected* goes through ``_lock``; sends run outside of it so concurrent
postbacks are not serialized behind the network.

A failed connect schedules exactly one retry after a fixed delay.  The retry
is an ``asyncio.Task`` kept on the instance, so there is never more than one
pending and it can be cancelled on shutdown or when a manual connect wins.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from postback_relay.settings import RECONNECT_DELAY_SECONDS
from postback_relay.utils.logger import logger
from postback_relay.utils.telegram_client import TelegramBotClient, is_conflict_error

__all__ = ["NotConnectedError", "Notifier"]


class NotConnectedError(RuntimeError):
    """Raised by :meth:`Notifier.send` while the bot is disconnected."""


class Notifier:
    def __init__(
        self,
        token: str | None,
        group_id: str | None,
        *,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
        client_factory: Callable[[str], Any] = TelegramBotClient,
    ) -> None:
        self._token = token
        self._group_id = group_id
        self._reconnect_delay = reconnect_delay
        self._client_factory = client_factory

        self._client: Any | None = None
        self._connected = False
        self._lock = asyncio.Lock()
        self._retry_task: asyncio.Task | None = None
        # Set by shutdown(); scheduled retries stand down until connect() is called again
        self._closed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def configured(self) -> bool:
        return bool(self._token and self._group_id)

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def group_id(self) -> str | None:
        return self._group_id

    @property
    def pending_reconnect(self) -> asyncio.Task | None:
        """The scheduled retry, if one is waiting to fire."""
        if self._retry_task is not None and self._retry_task.done():
            self._retry_task = None
        return self._retry_task

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Create the bot client and validate the token with ``getMe``.

        Returns the resulting connection state.  Failures never raise; they
        leave the notifier disconnected with a retry scheduled.
        """
        self._closed = False
        async with self._lock:
            return await self._connect_locked()

    async def reconnect(self) -> bool:
        """Single immediate attempt, skipped if someone else already got through."""
        self._closed = False
        async with self._lock:
            if self._connected:
                return True
            return await self._connect_locked()

    async def _connect_locked(self) -> bool:
        if not self.configured:
            logger.warning(
                "telegram.not_configured",
                extra={"hint": "set TELEGRAM_TOKEN and TELEGRAM_GROUP_ID"},
            )
            return False

        if self._client is None:
            self._client = self._client_factory(self._token)

        try:
            me = await self._client.get_me()
        except Exception as exc:  # noqa: BLE001 – any failure means "retry later"
            logger.error("telegram.connect_failed", extra={"error": str(exc)})
            await self._drop_client()
            self.schedule_reconnect()
            return False

        if self._closed:
            # shutdown() raced this attempt; do not come back to life
            await self._drop_client()
            return False

        self._connected = True
        self._cancel_retry()
        logger.info(
            "telegram.connected",
            extra={"username": (me or {}).get("username"), "group_id": self._group_id},
        )
        return True

    def schedule_reconnect(self) -> asyncio.Task | None:
        """Arrange for :meth:`connect` to run after the fixed delay.

        Idempotent while a retry is already pending; a no-op after shutdown.
        """
        if self._closed:
            return None

        pending = self.pending_reconnect
        if pending is not None:
            return pending

        self._retry_task = asyncio.get_running_loop().create_task(self._retry_after_delay())
        logger.info("telegram.reconnect_scheduled", extra={"delay_s": self._reconnect_delay})
        return self._retry_task

    async def _retry_after_delay(self) -> None:
        await asyncio.sleep(self._reconnect_delay)
        # Detach first so a successful connect does not cancel this very task
        # and a failed one is free to schedule the next retry.
        if self._retry_task is asyncio.current_task():
            self._retry_task = None
        async with self._lock:
            if self._closed:
                return
            await self._connect_locked()

    def _cancel_retry(self) -> None:
        task = self._retry_task
        self._retry_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _drop_client(self) -> None:
        client, self._client = self._client, None
        self._connected = False
        if client is not None and hasattr(client, "aclose"):
            await client.aclose()

    async def _mark_disconnected(self, client: Any) -> None:
        async with self._lock:
            # A concurrent reconnect may already have replaced the client
            if self._client is client:
                await self._drop_client()

    async def shutdown(self) -> None:
        self._closed = True
        self._cancel_retry()
        async with self._lock:
            await self._drop_client()
            self._cancel_retry()
        logger.info("telegram.shutdown")

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send(self, text: str) -> int:
        """Send *text* to the configured group and return the message id.

        Errors from the bot client propagate unchanged.  A 409 conflict also
        drops the connection and schedules a reconnect before re-raising.
        """
        client = self._client
        if not self._connected or client is None:
            raise NotConnectedError("Telegram bot is not connected")

        try:
            message_id = await client.send_message(self._group_id, text)
        except Exception as exc:
            if is_conflict_error(exc):
                logger.warning("telegram.conflict_detected", extra={"error": str(exc)})
                await self._mark_disconnected(client)
                self.schedule_reconnect()
            else:
                logger.error("telegram.send_failed", extra={"error": str(exc)})
            raise

        logger.info("telegram.message_sent", extra={"text": text, "message_id": message_id})
        return message_id
