"""
TimeWall postback validation and forwarding.

FLOW:
1. Pull the six required fields out of the query string
2. Recompute sha256(userid + revenue + secret) and compare with ``hash``
3. Strip the platform prefix from the user id
4. Forward ``LABEL:user:amount`` to the Telegram group
5. Answer ``200 "1"``; TimeWall treats anything else as "retry later"

There is no transaction ledger: a replayed postback with a valid hash is
forwarded again.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Mapping, Optional, Sequence, Tuple

from fastapi import status

from postback_relay.errors import (
    ConflictDetected,
    InternalError,
    PostbackError,
    ServiceUnavailable,
    SignatureMismatch,
    ValidationError,
)
from postback_relay.models import PostbackEvent
from postback_relay.notifier import NotConnectedError, Notifier
from postback_relay.utils.logger import logger
from postback_relay.utils.telegram_client import is_conflict_error
from postback_relay.utils.utils import js_number_str, parse_js_float

__all__ = [
    "ACK_BODY",
    "PostbackHandler",
    "expected_signature",
    "format_message",
    "parse_postback",
]

USER_ID_KEYS = ("userid", "userID", "userId")
TRANSACTION_ID_KEYS = ("transactionid", "transactionID", "transactionId")

# Body TimeWall expects on success
ACK_BODY = "1"


def _first(query: Mapping[str, str], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = query.get(key)
        if value:
            return value
    return None


def parse_postback(query: Mapping[str, str]) -> PostbackEvent:
    """Build a :class:`PostbackEvent` or raise :class:`ValidationError`."""
    user_id = _first(query, USER_ID_KEYS)
    revenue = query.get("revenue") or None
    transaction_id = _first(query, TRANSACTION_ID_KEYS)
    signature = query.get("hash") or None
    event_type = query.get("type") or None
    currency_amount = query.get("currencyAmount") or None

    revenue_usd = parse_js_float(revenue)
    currency_amount_usd = parse_js_float(currency_amount)

    if (
        not user_id
        or not transaction_id
        or not signature
        or not event_type
        or revenue_usd is None
        or currency_amount_usd is None
    ):
        raise ValidationError()

    return PostbackEvent(
        user_id=user_id,
        revenue_usd=revenue_usd,
        transaction_id=transaction_id,
        signature=signature,
        event_type=event_type,
        currency_amount_usd=currency_amount_usd,
    )


def expected_signature(user_id: str, revenue_usd: float, secret: str) -> str:
    """Lowercase hex sha256 over ``user_id + revenue + secret``.

    ``revenue`` is rendered the way the sender renders numbers, so ``"0.50"``
    on the wire is hashed as ``0.5``.
    """
    material = f"{user_id}{js_number_str(revenue_usd)}{secret}"
    return hashlib.sha256(material.encode()).hexdigest()


def verify_signature(event: PostbackEvent, secret: str | None) -> None:
    if not secret:
        # Without a secret nothing can be authenticated
        logger.error("postback.secret_not_configured")
        raise SignatureMismatch()

    expected = expected_signature(event.user_id, event.revenue_usd, secret)
    if not hmac.compare_digest(event.signature.encode(), expected.encode()):
        logger.error(
            "postback.invalid_hash",
            extra={"user_id": event.user_id, "transaction_id": event.transaction_id},
        )
        raise SignatureMismatch()


def format_message(event: PostbackEvent) -> str:
    return f"{event.label}:{event.clean_user_id}:{js_number_str(event.currency_amount_usd)}"


class PostbackHandler:
    """Validates a postback query and relays it through a :class:`Notifier`."""

    def __init__(self, notifier: Notifier, secret: str | None) -> None:
        self.notifier = notifier
        self.secret = secret

    async def handle(self, query: Mapping[str, str]) -> Tuple[int, str]:
        """Return ``(status_code, body)`` for the raw postback *query*."""
        logger.info("postback.received", extra={"query": dict(query)})
        try:
            event = parse_postback(query)
            verify_signature(event, self.secret)
            await self._dispatch(event)
        except ValidationError as err:
            logger.error("postback.invalid_parameters", extra={"query": dict(query)})
            return err.status_code, err.body
        except PostbackError as err:
            return err.status_code, err.body
        return status.HTTP_200_OK, ACK_BODY

    async def _dispatch(self, event: PostbackEvent) -> None:
        if not event.has_platform_prefix:
            logger.warning(
                "postback.user_id_without_prefix",
                extra={"user_id": event.user_id, "assumed_platform": "telegram"},
            )

        if not self.notifier.is_connected:
            logger.warning("telegram.disconnected_on_postback")
            if not await self.notifier.reconnect():
                raise ServiceUnavailable()

        text = format_message(event)
        try:
            await self.notifier.send(text)
        except NotConnectedError as exc:
            # Lost the connection between the check above and the send
            raise ServiceUnavailable() from exc
        except Exception as exc:  # noqa: BLE001
            if is_conflict_error(exc):
                raise ConflictDetected() from exc
            logger.exception(
                "postback.forward_failed",
                extra={"transaction_id": event.transaction_id},
            )
            raise InternalError() from exc

        logger.info(
            "postback.forwarded",
            extra={"transaction_id": event.transaction_id, "text": text},
        )
