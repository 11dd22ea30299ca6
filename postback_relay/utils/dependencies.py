"""FastAPI dependency providers for the relay's long-lived collaborators.

``create_app`` stores one :class:`Notifier` and one :class:`PostbackHandler`
on ``app.state``; routes pull them from there so tests can swap in fakes.
"""

from __future__ import annotations

from fastapi import Request

from postback_relay.notifier import Notifier
from postback_relay.postback import PostbackHandler


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_postback_handler(request: Request) -> PostbackHandler:
    return request.app.state.postback_handler
