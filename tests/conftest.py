from __future__ import annotations

"""Pytest fixtures for FastAPI integration tests.

The Telegram Bot API is replaced by an in-process fake so we can exercise the
request pipeline end-to-end without network round-trips.
"""

import asyncio
import hashlib
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest
from starlette.testclient import TestClient

# ---------------------------------------------------------------------------
# Runtime env for the application
# ---------------------------------------------------------------------------

os.environ.setdefault("TIMEWALL", "test_secret")
os.environ.setdefault("APP_ENV", "test")

# Ensure project root on PYTHONPATH so `import postback_relay` works when pytest is run
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from postback_relay.main import create_app  # noqa: E402
from postback_relay.notifier import Notifier  # noqa: E402

SECRET = "test_secret"
GROUP_ID = "-1001234567890"


class FakeBotClient:
    """Stands in for TelegramBotClient; records every message it is asked to send."""

    def __init__(self) -> None:
        self.sent: List[Tuple[Any, str]] = []
        self.get_me_error: Exception | None = None
        self.send_error: Exception | None = None
        self.get_me_calls = 0
        self.get_me_delay = 0.0
        self.closed = False

    async def get_me(self) -> Dict[str, Any]:
        self.get_me_calls += 1
        if self.get_me_delay:
            await asyncio.sleep(self.get_me_delay)
        if self.get_me_error is not None:
            raise self.get_me_error
        return {"id": 1, "is_bot": True, "username": "relay_test_bot"}

    async def send_message(self, chat_id, text: str) -> int:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((chat_id, text))
        return len(self.sent)

    async def aclose(self) -> None:
        self.closed = True


def sign(user_id: str, revenue_text: str, secret: str = SECRET) -> str:
    """sha256(userid + revenue + secret) as TimeWall computes it."""
    return hashlib.sha256(f"{user_id}{revenue_text}{secret}".encode()).hexdigest()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def bot() -> FakeBotClient:
    return FakeBotClient()


@pytest.fixture()
def notifier(bot) -> Notifier:
    # Long delay: a retry scheduled during a request test must not fire on its own
    return Notifier("123:TEST", GROUP_ID, reconnect_delay=60, client_factory=lambda _token: bot)


@pytest.fixture()
def api_client(notifier):
    """TestClient with lifespan running, so the notifier starts connected."""
    app = create_app(notifier, SECRET, enable_test_route=True, port=3001)
    with TestClient(app) as client:
        yield client
