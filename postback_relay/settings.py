from __future__ import annotations

"""Application-level configuration helpers (env → constants).

Secrets live in the package ``__init__``; this module only derives the
non-secret runtime knobs so it stays cheap to import from anywhere.
"""

# Standard library
import os

from postback_relay import APP_ENV
from postback_relay.utils.utils import get_env_bool, get_env_int

__all__ = [
    "PORT",
    "RECONNECT_DELAY_SECONDS",
    "TELEGRAM_API_BASE",
    "ENABLE_TEST_POSTBACK",
    "LOG_LEVEL",
]

DEFAULT_PORT = 3001

PORT: int = get_env_int("PORT", DEFAULT_PORT)

# Fixed delay between Telegram reconnect attempts (no backoff growth)
RECONNECT_DELAY_SECONDS: float = float(os.getenv("TELEGRAM_RECONNECT_DELAY", "10"))

TELEGRAM_API_BASE: str = os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org").rstrip("/")


def _test_route_enabled() -> bool:
    """The synthetic /test-postback route is a debugging aid.

    It is mounted outside production, or anywhere ``ENABLE_TEST_POSTBACK``
    is explicitly switched on.
    """
    return APP_ENV != "production" or get_env_bool("ENABLE_TEST_POSTBACK")


ENABLE_TEST_POSTBACK: bool = _test_route_enabled()

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
