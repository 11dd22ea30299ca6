"""Top-level package for the TimeWall → Telegram postback relay."""

__all__ = [
    "APP_ENV",
    "TIMEWALL_SECRET",
    "TELEGRAM_TOKEN",
    "TELEGRAM_GROUP_ID",
]

from dotenv import load_dotenv
import os
load_dotenv()

# Shared secret TimeWall appends to ``userid + revenue`` before hashing
TIMEWALL_SECRET = os.environ.get("TIMEWALL") or None

# Telegram bot configuration
TELEGRAM_TOKEN = os.environ.get("TELEGRAM_TOKEN") or None
TELEGRAM_GROUP_ID = os.environ.get("TELEGRAM_GROUP_ID") or None

APP_ENV = os.getenv("APP_ENV", "production")
