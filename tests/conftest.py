"""Shared fixtures: a fixed clock, a mocked Telegram bot and a SQLite file per test."""
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from premium_bot.config import Settings
from premium_bot.conversation import BuyerEvent
from premium_bot.handlers import BotApp
from premium_bot.telegram import TelegramBot

ADMIN_CHAT_ID = "999"
ADMIN_API_ID = "admin-uid"
BUYER_ID = "100"
SUBSCRIBER_KEY = "abc1234567"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        bot_token="test-token",
        admin_chat_ids=frozenset({ADMIN_CHAT_ID}),
        admin_api_ids=frozenset({ADMIN_API_ID}),
        database_path=str(tmp_path / "premium.sqlite3"),
        qris_file_id="QRIS_FILE_ID",
        webhook_secret="s3cret",
    )


@pytest.fixture
def bot():
    return Mock(spec=TelegramBot)


@pytest.fixture
def app(settings, bot, clock):
    return BotApp(settings, bot=bot, clock=clock)


@pytest.fixture
def drive_to_review(app):
    """Walk a buyer through the chat flow up to and including the amount step."""

    def drive(buyer=BUYER_ID, package="2", subscriber=SUBSCRIBER_KEY, amount="15000"):
        app.flow.handle(BuyerEvent(buyer, action_token=f"pkg:{package}"))
        app.flow.handle(BuyerEvent(buyer, text=subscriber))
        app.flow.handle(BuyerEvent(buyer, attachment_ref="proof-photo-1"))
        app.flow.handle(BuyerEvent(buyer, text=amount))
        return app.orders.find_latest_by_buyer(buyer)

    return drive
