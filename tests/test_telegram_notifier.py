"""
Tests for the Telegram promotion notifier.

Note: requests.post is patched; no messages are sent.
"""

from unittest.mock import MagicMock, patch

import requests

from hotlist.data.config import NotificationConfig
from hotlist.data.data_models import PromotionRecord
from hotlist.notifications.telegram_notifier import (
    PromotionNotifier,
    TelegramNotifier,
    build_notifier,
    format_promotion_message,
)

from factories import T0


def _config(**overrides):
    values = dict(bot_token="123:abc", channel_id="@hotlist", enabled=True,
                  explorer_url="https://solscan.io/token")
    values.update(overrides)
    return NotificationConfig(**values)


def _record(**overrides):
    values = dict(
        identity_key="MINT1",
        promoted_at=T0,
        start_valuation=500000.0,
        valuation=2000000.0,
        liquidity=70000.0,
        cumulative_buy_volume=150000.0,
        cumulative_net_volume=50000.0,
        name="Rocket",
        symbol="RKT",
    )
    values.update(overrides)
    return PromotionRecord(**values)


class TestFormatPromotionMessage:
    """Tests for the alert body."""

    def test_contents(self):
        text = format_promotion_message(_record())

        assert text.startswith("🔥 HOT TOKEN ALERT 🔥")
        assert "*Rocket* (RKT)" in text
        assert "`MINT1`" in text
        assert "• Market Cap: $2,000,000.00" in text
        assert "• Starting Market Cap: $500,000.00" in text
        assert "• Growth: 4.00x (300.00%)" in text
        assert "• Liquidity: $70,000.00 (3.50% of MC)" in text
        assert "• Buy Volume: $150,000.00 (7.50% of MC)" in text
        assert "• Net Volume: $50,000.00" in text
        assert "Detected at: Thu, 01 Jan 2026 12:00:00 UTC" in text
        assert text.endswith("🔗 https://solscan.io/token/MINT1")

    def test_missing_name_and_symbol(self):
        text = format_promotion_message(_record(name=None, symbol=None))

        assert "*Unknown Token* (N/A)" in text

    def test_explorer_trailing_slash(self):
        text = format_promotion_message(_record(), explorer_url="https://explorer.test/")

        assert text.endswith("🔗 https://explorer.test/MINT1")


class TestTelegramNotifier:
    """Tests for delivery."""

    def test_disabled_when_credentials_missing(self):
        notifier = TelegramNotifier(_config(bot_token=""))

        assert notifier.is_configured() is False

    @patch("hotlist.notifications.telegram_notifier.requests.post")
    def test_notify_posts_markdown(self, mock_post):
        mock_post.return_value = MagicMock()
        notifier = TelegramNotifier(_config(), timeout=3.0)

        assert notifier.notify_promotion(_record()) is True

        args, kwargs = mock_post.call_args
        assert args[0] == "https://api.telegram.org/bot123:abc/sendMessage"
        assert kwargs["data"]["chat_id"] == "@hotlist"
        assert kwargs["data"]["parse_mode"] == "Markdown"
        assert "HOT TOKEN ALERT" in kwargs["data"]["text"]
        assert kwargs["timeout"] == 3.0

    @patch("hotlist.notifications.telegram_notifier.requests.post")
    def test_http_failure_returns_false(self, mock_post):
        mock_post.return_value.raise_for_status.side_effect = requests.HTTPError("400 Bad Request")

        assert TelegramNotifier(_config()).notify_promotion(_record()) is False

    @patch("hotlist.notifications.telegram_notifier.requests.post")
    def test_network_failure_returns_false(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("unreachable")

        assert TelegramNotifier(_config()).notify_promotion(_record()) is False

    @patch("hotlist.notifications.telegram_notifier.requests.post")
    def test_disabled_sends_nothing(self, mock_post):
        assert TelegramNotifier(_config(enabled=False)).notify_promotion(_record()) is False
        mock_post.assert_not_called()


class TestBuildNotifier:
    """Tests for notifier selection."""

    def test_configured(self):
        assert isinstance(build_notifier(_config()), TelegramNotifier)

    def test_unconfigured_falls_back_to_noop(self):
        notifier = build_notifier(_config(enabled=False))

        assert type(notifier) is PromotionNotifier
        assert notifier.notify_promotion(_record()) is False

    def test_none(self):
        assert type(build_notifier(None)) is PromotionNotifier
