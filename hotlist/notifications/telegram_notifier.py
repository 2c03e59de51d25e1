"""
Telegram Notifier for Hotlist
=============================

Posts a Markdown alert to a Telegram channel when an entity is promoted.

Configuration:
    TELEGRAM_BOT_TOKEN: Bot API token (from .env)
    TELEGRAM_CHANNEL_ID: Target chat/channel id (from .env)
    ENABLE_NOTIFICATIONS: "true" to enable notifications (from .env)

Delivery is fire-and-forget: failures are logged and reported as False,
never raised, so a failed alert can never undo a promotion.
"""

import logging
from typing import Optional

import requests

from ..data.config import NotificationConfig
from ..data.data_models import PromotionRecord

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class PromotionNotifier:
    """Receives promotion events. The base implementation does nothing."""

    def notify_promotion(self, record: PromotionRecord) -> bool:
        return False


def _money(value: float) -> str:
    return f"${value:,.2f}"


def _share(part: float, whole: float) -> str:
    if whole <= 0:
        return "n/a"
    return f"{part / whole * 100:.2f}%"


def format_promotion_message(record: PromotionRecord, explorer_url: str = "https://solscan.io/token") -> str:
    """Telegram Markdown body for one promotion."""
    growth = record.growth_multiple
    growth_pct = (growth - 1) * 100 if record.start_valuation > 0 else 0.0
    detected = record.promoted_at.strftime("%a, %d %b %Y %H:%M:%S UTC")

    return (
        "🔥 HOT TOKEN ALERT 🔥\n"
        "\n"
        f"*{record.name or 'Unknown Token'}* ({record.symbol or 'N/A'})\n"
        f"`{record.identity_key}`\n"
        "\n"
        "📊 *Stats:*\n"
        f"• Market Cap: {_money(record.valuation)}\n"
        f"• Starting Market Cap: {_money(record.start_valuation)}\n"
        f"• Growth: {growth:.2f}x ({growth_pct:.2f}%)\n"
        f"• Liquidity: {_money(record.liquidity)} ({_share(record.liquidity, record.valuation)} of MC)\n"
        f"• Buy Volume: {_money(record.cumulative_buy_volume)} "
        f"({_share(record.cumulative_buy_volume, record.valuation)} of MC)\n"
        f"• Net Volume: {_money(record.cumulative_net_volume)}\n"
        "\n"
        f"Detected at: {detected}\n"
        "\n"
        f"🔗 {explorer_url.rstrip('/')}/{record.identity_key}"
    )


class TelegramNotifier(PromotionNotifier):
    """
    Sends promotion alerts through the Telegram Bot API sendMessage call.
    """

    def __init__(self, config: NotificationConfig, timeout: float = 10.0):
        """
        Initialize Telegram notifier.

        Args:
            config: Bot token, channel id, enable flag and explorer link base
            timeout: HTTP timeout in seconds
        """
        self.config = config
        self.timeout = timeout
        self.enabled = config.enabled

        if self.enabled and not (config.bot_token and config.channel_id):
            logger.warning("Telegram notifications enabled but TELEGRAM_BOT_TOKEN/TELEGRAM_CHANNEL_ID not set")
            self.enabled = False

    def is_configured(self) -> bool:
        """Check if notifier is properly configured."""
        return bool(self.enabled and self.config.bot_token and self.config.channel_id)

    @property
    def api_url(self) -> str:
        return f"{TELEGRAM_API_BASE}/bot{self.config.bot_token}/sendMessage"

    def send_message(self, text: str) -> bool:
        """Post text to the configured channel. Returns True on HTTP success."""
        if not self.is_configured():
            logger.debug("Telegram notifications disabled or not configured")
            return False

        try:
            response = requests.post(
                self.api_url,
                data={
                    "chat_id": self.config.channel_id,
                    "text": text,
                    "parse_mode": "Markdown",
                    "disable_web_page_preview": "true",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            return True

        except requests.RequestException as e:
            logger.error(f"Failed to send Telegram notification: {e}")
            return False

    def notify_promotion(self, record: PromotionRecord) -> bool:
        """
        Send the promotion alert for record.

        Returns:
            True if the notification was delivered
        """
        sent = self.send_message(format_promotion_message(record, self.config.explorer_url))
        if sent:
            logger.info(f"Telegram notification sent for {record.identity_key}")
        return sent


def build_notifier(config: Optional[NotificationConfig]) -> PromotionNotifier:
    """TelegramNotifier when configured, otherwise the no-op notifier."""
    if config is None:
        return PromotionNotifier()
    notifier = TelegramNotifier(config)
    return notifier if notifier.is_configured() else PromotionNotifier()
