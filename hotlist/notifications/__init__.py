"""
Hotlist Notifications
=====================

Alerts sent when an entity is promoted.
"""

from .telegram_notifier import PromotionNotifier, TelegramNotifier, build_notifier

__all__ = ["PromotionNotifier", "TelegramNotifier", "build_notifier"]
