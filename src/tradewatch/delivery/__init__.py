"""
Delivery module.

Formats trade events and reports as Telegram HTML and sends them through
the Bot API.
"""

from __future__ import annotations

from tradewatch.delivery.formatter import MAX_MESSAGE_LENGTH, MessageFormatter
from tradewatch.delivery.notifier import TradeNotifier
from tradewatch.delivery.telegram import DeliveryResult, TelegramClient

__all__ = [
    "MAX_MESSAGE_LENGTH",
    "DeliveryResult",
    "MessageFormatter",
    "TelegramClient",
    "TradeNotifier",
]
