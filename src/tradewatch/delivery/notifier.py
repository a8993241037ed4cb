"""
Trade notifier.

Renders trade events, reports and service notices and delivers them to the
configured channel. Failures are logged and returned as False; nothing is
retried within a cycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tradewatch.delivery.formatter import MessageFormatter

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tradewatch.contracts import ModelAccount, TradeEvent
    from tradewatch.delivery.telegram import DeliveryResult, TelegramClient
    from tradewatch.metrics import MonitorMetrics

logger = logging.getLogger(__name__)


@dataclass
class NotifierStats:
    """Delivery counters."""

    sent: int = 0
    failed: int = 0
    condensed: int = 0


class TradeNotifier:
    """
    Delivers rendered messages to one default chat.

    Args:
        client: Telegram API client.
        chat_id: Default channel/chat id.
        formatter: Message formatter (default: MessageFormatter()).
        metrics: Optional Prometheus exporter.
        dry_run: Log messages instead of sending them.
    """

    def __init__(
        self,
        client: TelegramClient,
        chat_id: str,
        *,
        formatter: MessageFormatter | None = None,
        metrics: MonitorMetrics | None = None,
        dry_run: bool = False,
    ) -> None:
        self._client = client
        self._chat_id = chat_id
        self._formatter = formatter or MessageFormatter()
        self._metrics = metrics
        self._dry_run = dry_run
        self._stats = NotifierStats()

    @property
    def chat_id(self) -> str:
        return self._chat_id

    @property
    def formatter(self) -> MessageFormatter:
        return self._formatter

    @property
    def stats(self) -> NotifierStats:
        return self._stats

    async def send(self, events: Sequence[TradeEvent]) -> bool:
        """Send a trade notification. An empty event list is a successful no-op."""
        if not events:
            logger.info("No trade changes, skipping notification")
            return True

        full = self._formatter.format_events_full(events)
        if len(full) < self._formatter.max_length:
            text = full
        else:
            self._stats.condensed += 1
            logger.info(
                "Notification too long, sending summary",
                extra={"length": len(full), "events": len(events)},
            )
            text = self._formatter.format_events_condensed(events)

        ok = await self._deliver(text, kind="trades")
        if ok:
            logger.info("Trade notification sent", extra={"events": len(events)})
        return ok

    async def send_report(
        self,
        models: Sequence[ModelAccount],
        chat_id: str | None = None,
    ) -> bool:
        """Send a position report for models to chat_id (default chat when None)."""
        text = self._formatter.format_report(models)
        return await self._deliver(text, kind="report", chat_id=chat_id)

    async def send_test(self) -> bool:
        return await self._deliver(self._formatter.format_test(), kind="test")

    async def send_startup(
        self,
        api_url: str,
        watchlist: Sequence[str] | None,
        interval_s: float,
    ) -> bool:
        text = self._formatter.format_startup(api_url, watchlist, interval_s)
        return await self._deliver(text, kind="startup")

    async def send_shutdown(self) -> bool:
        return await self._deliver(self._formatter.format_shutdown(), kind="shutdown")

    async def send_error(self, error: str) -> bool:
        return await self._deliver(self._formatter.format_error(error), kind="error")

    async def send_text(self, text: str, chat_id: str | None = None) -> bool:
        """Send a pre-rendered HTML message."""
        return await self._deliver(text, kind="text", chat_id=chat_id)

    async def _deliver(self, text: str, *, kind: str, chat_id: str | None = None) -> bool:
        target = chat_id or self._chat_id
        if self._dry_run:
            logger.info(
                "Dry run delivery",
                extra={"kind": kind, "chat_id": target, "text": text[:200]},
            )
            return True

        result: DeliveryResult = await self._client.send_message(target, text)
        if result.success:
            self._stats.sent += 1
        else:
            self._stats.failed += 1
            logger.error(
                "Notification delivery failed",
                extra={"kind": kind, "chat_id": target, "error": result.error},
            )
        if self._metrics is not None:
            self._metrics.record_notification(kind, result.success)
        return result.success
