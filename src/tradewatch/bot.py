"""
Command bot: on-demand position reports over Telegram.

Long-polls getUpdates and answers:
- /report [model], /position [model]: fresh fetch, position report
- /help, /start: command list

Only admins or the configured channel may issue commands. The bot never
touches persisted snapshots or the diff engine.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

import aiohttp

from tradewatch.delivery.formatter import escape_html

if TYPE_CHECKING:
    from tradewatch.delivery import TelegramClient, TradeNotifier
    from tradewatch.fetcher import PositionFetcher
    from tradewatch.metrics import MonitorMetrics

logger = logging.getLogger(__name__)

POLL_PAUSE_S = 1.0

REPORT_COMMANDS = frozenset({"/report", "/position"})
HELP_COMMANDS = frozenset({"/help", "/start"})


def parse_command(text: str) -> tuple[str, str]:
    """
    Split "/cmd@BotName arg words" into ("/cmd", "arg words").

    The command is lowercased; the argument is kept verbatim.
    """
    parts = text.strip().split(maxsplit=1)
    if not parts:
        return "", ""
    command = parts[0].split("@", 1)[0].lower()
    argument = parts[1].strip() if len(parts) > 1 else ""
    return command, argument


class CommandBot:
    """
    Inbound command handler driven by a getUpdates polling loop.

    Args:
        client: Telegram API client (shared with the notifier is fine).
        notifier: Notifier used to render and send replies.
        fetcher: Fetcher for fresh snapshots (history archiving should be off).
        chat_id: Configured default channel; members of it are authorized.
        admin_ids: Sender ids authorized from any chat.
        watchlist: Optional model id allow-list applied to reports.
        metrics: Optional Prometheus exporter.
    """

    def __init__(
        self,
        client: TelegramClient,
        notifier: TradeNotifier,
        fetcher: PositionFetcher,
        *,
        chat_id: str,
        admin_ids: list[str] | None = None,
        watchlist: list[str] | None = None,
        metrics: MonitorMetrics | None = None,
        poll_pause_s: float = POLL_PAUSE_S,
    ) -> None:
        self._client = client
        self._notifier = notifier
        self._fetcher = fetcher
        self._chat_id = chat_id
        self._admin_ids = frozenset(admin_ids or [])
        self._watchlist = list(watchlist or [])
        self._metrics = metrics
        self._poll_pause_s = poll_pause_s

        self._last_update_id = 0
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_update_id(self) -> int:
        return self._last_update_id

    async def start(self, *, announce: bool = True) -> None:
        """Start polling in a background task."""
        if self._running:
            return
        logger.info("Starting command bot")
        self._running = True
        if announce:
            await self._notifier.send_text(
                "\U0001f916 Bot started\n\n" + self._notifier.formatter.format_help(self._watchlist)
            )
        self._task = asyncio.create_task(self._poll_loop(), name="command-bot")

    async def stop(self) -> None:
        """Stop polling. Idempotent."""
        if not self._running and self._task is None:
            return
        logger.info("Stopping command bot")
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _poll_loop(self) -> None:
        while self._running:
            await self.poll_once()
            await asyncio.sleep(self._poll_pause_s)

    async def poll_once(self) -> int:
        """Fetch and handle one batch of updates. Returns the number handled."""
        try:
            updates = await self._client.get_updates(self._last_update_id + 1)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error("Polling updates failed", extra={"error": str(e) or type(e).__name__})
            return 0

        for update in updates:
            update_id = None
            try:
                update_id = update.get("update_id")
                if isinstance(update_id, int):
                    self._last_update_id = max(self._last_update_id, update_id)
                await self.handle_update(update)
            except Exception:
                logger.exception("Update handling failed", extra={"update_id": update_id})
        return len(updates)

    def is_authorized(self, user_id: str | None, chat_id: str, chat_username: str | None) -> bool:
        if user_id is not None and user_id in self._admin_ids:
            return True
        if chat_id == self._chat_id:
            return True
        return chat_username is not None and f"@{chat_username}" == self._chat_id

    async def handle_update(self, update: dict[str, Any]) -> None:
        message = update.get("message")
        if not message or not message.get("text"):
            return

        chat = message.get("chat") or {}
        chat_id = str(chat.get("id", ""))
        sender = message.get("from") or {}
        user_id = str(sender["id"]) if "id" in sender else None
        text = message["text"].strip()

        logger.info(
            "Received message",
            extra={"sender_id": user_id, "chat_id": chat_id, "text": text[:100]},
        )

        if not self.is_authorized(user_id, chat_id, chat.get("username")):
            logger.warning(
                "Rejected unauthorized message",
                extra={"sender_id": user_id, "chat_id": chat_id},
            )
            await self._notifier.send_text("❌ Not authorized to use this bot", chat_id=chat_id)
            return

        if text.startswith("/"):
            await self.handle_command(text, chat_id)

    async def handle_command(self, text: str, chat_id: str) -> None:
        command, argument = parse_command(text)
        if self._metrics is not None:
            known = command in REPORT_COMMANDS or command in HELP_COMMANDS
            self._metrics.record_command(command if known else "unknown")

        try:
            if command in HELP_COMMANDS:
                await self._notifier.send_text(
                    self._notifier.formatter.format_help(self._watchlist), chat_id=chat_id
                )
            elif command in REPORT_COMMANDS:
                await self.handle_report(chat_id, argument or None)
            else:
                await self._notifier.send_text(
                    f"Unknown command: {escape_html(command)}\n\nUse /help to list commands",
                    chat_id=chat_id,
                )
        except Exception:
            logger.exception("Command failed", extra={"command": command})
            await self._notifier.send_text(
                "❌ Something went wrong, please try again later", chat_id=chat_id
            )

    async def handle_report(self, chat_id: str, model_id: str | None = None) -> bool:
        """Fetch fresh positions and send a report for model_id (or all watched)."""
        await self._notifier.send_text("⏳ Fetching positions...", chat_id=chat_id)

        snapshot = await self._fetcher.fetch()
        if snapshot is None:
            await self._notifier.send_text("❌ Failed to fetch positions", chat_id=chat_id)
            return False

        models = snapshot.select(frozenset(self._watchlist))
        if model_id:
            models = [m for m in models if m.id == model_id]

        if not models:
            reply = (
                f"❌ Model not found: {escape_html(model_id)}"
                if model_id
                else "❌ No position data to show"
            )
            await self._notifier.send_text(reply, chat_id=chat_id)
            return False

        return await self._notifier.send_report(models, chat_id=chat_id)
