"""
Message formatter for Telegram delivery.

Deterministic template-based rendering of trade events, position reports
and service notices into Telegram HTML. Every dynamic value is escaped.

When a full rendering exceeds MAX_MESSAGE_LENGTH the formatter switches to a
condensed per-model summary, built under a character budget so the result
is always shorter than the limit.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from urllib.parse import quote

from tradewatch.contracts import TradeEventType

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tradewatch.contracts import ModelAccount, TradeEvent

# Telegram rejects messages above 4096 characters
MAX_MESSAGE_LENGTH = 4000

MODEL_LINK_BASE = "https://nof1.ai/models"

SEPARATOR = "━" * 17  # heavy horizontal line

# Event type to emoji/icon mapping
EVENT_TYPE_ICONS = {
    TradeEventType.POSITION_OPENED: "\U0001f7e2",  # green circle
    TradeEventType.POSITION_CLOSED: "\U0001f534",  # red circle
    TradeEventType.MODEL_ADDED: "\U0001f195",  # NEW
    TradeEventType.MODEL_REMOVED: "❌",  # red X
}

# position_changed icons by order side
POLARITY_ICONS = {
    "buy": "\U0001f4c8",  # chart up
    "sell": "\U0001f4c9",  # chart down
    None: "⚙️",  # gear
}

DEFAULT_ICON = "ℹ️"  # info

# Event type to human label (condensed summaries)
EVENT_TYPE_LABELS = {
    TradeEventType.POSITION_OPENED: "opened",
    TradeEventType.POSITION_CLOSED: "closed",
    TradeEventType.POSITION_CHANGED: "changed",
    TradeEventType.MODEL_ADDED: "model added",
    TradeEventType.MODEL_REMOVED: "model removed",
}


def escape_html(text: str, attribute: bool = False) -> str:
    """Escape characters reserved by Telegram HTML parse mode.

    attribute=True also escapes double quotes, for href values.
    """
    text = text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    if attribute:
        text = text.replace('"', "&quot;")
    return text


def model_link(model_id: str) -> str:
    """Public positions page for a model."""
    return f"{MODEL_LINK_BASE}/{quote(model_id, safe='')}"


def event_icon(event: TradeEvent) -> str:
    """Emoji for an event, by kind and, for changes, by buy/sell polarity."""
    if event.type == TradeEventType.POSITION_CHANGED:
        polarity = event.action.polarity if event.action is not None else None
        return POLARITY_ICONS[polarity]
    return EVENT_TYPE_ICONS.get(event.type, DEFAULT_ICON)


def _signed(value: float) -> str:
    return f"+{value:.2f}" if value >= 0 else f"{value:.2f}"


def _pnl_icon(value: float) -> str:
    return "\U0001f49a" if value >= 0 else "❤️"  # green heart / red heart


def _ratio(part: float, whole: float) -> float:
    return part / whole * 100 if whole else 0.0


def _overflow_line(count: int) -> str:
    return f"… and {count} more models"


def fit_blocks(
    header: list[str],
    blocks: Sequence[list[str]],
    footer: list[str],
    limit: int = MAX_MESSAGE_LENGTH,
) -> str:
    """
    Join header, as many blocks as fit, and footer into one message.

    Blocks that do not fit are replaced by a single "... and N more" line,
    keeping the result strictly shorter than limit.
    """
    lines = list(header)
    used = len("\n".join(lines + footer))
    for i, block in enumerate(blocks):
        remaining = len(blocks) - i
        block_len = len("\n".join(block)) + 1
        # Keep room for the overflow line unless this is the final block
        reserve = 0 if remaining == 1 else len(_overflow_line(remaining - 1)) + 1
        if used + block_len + reserve >= limit:
            tail = _overflow_line(remaining)
            if used + len(tail) + 1 < limit:
                lines.append(tail)
            break
        lines.extend(block)
        used += block_len
    message = "\n".join(lines + footer)
    if len(message) >= limit:
        message = message[: limit - 1]
    return message


class MessageFormatter:
    """
    Renders events, reports and notices as Telegram HTML.

    Timestamps are rendered in UTC.
    """

    def __init__(self, max_length: int = MAX_MESSAGE_LENGTH) -> None:
        self._max_length = max_length

    @property
    def max_length(self) -> int:
        return self._max_length

    @staticmethod
    def _now_str(now: datetime | None = None) -> str:
        now = now or datetime.now(tz=UTC)
        return now.strftime("%Y-%m-%d %H:%M:%S UTC")

    # Trade notifications

    @staticmethod
    def group_by_model(events: Sequence[TradeEvent]) -> dict[str, list[TradeEvent]]:
        """Group events by model id, first-seen model order preserved."""
        grouped: dict[str, list[TradeEvent]] = {}
        for event in events:
            grouped.setdefault(event.model_id, []).append(event)
        return grouped

    def format_events_full(self, events: Sequence[TradeEvent], now: datetime | None = None) -> str:
        lines = [
            "\U0001f6a8 <b>AI Trading Monitor</b>",
            "",
            f"⏰ Time: {self._now_str(now)}",
            f"\U0001f4ca Detected {len(events)} trade changes:",
            "",
        ]
        for model_id, model_events in self.group_by_model(events).items():
            lines.append(
                f"\U0001f916 <b>{escape_html(model_id)}</b> "
                f'<a href="{escape_html(model_link(model_id), attribute=True)}">positions</a>'
            )
            for event in model_events:
                lines.append(f"  {event_icon(event)} {escape_html(event.message)}")
            lines.append("")
        return "\n".join(lines).rstrip()

    def format_events_condensed(
        self, events: Sequence[TradeEvent], now: datetime | None = None
    ) -> str:
        header = [
            "\U0001f6a8 <b>AI Trading Monitor (summary)</b>",
            "",
            f"⏰ Time: {self._now_str(now)}",
            f"\U0001f4ca Detected {len(events)} trade changes:",
            "",
        ]
        blocks: list[list[str]] = []
        for model_id, model_events in self.group_by_model(events).items():
            counts: dict[TradeEventType, int] = {}
            for event in model_events:
                counts[event.type] = counts.get(event.type, 0) + 1
            breakdown = ", ".join(
                f"{count} {EVENT_TYPE_LABELS.get(kind, kind.value)}"
                for kind, count in counts.items()
            )
            blocks.append(
                [
                    f"\U0001f916 <b>{escape_html(model_id)}</b>: {len(model_events)} changes",
                    f"  {escape_html(breakdown)}",
                ]
            )
        footer = ["", "ℹ️ Open the model pages for details"]
        return fit_blocks(header, blocks, footer, self._max_length)

    # Position reports

    def format_report(
        self, models: Sequence[ModelAccount], now: datetime | None = None
    ) -> str:
        """Full position report, or the condensed form if it would be too long."""
        full = self.format_report_full(models, now)
        if len(full) < self._max_length:
            return full
        return self.format_report_condensed(models, now)

    def format_report_full(
        self, models: Sequence[ModelAccount], now: datetime | None = None
    ) -> str:
        lines = [
            "\U0001f4ca <b>Position Report</b>",
            "",
            f"⏰ Time: {self._now_str(now)}",
            f"\U0001f916 Models: {len(models)}",
            "",
        ]
        for model in models:
            lines.extend(self._report_block(model))
        lines.append(SEPARATOR)
        return "\n".join(lines)

    def _report_block(self, model: ModelAccount) -> list[str]:
        equity = model.dollar_equity
        lines = [
            SEPARATOR,
            f"\U0001f916 <b>{escape_html(model.id)}</b>",
            f"\U0001f517 {escape_html(model_link(model.id))}",
            "",
            f"\U0001f4b0 Equity: ${equity:.2f}",
            f"\U0001f4c8 Realized PnL: ${model.realized_pnl:.2f}",
        ]
        if not model.positions:
            lines.extend(["", "ℹ️ No open positions", "\U0001f4b5 Cash: 100.00%", ""])
            return lines

        unrealized = model.total_unrealized_pnl
        lines.append(f"{_pnl_icon(unrealized)} Unrealized PnL: {_signed(unrealized)}")
        lines.append("")
        lines.append(f"\U0001f4ca Positions: {len(model.positions)}")
        lines.append(
            f"\U0001f4b5 Cash: ${model.cash:.2f} ({_ratio(model.cash, equity):.2f}%)"
        )
        lines.append("")

        for pos in sorted(model.positions.values(), key=lambda p: p.margin, reverse=True):
            move_pct = (
                (pos.current_price - pos.entry_price) / pos.entry_price * 100
                if pos.entry_price > 0
                else 0.0
            )
            side_icon = POLARITY_ICONS["buy"] if pos.quantity > 0 else POLARITY_ICONS["sell"]
            lines.extend(
                [
                    f"{side_icon} {escape_html(pos.symbol)} {pos.direction.value} "
                    f"{pos.leverage:g}x",
                    f"   Size: {abs(pos.quantity):.4f} (${pos.notional:.2f})",
                    f"   Price: ${pos.current_price:.2f} ({_signed(move_pct)}%)",
                    f"   Share: {_ratio(pos.margin, equity):.2f}% (margin ${pos.margin:.2f})",
                    f"   {_pnl_icon(pos.unrealized_pnl)} PnL: {_signed(pos.unrealized_pnl)}",
                    "",
                ]
            )
        return lines

    def format_report_condensed(
        self, models: Sequence[ModelAccount], now: datetime | None = None
    ) -> str:
        header = [
            "\U0001f4ca <b>Position Report (summary)</b>",
            "",
            f"⏰ Time: {self._now_str(now)}",
            f"\U0001f916 Models: {len(models)}",
            "",
        ]
        blocks: list[list[str]] = []
        for model in models:
            block = [
                SEPARATOR,
                f"\U0001f916 <b>{escape_html(model.id)}</b>",
                f"\U0001f4b0 Equity: ${model.dollar_equity:.2f}",
            ]
            if model.positions:
                unrealized = model.total_unrealized_pnl
                block.append(f"{_pnl_icon(unrealized)} PnL: {_signed(unrealized)}")
                block.append(f"\U0001f4ca Positions: {len(model.positions)}")
            else:
                block.append("\U0001f4b5 Cash: 100.00%")
            blocks.append(block)
        footer = [SEPARATOR, "ℹ️ Open the model pages for details"]
        return fit_blocks(header, blocks, footer, self._max_length)

    # Service notices

    def format_test(self, now: datetime | None = None) -> str:
        return "\n".join(
            [
                "\U0001f9ea <b>AI Trading Monitor Test</b>",
                "",
                "✅ Notifications are working",
                f"⏰ Time: {self._now_str(now)}",
            ]
        )

    def format_startup(
        self,
        api_url: str,
        watchlist: Sequence[str] | None,
        interval_s: float,
        now: datetime | None = None,
    ) -> str:
        watched = ", ".join(watchlist) if watchlist else "all models"
        return "\n".join(
            [
                "\U0001f680 <b>AI Trading Monitor started</b>",
                "",
                f"⏰ Time: {self._now_str(now)}",
                f"\U0001f517 API: {escape_html(api_url)}",
                f"\U0001f440 Watching: {escape_html(watched)}",
                "",
                f"✅ Checking positions every {interval_s:g}s",
            ]
        )

    def format_shutdown(self, now: datetime | None = None) -> str:
        return "\n".join(
            [
                "\U0001f6d1 <b>AI Trading Monitor stopped</b>",
                "",
                f"⏰ Time: {self._now_str(now)}",
            ]
        )

    def format_error(self, error: str, now: datetime | None = None) -> str:
        return "\n".join(
            [
                "❌ <b>AI Trading Monitor error</b>",
                "",
                f"⏰ Time: {self._now_str(now)}",
                f"\U0001f6a8 Error: {escape_html(error[:500])}",
            ]
        )

    def format_help(self, watchlist: Sequence[str] | None) -> str:
        watched = ", ".join(watchlist) if watchlist else "all models"
        return "\n".join(
            [
                "\U0001f4d6 <b>Commands</b>",
                "",
                "/report - position report for all watched models",
                "/report &lt;model&gt; - position report for one model",
                "/help - show this help",
                "",
                f"Watching: {escape_html(watched)}",
            ]
        )
