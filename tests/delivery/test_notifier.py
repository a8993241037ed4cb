"""Tests for TradeNotifier."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.fixtures.snapshots import make_model
from tradewatch.contracts import TradeEvent, TradeEventType
from tradewatch.delivery import DeliveryResult, MessageFormatter, TradeNotifier


def _client(success: bool = True) -> MagicMock:
    client = MagicMock()
    client.send_message = AsyncMock(
        side_effect=lambda chat_id, text: DeliveryResult(
            success=success,
            chat_id=chat_id,
            error=None if success else "HTTP 400: Bad Request",
        )
    )
    return client


def _event(model_id: str = "A") -> TradeEvent:
    return TradeEvent(
        type=TradeEventType.MODEL_ADDED,
        model_id=model_id,
        message=f"New model {model_id} started trading",
    )


class TestTradeNotifier:
    """Tests for TradeNotifier."""

    @pytest.mark.asyncio
    async def test_empty_events_is_noop(self) -> None:
        client = _client()
        notifier = TradeNotifier(client, "100")

        assert await notifier.send([]) is True
        client.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_events(self) -> None:
        client = _client()
        notifier = TradeNotifier(client, "100")

        assert await notifier.send([_event()]) is True

        chat_id, text = client.send_message.call_args.args
        assert chat_id == "100"
        assert "New model A started trading" in text
        assert notifier.stats.sent == 1
        assert notifier.stats.condensed == 0

    @pytest.mark.asyncio
    async def test_send_condensed_when_too_long(self) -> None:
        client = _client()
        notifier = TradeNotifier(client, "100", formatter=MessageFormatter(max_length=400))
        events = [_event(f"model-{i}") for i in range(30)]

        assert await notifier.send(events) is True

        text = client.send_message.call_args.args[1]
        assert len(text) < 400
        assert "(summary)" in text
        assert notifier.stats.condensed == 1

    @pytest.mark.asyncio
    async def test_send_failure_returns_false(self) -> None:
        notifier = TradeNotifier(_client(success=False), "100")

        assert await notifier.send([_event()]) is False
        assert notifier.stats.failed == 1

    @pytest.mark.asyncio
    async def test_report_to_other_chat(self) -> None:
        client = _client()
        notifier = TradeNotifier(client, "100")

        assert await notifier.send_report([make_model("A")], chat_id="555") is True

        chat_id, text = client.send_message.call_args.args
        assert chat_id == "555"
        assert "Position Report" in text

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "args", "expected"),
        [
            ("send_test", (), "Notifications are working"),
            ("send_startup", ("https://x.test/api", ["A"], 60), "started"),
            ("send_shutdown", (), "stopped"),
            ("send_error", ("boom",), "Error: boom"),
            ("send_text", ("hello",), "hello"),
        ],
    )
    async def test_notices(self, method: str, args: tuple, expected: str) -> None:
        client = _client()
        notifier = TradeNotifier(client, "100")

        assert await getattr(notifier, method)(*args) is True

        assert expected in client.send_message.call_args.args[1]

    @pytest.mark.asyncio
    async def test_dry_run_does_not_send(self) -> None:
        client = _client()
        notifier = TradeNotifier(client, "100", dry_run=True)

        assert await notifier.send([_event()]) is True
        client.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_records_metrics(self) -> None:
        metrics = MagicMock()
        notifier = TradeNotifier(_client(success=False), "100", metrics=metrics)

        await notifier.send_error("boom")

        metrics.record_notification.assert_called_once_with("error", False)
