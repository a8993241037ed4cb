"""
Position diff engine.

Compares two snapshots and derives the minimal set of trade events:
model added/removed, position opened/closed/changed. Price moves alone
never produce an event; only quantity and leverage are compared.

Ordering is deterministic: models in previous-then-current insertion order,
symbols likewise within a model.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tradewatch.contracts import (
    Direction,
    TradeAction,
    TradeEvent,
    TradeEventType,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from tradewatch.contracts import ModelAccount, Position, Snapshot

logger = logging.getLogger(__name__)


def _ordered_union(first: Iterable[str], second: Iterable[str]) -> list[str]:
    """Union of keys, first-seen order preserved."""
    return list(dict.fromkeys([*first, *second]))


def _fmt(value: float) -> str:
    """Compact number rendering (5.0 -> "5", 0.25 -> "0.25")."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.8f}".rstrip("0").rstrip(".")


@dataclass
class AnalyzerStats:
    """Counters from the most recent analyze() call."""

    models_checked: int = 0
    events: int = 0
    errors: int = 0
    by_type: dict[str, int] = field(default_factory=dict)


class TradeAnalyzer:
    """
    Diff engine over two snapshots.

    Errors while analysing one model or one symbol are logged and skipped;
    the rest of the comparison continues, so the result may be partial but
    never raises.
    """

    def __init__(self) -> None:
        self._stats = AnalyzerStats()

    @property
    def stats(self) -> AnalyzerStats:
        return self._stats

    def analyze(
        self,
        previous: Snapshot,
        current: Snapshot,
        watchlist: set[str] | frozenset[str] | None = None,
    ) -> list[TradeEvent]:
        """
        Derive trade events between previous and current.

        Args:
            previous: Earlier snapshot.
            current: Later snapshot.
            watchlist: Optional allow-list of model ids. None or empty means all.

        Returns:
            Ordered list of TradeEvents (empty if nothing changed).
        """
        self._stats = AnalyzerStats()
        model_ids = _ordered_union(previous.models, current.models)
        if watchlist:
            model_ids = [mid for mid in model_ids if mid in watchlist]

        logger.info(
            "Analyzing position changes",
            extra={
                "previous_models": len(previous.models),
                "current_models": len(current.models),
                "models_checked": len(model_ids),
            },
        )

        events: list[TradeEvent] = []
        for model_id in model_ids:
            self._stats.models_checked += 1
            try:
                events.extend(
                    self._analyze_model(
                        model_id,
                        previous.models.get(model_id),
                        current.models.get(model_id),
                    )
                )
            except Exception as e:
                self._stats.errors += 1
                logger.error(
                    "Model analysis failed",
                    extra={"model_id": model_id, "error": str(e)},
                )

        self._stats.events = len(events)
        for event in events:
            key = event.type.value
            self._stats.by_type[key] = self._stats.by_type.get(key, 0) + 1

        logger.info("Detected trade changes", extra={"events": len(events)})
        return events

    def _analyze_model(
        self,
        model_id: str,
        last_model: ModelAccount | None,
        current_model: ModelAccount | None,
    ) -> list[TradeEvent]:
        if last_model is None and current_model is not None:
            return [
                TradeEvent(
                    type=TradeEventType.MODEL_ADDED,
                    model_id=model_id,
                    message=f"New model {model_id} started trading",
                )
            ]
        if last_model is not None and current_model is None:
            return [
                TradeEvent(
                    type=TradeEventType.MODEL_REMOVED,
                    model_id=model_id,
                    message=f"Model {model_id} stopped trading",
                )
            ]
        if last_model is None or current_model is None:
            return []

        events: list[TradeEvent] = []
        for symbol in _ordered_union(last_model.positions, current_model.positions):
            try:
                event = self._analyze_symbol(
                    model_id,
                    symbol,
                    last_model.positions.get(symbol),
                    current_model.positions.get(symbol),
                )
            except Exception as e:
                self._stats.errors += 1
                logger.error(
                    "Symbol analysis failed",
                    extra={"model_id": model_id, "symbol": symbol, "error": str(e)},
                )
                continue
            if event is not None:
                events.append(event)
        return events

    def _analyze_symbol(
        self,
        model_id: str,
        symbol: str,
        last_pos: Position | None,
        current_pos: Position | None,
    ) -> TradeEvent | None:
        if last_pos is None and current_pos is not None:
            return self._opened(model_id, symbol, current_pos)
        if last_pos is not None and current_pos is None:
            return self._closed(model_id, symbol, last_pos)
        if last_pos is None or current_pos is None:
            return None

        if (
            last_pos.quantity == current_pos.quantity
            and last_pos.leverage == current_pos.leverage
        ):
            return None
        return self._changed(model_id, symbol, last_pos, current_pos)

    @staticmethod
    def _opened(model_id: str, symbol: str, pos: Position) -> TradeEvent:
        direction = Direction.from_quantity(pos.quantity)
        quantity = abs(pos.quantity)
        return TradeEvent(
            type=TradeEventType.POSITION_OPENED,
            model_id=model_id,
            symbol=symbol,
            direction=direction,
            quantity=quantity,
            leverage=pos.leverage,
            entry_price=pos.entry_price,
            current_price=pos.current_price,
            message=(
                f"{model_id} {symbol} opened {direction.value} {_fmt(quantity)} "
                f"(leverage: {_fmt(pos.leverage)}x, entry: {_fmt(pos.entry_price)}, "
                f"current: {_fmt(pos.current_price)})"
            ),
        )

    @staticmethod
    def _closed(model_id: str, symbol: str, pos: Position) -> TradeEvent:
        direction = Direction.from_quantity(pos.quantity)
        return TradeEvent(
            type=TradeEventType.POSITION_CLOSED,
            model_id=model_id,
            symbol=symbol,
            direction=direction,
            last_quantity=pos.quantity,
            last_leverage=pos.leverage,
            last_entry_price=pos.entry_price,
            last_current_price=pos.current_price,
            message=(
                f"{model_id} {symbol} closed ({direction.value} {_fmt(abs(pos.quantity))}, "
                f"leverage: {_fmt(pos.leverage)}x, entry: {_fmt(pos.entry_price)}, "
                f"current: {_fmt(pos.current_price)})"
            ),
        )

    @staticmethod
    def _changed(
        model_id: str,
        symbol: str,
        last_pos: Position,
        current_pos: Position,
    ) -> TradeEvent:
        action = TradeAction.classify(last_pos.quantity, current_pos.quantity)
        change = abs(current_pos.quantity - last_pos.quantity)

        if action.is_leverage_only:
            message = (
                f"{model_id} {symbol} {action.value}: "
                f"{_fmt(last_pos.leverage)}x -> {_fmt(current_pos.leverage)}x "
                f"(size: {_fmt(current_pos.quantity)}, entry: {_fmt(current_pos.entry_price)}, "
                f"current: {_fmt(current_pos.current_price)})"
            )
        else:
            message = (
                f"{model_id} {symbol} {action.value} {_fmt(change)}: "
                f"{_fmt(last_pos.quantity)} -> {_fmt(current_pos.quantity)} "
                f"(leverage: {_fmt(last_pos.leverage)}x -> {_fmt(current_pos.leverage)}x, "
                f"entry: {_fmt(last_pos.entry_price)} -> {_fmt(current_pos.entry_price)}, "
                f"current: {_fmt(current_pos.current_price)})"
            )

        return TradeEvent(
            type=TradeEventType.POSITION_CHANGED,
            model_id=model_id,
            symbol=symbol,
            action=action,
            direction=Direction.from_quantity(current_pos.quantity),
            quantity_change=change,
            last_quantity=last_pos.quantity,
            current_quantity=current_pos.quantity,
            last_leverage=last_pos.leverage,
            current_leverage=current_pos.leverage,
            last_entry_price=last_pos.entry_price,
            current_entry_price=current_pos.entry_price,
            current_price=current_pos.current_price,
            message=message,
        )


def summarize(events: Sequence[TradeEvent]) -> str:
    """Plain-text summary of events, one bullet per event (for logs)."""
    if not events:
        return "No trade changes"
    lines = [f"Detected {len(events)} trade changes:"]
    lines.extend(f"- {event.message}" for event in events)
    return "\n".join(lines)
