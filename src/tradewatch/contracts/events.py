"""
Trade event contracts.

A TradeEvent is one classified change between two snapshots, scoped to a
model or to a model-symbol pair.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

import orjson
from pydantic import BaseModel, ConfigDict, Field

from tradewatch.contracts.snapshot import Direction  # noqa: TC001


class TradeEventType(str, Enum):
    """Kind of change detected between two snapshots."""

    MODEL_ADDED = "model_added"
    MODEL_REMOVED = "model_removed"
    POSITION_OPENED = "position_opened"
    POSITION_CLOSED = "position_closed"
    POSITION_CHANGED = "position_changed"


class TradeAction(str, Enum):
    """Sub-action of a position_changed event."""

    ADD_LONG = "add to long"
    ADD_SHORT = "add to short"
    REDUCE_LONG = "reduce long"
    REDUCE_SHORT = "reduce short"
    ADJUST_LONG_LEVERAGE = "adjust long leverage"
    ADJUST_SHORT_LEVERAGE = "adjust short leverage"

    @property
    def is_leverage_only(self) -> bool:
        return self in (TradeAction.ADJUST_LONG_LEVERAGE, TradeAction.ADJUST_SHORT_LEVERAGE)

    @property
    def polarity(self) -> str | None:
        """Order side implied by the action: "buy", "sell", or None for leverage-only."""
        if self in (TradeAction.ADD_LONG, TradeAction.ADD_SHORT):
            return "buy"
        if self in (TradeAction.REDUCE_LONG, TradeAction.REDUCE_SHORT):
            return "sell"
        return None

    @classmethod
    def classify(cls, last_quantity: float, current_quantity: float) -> TradeAction:
        """Classify a quantity transition by the sign of the delta.

        A sign flip (e.g. 5 -> -5) is one transition, not a close plus an open.
        """
        delta = current_quantity - last_quantity
        long_now = current_quantity > 0
        if delta > 0:
            return cls.ADD_LONG if long_now else cls.ADD_SHORT
        if delta < 0:
            return cls.REDUCE_LONG if long_now else cls.REDUCE_SHORT
        return cls.ADJUST_LONG_LEVERAGE if long_now else cls.ADJUST_SHORT_LEVERAGE


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds")


class TradeEvent(BaseModel):
    """
    Derived change for one model or one model-symbol pair.

    Fields not relevant to the event's kind stay None:
    - position_opened: direction, quantity, leverage, entry_price, current_price
    - position_closed: direction, last_quantity, last_leverage,
      last_entry_price, last_current_price
    - position_changed: action, quantity_change, last/current quantity,
      last/current leverage, last/current entry price, current_price
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: TradeEventType
    model_id: str = Field(..., min_length=1)
    symbol: str | None = None
    action: TradeAction | None = None
    direction: Direction | None = None

    quantity: float | None = None
    leverage: float | None = None
    entry_price: float | None = None
    current_price: float | None = None

    quantity_change: float | None = Field(default=None, ge=0)
    last_quantity: float | None = None
    current_quantity: float | None = None
    last_leverage: float | None = None
    current_leverage: float | None = None
    last_entry_price: float | None = None
    current_entry_price: float | None = None
    last_current_price: float | None = None

    message: str = ""
    timestamp: str = Field(default_factory=_utc_now_iso)

    def to_json(self) -> bytes:
        """Serialize to JSON bytes using orjson."""
        return orjson.dumps(self.model_dump(mode="json", exclude_none=True))

    @classmethod
    def from_json(cls, data: bytes | str) -> TradeEvent:
        """Deserialize from JSON."""
        if isinstance(data, str):
            data = data.encode()
        return cls.model_validate(orjson.loads(data))
