"""
Snapshot contracts.

Canonical shape of one fetched capture of every model's open positions.
Snapshots are frozen once built; the diff engine always compares two
distinct instances.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, Field, model_validator


class Direction(str, Enum):
    """Position direction, derived from the sign of quantity."""

    LONG = "long"
    SHORT = "short"

    @classmethod
    def from_quantity(cls, quantity: float) -> Direction:
        return cls.LONG if quantity > 0 else cls.SHORT


class Position(BaseModel):
    """
    One model's open exposure to one symbol.

    Only quantity and leverage participate in change detection. The remaining
    fields are carried through for reports.

    Attributes:
        symbol: Traded symbol (e.g., "BTC").
        quantity: Signed size; positive is long, negative is short.
        leverage: Leverage multiplier (>= 1).
        entry_price: Average entry price.
        current_price: Latest mark price.
        margin: Margin allocated to the position.
        unrealized_pnl: Open PnL.
        closed_pnl: Realized PnL on this symbol.
        exit_plan: Opaque exit plan blob, key order preserved.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    symbol: str = Field(..., min_length=1, description="Traded symbol")
    quantity: float = Field(..., description="Signed position size")
    leverage: float = Field(default=1.0, ge=1, description="Leverage multiplier")
    entry_price: float = Field(default=0.0, description="Average entry price")
    current_price: float = Field(default=0.0, description="Latest mark price")
    margin: float = Field(default=0.0, description="Allocated margin")
    unrealized_pnl: float = Field(default=0.0, description="Open PnL")
    closed_pnl: float = Field(default=0.0, description="Realized PnL")

    risk_usd: float = 0.0
    confidence: float = 0.0
    entry_time: float = 0.0
    liquidation_price: float = 0.0
    commission: float = 0.0
    slippage: float = 0.0
    oid: int = 0
    entry_oid: int = 0
    tp_oid: int = -1
    sl_oid: int = -1
    wait_for_fill: bool = False
    index_col: Any = None
    exit_plan: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _non_zero_quantity(self) -> Position:
        if self.quantity == 0:
            raise ValueError(f"zero quantity is not a position: {self.symbol}")
        return self

    @property
    def direction(self) -> Direction:
        return Direction.from_quantity(self.quantity)

    @property
    def notional(self) -> float:
        return abs(self.quantity) * self.current_price


class ModelAccount(BaseModel):
    """
    Account record of one trading model.

    Attributes:
        id: Unique model identifier.
        timestamp: Model-reported timestamp.
        realized_pnl: Realized PnL of the whole account.
        dollar_equity: Account equity in USD.
        total_unrealized_pnl: Sum of open PnL reported upstream.
        positions: Open positions keyed by symbol.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1)
    timestamp: float = 0
    realized_pnl: float = 0.0
    dollar_equity: float = 0.0
    total_unrealized_pnl: float = 0.0
    positions: dict[str, Position] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _keys_match_symbols(self) -> ModelAccount:
        for key, position in self.positions.items():
            if key != position.symbol:
                raise ValueError(f"position key {key!r} != symbol {position.symbol!r}")
        return self

    @property
    def total_margin(self) -> float:
        return sum(p.margin for p in self.positions.values())

    @property
    def cash(self) -> float:
        return self.dollar_equity - self.total_margin


class Snapshot(BaseModel):
    """
    Point-in-time capture of all model accounts.

    Attributes:
        models: Model accounts keyed by model id.
        fetch_time: ISO-8601 UTC capture time.
        ts: Capture timestamp (epoch ms).
        raw: Verbatim upstream payload, kept for reporting only.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    models: dict[str, ModelAccount] = Field(default_factory=dict)
    fetch_time: str = ""
    ts: int = Field(default=0, ge=0)
    raw: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _keys_match_ids(self) -> Snapshot:
        for key, model in self.models.items():
            if key != model.id:
                raise ValueError(f"model key {key!r} != id {model.id!r}")
        return self

    @property
    def is_empty(self) -> bool:
        return not self.models

    def select(self, model_ids: set[str] | frozenset[str] | None) -> list[ModelAccount]:
        """Return model accounts restricted to model_ids (all when None or empty)."""
        if not model_ids:
            return list(self.models.values())
        return [m for mid, m in self.models.items() if mid in model_ids]

    def to_json(self) -> bytes:
        """Serialize to JSON bytes using orjson."""
        return orjson.dumps(self.model_dump(mode="json"), option=orjson.OPT_INDENT_2)

    @classmethod
    def from_json(cls, data: bytes | str) -> Snapshot:
        """Deserialize from JSON."""
        if isinstance(data, str):
            data = data.encode()
        return cls.model_validate(orjson.loads(data))
