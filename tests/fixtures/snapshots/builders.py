"""
Builders for deterministic test snapshots.

Positions are given compactly as {symbol: (quantity, leverage)} or
{symbol: dict of Position fields}.
"""

from __future__ import annotations

from typing import Any

from tradewatch.contracts import ModelAccount, Position, Snapshot

FIXED_TS = 1760800000000


def make_position(symbol: str, quantity: float, leverage: float = 1.0, **kwargs: Any) -> Position:
    fields: dict[str, Any] = {
        "entry_price": 100.0,
        "current_price": 101.0,
        "margin": 50.0,
    }
    fields.update(kwargs)
    return Position(symbol=symbol, quantity=quantity, leverage=leverage, **fields)


def make_model(
    model_id: str,
    positions: dict[str, tuple[float, float] | dict[str, Any]] | None = None,
    **kwargs: Any,
) -> ModelAccount:
    built: dict[str, Position] = {}
    for symbol, entry in (positions or {}).items():
        if isinstance(entry, dict):
            entry = dict(entry)
            quantity = entry.pop("quantity")
            leverage = entry.pop("leverage", 1.0)
            built[symbol] = make_position(symbol, quantity, leverage, **entry)
        else:
            quantity, leverage = entry
            built[symbol] = make_position(symbol, quantity, leverage)
    fields: dict[str, Any] = {"timestamp": 1760800000, "dollar_equity": 10000.0}
    fields.update(kwargs)
    return ModelAccount(id=model_id, positions=built, **fields)


def make_snapshot(
    models: dict[str, dict[str, tuple[float, float] | dict[str, Any]]] | None = None,
    ts: int = FIXED_TS,
) -> Snapshot:
    """Snapshot from {model_id: {symbol: (quantity, leverage)}}."""
    return Snapshot(
        models={mid: make_model(mid, positions) for mid, positions in (models or {}).items()},
        fetch_time="2025-10-18T15:06:40.000+00:00",
        ts=ts,
    )


def account_payload(
    model_id: str,
    positions: dict[str, dict[str, Any]] | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """One upstream accountTotals record."""
    record: dict[str, Any] = {
        "model_id": model_id,
        "timestamp": 1760800000,
        "realized_pnl": 12.5,
        "dollar_equity": 10250.0,
        "total_unrealized_pnl": 37.5,
        "positions": positions or {},
    }
    record.update(kwargs)
    return record
