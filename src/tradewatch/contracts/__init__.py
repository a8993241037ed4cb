"""
Data contracts for TradeWatch.

Snapshots flow from the fetcher into the store and the analyzer; trade
events flow from the analyzer into the notifier.
"""

from __future__ import annotations

from tradewatch.contracts.events import TradeAction, TradeEvent, TradeEventType
from tradewatch.contracts.snapshot import Direction, ModelAccount, Position, Snapshot

__all__ = [
    "Direction",
    "ModelAccount",
    "Position",
    "Snapshot",
    "TradeAction",
    "TradeEvent",
    "TradeEventType",
]
