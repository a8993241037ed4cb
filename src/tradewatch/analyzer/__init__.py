"""Position diff engine."""

from __future__ import annotations

from tradewatch.analyzer.diff import AnalyzerStats, TradeAnalyzer, summarize

__all__ = ["AnalyzerStats", "TradeAnalyzer", "summarize"]
