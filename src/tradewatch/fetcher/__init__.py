"""Upstream account-totals fetcher."""

from __future__ import annotations

from tradewatch.fetcher.client import (
    DEFAULT_API_URL,
    FetchResult,
    FetchStatus,
    PositionFetcher,
    compute_hourly_marker,
    normalize_payload,
)

__all__ = [
    "DEFAULT_API_URL",
    "FetchResult",
    "FetchStatus",
    "PositionFetcher",
    "compute_hourly_marker",
    "normalize_payload",
]
