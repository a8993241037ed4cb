"""
Upstream position fetcher.

Single GET against the account-totals endpoint per call:
- lastHourlyMarker cursor = whole hours since a fixed reference instant
- no retry; a failed call just skips the current cycle
- empty upstream data is reported separately from transport errors
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiohttp
import orjson
from pydantic import ValidationError

from tradewatch.contracts import ModelAccount, Position, Snapshot

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://nof1.ai/api/account-totals"

# Reference instant for the hourly cursor
HOURLY_MARKER_EPOCH = datetime(2025, 10, 18, 6, 0, 0, tzinfo=UTC)


def compute_hourly_marker(now: datetime | None = None) -> int:
    """Whole hours elapsed between HOURLY_MARKER_EPOCH and now."""
    now = now or datetime.now(tz=UTC)
    elapsed_s = (now - HOURLY_MARKER_EPOCH).total_seconds()
    return int(elapsed_s // 3600)


class FetchStatus(str, Enum):
    """Outcome of one fetch."""

    OK = "ok"
    EMPTY = "empty"
    ERROR = "error"


@dataclass
class FetchResult:
    """Result of a fetch attempt."""

    status: FetchStatus
    snapshot: Snapshot | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == FetchStatus.OK


def _normalize_position(symbol: str, data: dict[str, Any]) -> Position | None:
    quantity = data.get("quantity") or 0
    if quantity == 0:
        return None
    tp_oid = data.get("tp_oid")
    sl_oid = data.get("sl_oid")
    return Position(
        symbol=symbol,
        quantity=quantity,
        leverage=data.get("leverage") or 1,
        entry_price=data.get("entry_price") or 0,
        current_price=data.get("current_price") or 0,
        margin=data.get("margin") or 0,
        unrealized_pnl=data.get("unrealized_pnl") or 0,
        closed_pnl=data.get("closed_pnl") or 0,
        risk_usd=data.get("risk_usd") or 0,
        confidence=data.get("confidence") or 0,
        entry_time=data.get("entry_time") or 0,
        liquidation_price=data.get("liquidation_price") or 0,
        commission=data.get("commission") or 0,
        slippage=data.get("slippage") or 0,
        oid=data.get("oid") or 0,
        entry_oid=data.get("entry_oid") or 0,
        tp_oid=tp_oid if tp_oid is not None else -1,
        sl_oid=sl_oid if sl_oid is not None else -1,
        wait_for_fill=bool(data.get("wait_for_fill", False)),
        index_col=data.get("index_col"),
        exit_plan=data.get("exit_plan") or {},
    )


def normalize_payload(payload: dict[str, Any], *, now_ms: int | None = None) -> Snapshot:
    """
    Convert an account-totals payload into a Snapshot.

    Several records for the same model (one per hourly marker) collapse into
    the one with the greatest timestamp. Zero-quantity entries are dropped.

    Raises:
        ValueError: If the payload shape is not usable.
        pydantic.ValidationError: If a record fails contract validation.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"Expected JSON object, got {type(payload).__name__}")
    accounts = payload.get("accountTotals") or []
    if not isinstance(accounts, list):
        raise ValueError("accountTotals is not a list")

    models: dict[str, ModelAccount] = {}
    for account in accounts:
        model_id = account.get("model_id") or "unknown"
        positions: dict[str, Position] = {}
        for symbol, data in (account.get("positions") or {}).items():
            position = _normalize_position(symbol, data or {})
            if position is not None:
                positions[symbol] = position

        model = ModelAccount(
            id=model_id,
            timestamp=account.get("timestamp") or 0,
            realized_pnl=account.get("realized_pnl") or 0,
            dollar_equity=account.get("dollar_equity") or 0,
            total_unrealized_pnl=account.get("total_unrealized_pnl") or 0,
            positions=positions,
        )
        existing = models.get(model_id)
        if existing is None or model.timestamp > existing.timestamp:
            models[model_id] = model

    ts = now_ms if now_ms is not None else int(time.time() * 1000)
    return Snapshot(
        models=models,
        fetch_time=datetime.fromtimestamp(ts / 1000, tz=UTC).isoformat(timespec="milliseconds"),
        ts=ts,
        raw=payload,
    )


class PositionFetcher:
    """
    Async client for the account-totals endpoint.

    Usage:
        fetcher = PositionFetcher()
        result = await fetcher.fetch_result()
        if result.ok:
            ...
        await fetcher.close()
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        *,
        save_history: bool = False,
        history_dir: Path | str = "data",
        timeout_s: float = 60.0,
    ) -> None:
        self._api_url = api_url
        self._save_history = save_history
        self._history_dir = Path(history_dir)
        self._timeout_s = timeout_s
        self._session: aiohttp.ClientSession | None = None

    @property
    def api_url(self) -> str:
        return self._api_url

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def fetch(self) -> Snapshot | None:
        """Fetch a snapshot; None on error or empty upstream data."""
        result = await self.fetch_result()
        return result.snapshot if result.ok else None

    async def fetch_result(self) -> FetchResult:
        """Fetch and normalize one snapshot."""
        marker = compute_hourly_marker()
        params = {"lastHourlyMarker": str(marker)}
        logger.info(
            "Fetching positions",
            extra={"url": self._api_url, "hourly_marker": marker},
        )

        try:
            session = await self._get_session()
            async with session.get(self._api_url, params=params) as response:
                if response.status >= 400:
                    text = await response.text()
                    logger.error(
                        "Upstream HTTP error",
                        extra={"status": response.status, "body": text[:500]},
                    )
                    return FetchResult(FetchStatus.ERROR, error=f"HTTP {response.status}")
                body = await response.read()
            payload = orjson.loads(body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Fetch failed", extra={"error": str(e) or type(e).__name__})
            return FetchResult(FetchStatus.ERROR, error=str(e) or type(e).__name__)
        except orjson.JSONDecodeError as e:
            logger.error("Malformed upstream response", extra={"error": str(e)})
            return FetchResult(FetchStatus.ERROR, error=f"Malformed JSON: {e}")

        try:
            snapshot = normalize_payload(payload)
        except (ValueError, ValidationError, AttributeError) as e:
            logger.error("Failed to normalize payload", extra={"error": str(e)})
            return FetchResult(FetchStatus.ERROR, error=f"Normalize failed: {e}")

        if snapshot.is_empty:
            logger.warning("Upstream returned no model entries")
            return FetchResult(FetchStatus.EMPTY)

        logger.info("Fetched positions", extra={"models": len(snapshot.models)})

        if self._save_history:
            self.archive(payload)

        return FetchResult(FetchStatus.OK, snapshot=snapshot)

    def archive(self, payload: dict[str, Any], now: datetime | None = None) -> Path | None:
        """Write the raw payload to a timestamped file under history_dir."""
        now = now or datetime.now(tz=UTC)
        filename = self._history_dir / f"positions_{now.strftime('%Y-%m-%dT%H-%M-%S')}.json"
        try:
            self._history_dir.mkdir(parents=True, exist_ok=True)
            filename.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        except OSError as e:
            logger.error("Failed to archive payload", extra={"error": str(e)})
            return None
        logger.debug("Archived payload", extra={"path": str(filename)})
        return filename
