"""
Trading monitor: the fetch -> persist -> diff -> notify -> promote cycle.

State machine: IDLE -> RUNNING -> STOPPED.

- start(): best-effort startup notice, then a recurring timer task
- each tick runs one cycle to completion; cycles never overlap
- stop(): cancels the timer, lets an in-flight cycle finish, best-effort
  shutdown notice

has_baseline records whether a previous snapshot exists. Without one the
cycle sends a full position report instead of a diff and promotes.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from tradewatch.analyzer import TradeAnalyzer, summarize
from tradewatch.fetcher import FetchStatus

if TYPE_CHECKING:
    from tradewatch.delivery import TradeNotifier
    from tradewatch.fetcher import PositionFetcher
    from tradewatch.metrics import MonitorMetrics
    from tradewatch.store import SnapshotStore

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 60.0


class MonitorState(str, Enum):
    """Scheduler lifecycle state."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"


class CycleOutcome(str, Enum):
    """Result of one monitor cycle."""

    OK = "ok"
    FIRST_RUN = "first_run"
    SKIPPED_FETCH_ERROR = "skipped_fetch_error"
    SKIPPED_EMPTY = "skipped_empty"
    ABORTED_PERSIST = "aborted_persist"
    FAILED = "failed"


@dataclass
class MonitorStats:
    """Counters across the monitor's lifetime."""

    cycles: int = 0
    events_detected: int = 0
    notifications_failed: int = 0
    last_outcome: CycleOutcome | None = None
    last_cycle_ts: float = 0.0


class TradingMonitor:
    """
    Drives the periodic monitor cycle.

    Args:
        fetcher: Upstream position fetcher.
        store: Two-slot snapshot store.
        notifier: Trade notifier for the default channel.
        watchlist: Optional model id allow-list.
        interval_s: Seconds between cycles.
        analyzer: Diff engine (default: TradeAnalyzer()).
        metrics: Optional Prometheus exporter.
    """

    def __init__(
        self,
        fetcher: PositionFetcher,
        store: SnapshotStore,
        notifier: TradeNotifier,
        *,
        watchlist: list[str] | None = None,
        interval_s: float = DEFAULT_INTERVAL_S,
        analyzer: TradeAnalyzer | None = None,
        metrics: MonitorMetrics | None = None,
    ) -> None:
        if interval_s <= 0:
            raise ValueError(f"interval_s must be > 0, got {interval_s}")
        self._fetcher = fetcher
        self._store = store
        self._notifier = notifier
        self._watchlist = list(watchlist or [])
        self._watch_set = frozenset(self._watchlist)
        self._interval_s = interval_s
        self._analyzer = analyzer or TradeAnalyzer()
        self._metrics = metrics

        self._state = MonitorState.IDLE
        self._has_baseline = store.has_previous()
        self._timer_task: asyncio.Task[None] | None = None
        self._cycle_lock = asyncio.Lock()
        self._stats = MonitorStats()

        if self._metrics is not None:
            self._metrics.set_has_baseline(self._has_baseline)

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def has_baseline(self) -> bool:
        return self._has_baseline

    @property
    def stats(self) -> MonitorStats:
        return self._stats

    def get_health_info(self) -> dict[str, Any]:
        """Health snapshot for /healthz."""
        return {
            "status": "ok" if self._state == MonitorState.RUNNING else self._state.value.lower(),
            "state": self._state.value,
            "has_baseline": self._has_baseline,
            "cycles": self._stats.cycles,
            "last_outcome": self._stats.last_outcome.value if self._stats.last_outcome else None,
            "last_cycle_ts": self._stats.last_cycle_ts,
        }

    async def start(self) -> None:
        """Announce startup and arm the recurring timer."""
        if self._state != MonitorState.IDLE:
            logger.warning("Monitor already started", extra={"state": self._state.value})
            return

        logger.info(
            "Starting trading monitor",
            extra={"interval_s": self._interval_s, "has_baseline": self._has_baseline},
        )
        try:
            if not await self._notifier.send_startup(
                self._fetcher.api_url, self._watchlist, self._interval_s
            ):
                logger.warning("Startup notice not delivered")
        except Exception as e:
            logger.warning("Startup notice failed", extra={"error": str(e)})

        self._timer_task = asyncio.create_task(self._timer_loop(), name="monitor-timer")
        self._state = MonitorState.RUNNING

    async def stop(self) -> None:
        """Cancel the timer and announce shutdown. Idempotent."""
        if self._state == MonitorState.STOPPED:
            return
        was_running = self._state == MonitorState.RUNNING
        self._state = MonitorState.STOPPED

        if self._timer_task is not None:
            self._timer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer_task
            self._timer_task = None

        # Let an in-flight cycle complete before announcing shutdown
        async with self._cycle_lock:
            pass

        if was_running:
            try:
                if not await self._notifier.send_shutdown():
                    logger.warning("Shutdown notice not delivered")
            except Exception as e:
                logger.warning("Shutdown notice failed", extra={"error": str(e)})
        logger.info("Trading monitor stopped")

    async def _timer_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._interval_s
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            if self._state != MonitorState.RUNNING:
                return
            # Shield so cancellation by stop() does not interrupt a running cycle
            await asyncio.shield(self.run_cycle())
            next_tick += self._interval_s
            behind = loop.time() - next_tick
            if behind >= self._interval_s:
                # At most one overdue tick runs; older missed ticks are dropped
                next_tick += (behind // self._interval_s) * self._interval_s

    async def run_cycle(self) -> CycleOutcome:
        """Run one monitor cycle. Never raises."""
        async with self._cycle_lock:
            try:
                outcome = await self._cycle()
            except Exception as e:
                logger.exception("Monitor cycle failed")
                outcome = CycleOutcome.FAILED
                with contextlib.suppress(Exception):
                    await self._notifier.send_error(str(e) or type(e).__name__)

            self._stats.cycles += 1
            self._stats.last_outcome = outcome
            if outcome in (CycleOutcome.OK, CycleOutcome.FIRST_RUN):
                self._stats.last_cycle_ts = time.time()
            if self._metrics is not None:
                self._metrics.record_cycle(outcome.value)
            return outcome

    async def _cycle(self) -> CycleOutcome:
        logger.info("Monitor cycle started")

        result = await self._fetcher.fetch_result()
        if self._metrics is not None:
            self._metrics.record_fetch(result.status.value)
        if result.status == FetchStatus.EMPTY:
            logger.info("Upstream has no model entries, skipping cycle")
            return CycleOutcome.SKIPPED_EMPTY
        if result.snapshot is None:
            logger.warning("Fetch failed, skipping cycle", extra={"error": result.error})
            return CycleOutcome.SKIPPED_FETCH_ERROR
        current = result.snapshot

        if not self._store.save_current(current):
            logger.error("Could not persist current snapshot, aborting cycle")
            return CycleOutcome.ABORTED_PERSIST

        previous = self._store.load_previous() if self._has_baseline else None
        if previous is None:
            if self._has_baseline:
                logger.warning("Baseline snapshot unreadable, treating as first run")
            logger.info("No baseline yet, sending initial position report")
            models = current.select(self._watch_set)
            if models and not await self._notifier.send_report(models):
                self._stats.notifications_failed += 1
                logger.error("Initial report not delivered")
            self._promote()
            logger.info("Monitor cycle finished (first run)")
            return CycleOutcome.FIRST_RUN

        events = self._analyzer.analyze(previous, current, self._watch_set)
        self._stats.events_detected += len(events)
        if self._metrics is not None:
            self._metrics.record_events(self._analyzer.stats.by_type)

        if events:
            logger.info("Trade details:\n%s", summarize(events))
            if not await self._notifier.send(events):
                # Dropped; the next cycle diffs against the new baseline
                self._stats.notifications_failed += 1
                logger.error("Trade notification not delivered", extra={"events": len(events)})
        else:
            logger.info("No trade changes")

        self._promote()
        logger.info("Monitor cycle finished")
        return CycleOutcome.OK

    def _promote(self) -> None:
        if self._store.promote():
            self._has_baseline = True
            if self._metrics is not None:
                self._metrics.set_has_baseline(True)
