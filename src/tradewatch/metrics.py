"""
Prometheus metrics for the monitor and a small /metrics + /healthz server.

Labels are low-cardinality only (status, kind, event type); model ids and
symbols never become label values.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web
from prometheus_client import Counter, Gauge, generate_latest
from prometheus_client.registry import CollectorRegistry

logger = logging.getLogger(__name__)

# Type alias for aiohttp handler
_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

# Type alias for health info callback
HealthFn = Callable[[], dict[str, Any]]


class MonitorMetrics:
    """
    Prometheus exporter for monitor, notifier and bot activity.

    Usage:
        registry = CollectorRegistry()
        metrics = MonitorMetrics(registry=registry)
        metrics.record_cycle("ok")
        # generate_latest(registry) -> bytes for /metrics endpoint
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

        self._cycles = Counter(
            "tradewatch_cycles",
            "Monitor cycles by outcome",
            ["outcome"],
            registry=self._registry,
        )
        self._fetches = Counter(
            "tradewatch_fetches",
            "Upstream fetches by status",
            ["status"],
            registry=self._registry,
        )
        self._events = Counter(
            "tradewatch_trade_events",
            "Trade events detected by type",
            ["type"],
            registry=self._registry,
        )
        self._notifications = Counter(
            "tradewatch_notifications",
            "Outbound messages by kind and result",
            ["kind", "result"],
            registry=self._registry,
        )
        self._commands = Counter(
            "tradewatch_bot_commands",
            "Bot commands handled",
            ["command"],
            registry=self._registry,
        )
        self._has_baseline = Gauge(
            "tradewatch_has_baseline",
            "1 when a previous snapshot is available for diffing",
            registry=self._registry,
        )
        self._last_cycle_ts = Gauge(
            "tradewatch_last_successful_cycle_timestamp_seconds",
            "Unix time of the last completed monitor cycle",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_cycle(self, outcome: str) -> None:
        self._cycles.labels(outcome=outcome).inc()
        if outcome in ("ok", "first_run"):
            self._last_cycle_ts.set_to_current_time()

    def record_fetch(self, status: str) -> None:
        self._fetches.labels(status=status).inc()

    def record_events(self, by_type: dict[str, int]) -> None:
        for event_type, count in by_type.items():
            self._events.labels(type=event_type).inc(count)

    def record_notification(self, kind: str, success: bool) -> None:
        self._notifications.labels(kind=kind, result="ok" if success else "failed").inc()

    def record_command(self, command: str) -> None:
        self._commands.labels(command=command).inc()

    def set_has_baseline(self, value: bool) -> None:
        self._has_baseline.set(1 if value else 0)


def _make_metrics_handler(registry: CollectorRegistry) -> _Handler:
    """Create GET /metrics handler bound to a registry."""

    async def handler(request: web.Request) -> web.Response:
        body = generate_latest(registry)
        return web.Response(
            body=body,
            content_type="text/plain; version=0.0.4",
            charset="utf-8",
        )

    return handler


def _make_healthz_handler(health_fn: HealthFn | None = None) -> _Handler:
    """Create GET /healthz handler."""

    async def handler(request: web.Request) -> web.Response:
        info = health_fn() if health_fn is not None else {"status": "ok"}
        return web.Response(
            body=json.dumps(info),
            content_type="application/json",
        )

    return handler


def create_metrics_app(
    registry: CollectorRegistry,
    *,
    health_fn: HealthFn | None = None,
) -> web.Application:
    """Create aiohttp Application with /metrics and /healthz routes."""
    app = web.Application()
    app.router.add_get("/metrics", _make_metrics_handler(registry))
    app.router.add_get("/healthz", _make_healthz_handler(health_fn))
    return app


async def start_metrics_server(
    registry: CollectorRegistry,
    host: str = "0.0.0.0",
    port: int = 9090,
    *,
    health_fn: HealthFn | None = None,
) -> web.AppRunner:
    """
    Start the metrics HTTP server.

    Returns:
        AppRunner (pass to stop_metrics_server on shutdown).
    """
    app = create_metrics_app(registry, health_fn=health_fn)
    runner = web.AppRunner(app, access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("Metrics server started on http://%s:%d/metrics", host, port)
    return runner


async def stop_metrics_server(runner: web.AppRunner) -> None:
    await runner.cleanup()
    logger.info("Metrics server stopped")
