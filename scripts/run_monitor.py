#!/usr/bin/env python3
"""
TradeWatch monitor entry point.

Polls the account-totals API every minute, diffs positions against the
previous snapshot and sends Telegram notifications. Optionally runs the
command bot for on-demand /report queries.

Usage:
    python -m scripts.run_monitor                  # monitor only
    python -m scripts.run_monitor --with-bot       # monitor + command bot
    python -m scripts.run_monitor --bot-only       # command bot only
    python -m scripts.run_monitor --test           # send a test notification
    python -m scripts.run_monitor --config prod.env --log-level DEBUG

Exit codes: 0 on clean shutdown or successful test, 1 on configuration or
startup failure (or a failed test notification).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from pathlib import Path

from tradewatch.bot import CommandBot
from tradewatch.config import MonitorConfig, load_config
from tradewatch.delivery import TelegramClient, TradeNotifier
from tradewatch.fetcher import PositionFetcher
from tradewatch.logging_config import setup_logging
from tradewatch.metrics import MonitorMetrics, start_metrics_server, stop_metrics_server
from tradewatch.monitor import TradingMonitor
from tradewatch.store import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """Command-line options."""

    test: bool = False
    bot_only: bool = False
    with_bot: bool = False
    log_level: str | None = None
    config_path: Path = Path(".env")
    json_logs: bool = False
    log_file: Path | None = None
    metrics_port: int = 0

    def __post_init__(self) -> None:
        if self.test and (self.bot_only or self.with_bot):
            raise ValueError("--test cannot be combined with --bot-only/--with-bot")
        if self.bot_only and self.with_bot:
            raise ValueError("--bot-only and --with-bot are mutually exclusive")
        if not 0 <= self.metrics_port <= 65535:
            raise ValueError(f"metrics_port must be 0..65535, got {self.metrics_port}")

    @property
    def run_monitor(self) -> bool:
        return not self.bot_only

    @property
    def run_bot(self) -> bool:
        return self.bot_only or self.with_bot


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Monitor AI trading model positions and notify via Telegram.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--test", action="store_true", help="Send a test notification and exit")
    parser.add_argument("--bot-only", action="store_true", help="Run only the command bot")
    parser.add_argument(
        "--with-bot",
        action="store_true",
        help="Run the command bot alongside the monitor",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: LOG_LEVEL from config, else INFO)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(".env"),
        help="Path to .env config file (default: .env)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this size-rotated file (e.g. logs/trading_monitor.log)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=0,
        help="Prometheus /metrics port (0 to disable, default: 0)",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> RunOptions:
    args = build_parser().parse_args(argv)
    return RunOptions(
        test=args.test,
        bot_only=args.bot_only,
        with_bot=args.with_bot,
        log_level=args.log_level,
        config_path=args.config,
        json_logs=args.json_logs,
        log_file=args.log_file,
        metrics_port=args.metrics_port,
    )


async def run_test(config: MonitorConfig) -> int:
    """Send one test notification. Returns exit code."""
    client = TelegramClient(config.bot_token, timeout_s=config.send_timeout_s)
    notifier = TradeNotifier(client, config.chat_id)
    try:
        ok = await notifier.send_test()
    finally:
        await client.close()
    if ok:
        logger.info("Test notification sent")
        return 0
    logger.error("Test notification failed, check token and chat id")
    return 1


async def run_service(config: MonitorConfig, options: RunOptions) -> int:
    """Run monitor and/or bot until SIGINT/SIGTERM."""
    metrics = MonitorMetrics()
    client = TelegramClient(config.bot_token, timeout_s=config.send_timeout_s)
    notifier = TradeNotifier(client, config.chat_id, metrics=metrics)
    fetchers: list[PositionFetcher] = []

    monitor: TradingMonitor | None = None
    if options.run_monitor:
        fetcher = PositionFetcher(
            config.api_url,
            save_history=config.save_history,
            history_dir=config.history_dir,
            timeout_s=config.fetch_timeout_s,
        )
        fetchers.append(fetcher)
        monitor = TradingMonitor(
            fetcher,
            SnapshotStore(config.state_dir),
            notifier,
            watchlist=config.watchlist,
            interval_s=config.interval_s,
            metrics=metrics,
        )

    bot: CommandBot | None = None
    if options.run_bot:
        bot_fetcher = PositionFetcher(config.api_url, timeout_s=config.fetch_timeout_s)
        fetchers.append(bot_fetcher)
        bot = CommandBot(
            client,
            notifier,
            bot_fetcher,
            chat_id=config.chat_id,
            admin_ids=config.admin_ids,
            watchlist=config.watchlist,
            metrics=metrics,
        )

    metrics_runner = None
    if options.metrics_port > 0:
        health_fn = monitor.get_health_info if monitor is not None else None
        metrics_runner = await start_metrics_server(
            metrics.registry, port=options.metrics_port, health_fn=health_fn
        )

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        if monitor is not None:
            await monitor.start()
        if bot is not None:
            await bot.start(announce=monitor is None)
        logger.info("Service running, press Ctrl+C to stop")
        await shutdown.wait()
        logger.info("Shutdown requested")
        return 0
    except Exception:
        logger.exception("Service failed")
        return 1
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        if bot is not None:
            await bot.stop()
        if monitor is not None:
            await monitor.stop()
        for f in fetchers:
            await f.close()
        await client.close()
        if metrics_runner is not None:
            await stop_metrics_server(metrics_runner)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        options = parse_args(argv)
    except ValueError as e:
        print(f"Invalid arguments: {e}", file=sys.stderr)
        return 1

    try:
        config = load_config(options.config_path)
    except ValueError as e:
        setup_logging(json_format=options.json_logs)
        logger.error("Configuration error: %s", e)
        return 1

    setup_logging(
        level=options.log_level or config.log_level,
        json_format=options.json_logs,
        log_file=options.log_file,
    )

    logger.info("TradeWatch starting", extra=config.describe())

    if options.test:
        return asyncio.run(run_test(config))
    return asyncio.run(run_service(config, options))


if __name__ == "__main__":
    sys.exit(main())
