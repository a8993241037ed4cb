"""
Monitor configuration.

Values come from the process environment, optionally seeded from a .env
file. Missing bot token or chat id is fatal at startup.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from tradewatch.fetcher.client import DEFAULT_API_URL
from tradewatch.monitor import DEFAULT_INTERVAL_S

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def _split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class MonitorConfig:
    """Runtime configuration for monitor and bot."""

    bot_token: str = ""
    chat_id: str = ""
    admin_ids: list[str] = field(default_factory=list)
    watchlist: list[str] = field(default_factory=list)
    api_url: str = DEFAULT_API_URL
    log_level: str = "INFO"
    save_history: bool = False
    state_dir: Path = Path(".")
    history_dir: Path = Path("data")
    interval_s: float = DEFAULT_INTERVAL_S
    fetch_timeout_s: float = 60.0
    send_timeout_s: float = 10.0

    def __post_init__(self) -> None:
        if not self.bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required")
        if not self.chat_id:
            raise ValueError("TELEGRAM_CHAT_ID is required")
        self.log_level = self.log_level.upper()
        if self.log_level not in VALID_LOG_LEVELS:
            msg = f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got {self.log_level!r}"
            raise ValueError(msg)
        if not self.api_url.startswith(("http://", "https://")):
            raise ValueError(f"api_url must be an http(s) URL, got {self.api_url!r}")
        if self.interval_s <= 0:
            raise ValueError(f"interval_s must be > 0, got {self.interval_s}")
        if self.fetch_timeout_s <= 0:
            raise ValueError(f"fetch_timeout_s must be > 0, got {self.fetch_timeout_s}")
        if self.send_timeout_s <= 0:
            raise ValueError(f"send_timeout_s must be > 0, got {self.send_timeout_s}")
        self.state_dir = Path(self.state_dir)
        self.history_dir = Path(self.history_dir)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> MonitorConfig:
        """Build config from environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            bot_token=env.get("TELEGRAM_BOT_TOKEN", ""),
            chat_id=env.get("TELEGRAM_CHAT_ID", ""),
            admin_ids=_split_list(env.get("TELEGRAM_ADMIN_IDS")),
            watchlist=_split_list(env.get("MONITORED_MODELS")),
            api_url=env.get("API_URL") or DEFAULT_API_URL,
            log_level=env.get("LOG_LEVEL") or "INFO",
            save_history=(env.get("SAVE_HISTORY_DATA") or "false").lower() in _TRUE_VALUES,
            state_dir=Path(env.get("STATE_DIR") or "."),
            history_dir=Path(env.get("HISTORY_DIR") or "data"),
        )

    def describe(self) -> dict[str, object]:
        """Loggable view of the config (secrets omitted)."""
        return {
            "api_url": self.api_url,
            "chat_id": self.chat_id,
            "admins": len(self.admin_ids),
            "watchlist": ", ".join(self.watchlist) if self.watchlist else "all models",
            "log_level": self.log_level,
            "save_history": self.save_history,
            "state_dir": str(self.state_dir),
            "interval_s": self.interval_s,
        }


def load_config(env_file: Path | str | None = ".env") -> MonitorConfig:
    """
    Load configuration from env_file (if present) and the environment.

    Existing environment variables take precedence over the file.

    Raises:
        ValueError: If mandatory settings are missing or invalid.
    """
    if env_file is not None:
        path = Path(env_file)
        if path.exists():
            load_dotenv(path, override=False)
        else:
            logger.warning(
                "Env file not found, using process environment",
                extra={"path": str(path)},
            )
    return MonitorConfig.from_env()
