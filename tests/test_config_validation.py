"""
Config validation tests for MonitorConfig.

Covers mandatory Telegram settings, env parsing, and .env loading precedence.
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

import pytest

from tradewatch.config import MonitorConfig, load_config
from tradewatch.fetcher import DEFAULT_API_URL

BASE_ENV = {"TELEGRAM_BOT_TOKEN": "123:abc", "TELEGRAM_CHAT_ID": "-100"}


class TestConfigValidation:
    """MonitorConfig.__post_init__ validation."""

    def test_minimal_config_valid(self) -> None:
        config = MonitorConfig(bot_token="t", chat_id="c")
        assert config.api_url == DEFAULT_API_URL
        assert config.interval_s == 60
        assert config.fetch_timeout_s == 60
        assert config.send_timeout_s == 10
        assert config.watchlist == []

    def test_missing_token(self) -> None:
        with pytest.raises(ValueError, match="TELEGRAM_BOT_TOKEN is required"):
            MonitorConfig(chat_id="c")

    def test_missing_chat_id(self) -> None:
        with pytest.raises(ValueError, match="TELEGRAM_CHAT_ID is required"):
            MonitorConfig(bot_token="t")

    def test_log_level_normalized(self) -> None:
        assert MonitorConfig(bot_token="t", chat_id="c", log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValueError, match="log_level"):
            MonitorConfig(bot_token="t", chat_id="c", log_level="LOUD")

    def test_invalid_api_url(self) -> None:
        with pytest.raises(ValueError, match="api_url"):
            MonitorConfig(bot_token="t", chat_id="c", api_url="ftp://x")

    @pytest.mark.parametrize("field", ["interval_s", "fetch_timeout_s", "send_timeout_s"])
    def test_non_positive_durations(self, field: str) -> None:
        with pytest.raises(ValueError, match=field):
            MonitorConfig(bot_token="t", chat_id="c", **{field: 0})

    def test_describe_omits_token(self) -> None:
        config = MonitorConfig(bot_token="123:secret", chat_id="c", watchlist=["A", "B"])
        described = config.describe()
        assert "123:secret" not in str(described)
        assert described["watchlist"] == "A, B"


class TestFromEnv:
    """MonitorConfig.from_env parsing."""

    def test_full_env(self) -> None:
        env = {
            **BASE_ENV,
            "TELEGRAM_ADMIN_IDS": "1, 2,,3",
            "MONITORED_MODELS": "gpt-5,claude-sonnet-4-5",
            "API_URL": "http://localhost:8080/api",
            "LOG_LEVEL": "warning",
            "SAVE_HISTORY_DATA": "true",
            "STATE_DIR": "/var/lib/tradewatch",
            "HISTORY_DIR": "/var/lib/tradewatch/data",
        }

        config = MonitorConfig.from_env(env)

        assert config.bot_token == "123:abc"
        assert config.chat_id == "-100"
        assert config.admin_ids == ["1", "2", "3"]
        assert config.watchlist == ["gpt-5", "claude-sonnet-4-5"]
        assert config.api_url == "http://localhost:8080/api"
        assert config.log_level == "WARNING"
        assert config.save_history is True
        assert config.state_dir == Path("/var/lib/tradewatch")
        assert config.history_dir == Path("/var/lib/tradewatch/data")

    def test_defaults(self) -> None:
        config = MonitorConfig.from_env(BASE_ENV)

        assert config.admin_ids == []
        assert config.watchlist == []
        assert config.api_url == DEFAULT_API_URL
        assert config.save_history is False
        assert config.history_dir == Path("data")

    @pytest.mark.parametrize(("raw", "expected"), [("1", True), ("FALSE", False), ("no", False)])
    def test_save_history_flag(self, raw: str, expected: bool) -> None:
        config = MonitorConfig.from_env({**BASE_ENV, "SAVE_HISTORY_DATA": raw})
        assert config.save_history is expected

    def test_missing_token_in_env(self) -> None:
        with pytest.raises(ValueError, match="TELEGRAM_BOT_TOKEN"):
            MonitorConfig.from_env({"TELEGRAM_CHAT_ID": "-100"})


class TestLoadConfig:
    """load_config with .env files."""

    def test_env_file_loaded(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("TELEGRAM_BOT_TOKEN=file-token\nTELEGRAM_CHAT_ID=@feed\n")

        with mock.patch.dict(os.environ, {}, clear=True):
            config = load_config(env_file)

        assert config.bot_token == "file-token"
        assert config.chat_id == "@feed"

    def test_environment_wins_over_file(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("TELEGRAM_BOT_TOKEN=file-token\nTELEGRAM_CHAT_ID=@feed\n")

        with mock.patch.dict(os.environ, {"TELEGRAM_BOT_TOKEN": "env-token"}, clear=True):
            config = load_config(env_file)

        assert config.bot_token == "env-token"

    def test_missing_file_uses_environment(self, tmp_path: Path) -> None:
        with mock.patch.dict(os.environ, BASE_ENV, clear=True):
            config = load_config(tmp_path / "missing.env")

        assert config.chat_id == "-100"

    def test_missing_everything_fails(self, tmp_path: Path) -> None:
        with (
            mock.patch.dict(os.environ, {}, clear=True),
            pytest.raises(ValueError, match="is required"),
        ):
            load_config(tmp_path / "missing.env")
