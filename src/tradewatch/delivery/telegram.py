"""
Telegram Bot API client.

sendMessage for outbound notices and getUpdates long-polling for inbound
commands. One request per call, no automatic retries; the caller's schedule
is the retry cadence.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


@dataclass
class DeliveryResult:
    """Result of a delivery attempt."""

    success: bool
    chat_id: str
    error: str | None = None
    status_code: int | None = None
    retry_after_s: float | None = None  # For rate limit responses


class TelegramClient:
    """
    Minimal async Telegram Bot API client.

    Uses HTML parse mode by default and never expands link previews.
    """

    def __init__(
        self,
        bot_token: str,
        *,
        timeout_s: float = 10.0,
        poll_timeout_s: int = 30,
        api_base: str = TELEGRAM_API_BASE,
    ) -> None:
        if not bot_token:
            raise ValueError("bot_token required")
        self._bot_token = bot_token
        self._timeout_s = timeout_s
        self._poll_timeout_s = poll_timeout_s
        self._api_base = api_base.rstrip("/")
        self._session: aiohttp.ClientSession | None = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(api_base={self._api_base!r})"

    def _url(self, method: str) -> str:
        return f"{self._api_base}/bot{self._bot_token}/{method}"

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def send_message(
        self,
        chat_id: str,
        text: str,
        *,
        parse_mode: str | None = "HTML",
    ) -> DeliveryResult:
        """Send text to chat_id. Never raises on transport errors."""
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode

        try:
            session = await self._get_session()
            timeout = aiohttp.ClientTimeout(total=self._timeout_s)
            async with session.post(
                self._url("sendMessage"), json=payload, timeout=timeout
            ) as resp:
                status = resp.status
                try:
                    data = await resp.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError):
                    data = {}
                if not isinstance(data, dict):
                    data = {}

                if status == 200 and data.get("ok"):
                    return DeliveryResult(success=True, chat_id=chat_id, status_code=status)

                description = data.get("description") or "unknown error"
                retry_after = None
                if status == 429:
                    retry_after = data.get("parameters", {}).get("retry_after")
                    logger.warning(
                        "Telegram rate limited",
                        extra={"retry_after": retry_after},
                    )
                logger.error(
                    "Telegram send failed",
                    extra={"status": status, "error": description},
                )
                return DeliveryResult(
                    success=False,
                    chat_id=chat_id,
                    error=f"HTTP {status}: {description[:200]}",
                    status_code=status,
                    retry_after_s=retry_after,
                )

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(
                "Telegram connection error",
                extra={"error": str(e) or type(e).__name__},
            )
            return DeliveryResult(
                success=False,
                chat_id=chat_id,
                error=f"Connection error: {str(e) or type(e).__name__}",
            )

    async def get_updates(self, offset: int) -> list[dict[str, Any]]:
        """
        Long-poll for message updates starting at offset.

        Raises:
            aiohttp.ClientError: On transport errors.
            asyncio.TimeoutError: If the long poll overruns its HTTP timeout.
        """
        params = {
            "offset": str(offset),
            "timeout": str(self._poll_timeout_s),
            "allowed_updates": '["message"]',
        }
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=self._poll_timeout_s + 5)
        async with session.get(self._url("getUpdates"), params=params, timeout=timeout) as resp:
            data = await resp.json(content_type=None)

        if not isinstance(data, dict):
            data = {}
        if not data.get("ok"):
            logger.error(
                "getUpdates rejected",
                extra={"status": resp.status, "error": data.get("description", "")},
            )
            return []
        result: list[dict[str, Any]] = data.get("result") or []
        return result

    async def close(self) -> None:
        """Close aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
