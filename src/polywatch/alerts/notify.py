"""Notification sinks. Any delivery problem surfaces as SinkFailure."""

from __future__ import annotations

from typing import Protocol

import httpx
import structlog

log = structlog.get_logger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
TELEGRAM_MAX_TEXT = 4096


class SinkFailure(Exception):
    """The notification channel rejected or never received the message."""


class Notifier(Protocol):
    async def notify(self, text: str) -> None: ...


class LogNotifier:
    """Writes alerts to the log stream. Used when no channel is configured."""

    def __init__(self) -> None:
        self.sent: list[str] = []

    async def notify(self, text: str) -> None:
        self.sent.append(text)
        log.info("alert", text=text)


class TelegramNotifier:
    """Telegram Bot API sendMessage, HTML parse mode."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        api_base: str = TELEGRAM_API_BASE,
    ) -> None:
        self.chat_id = chat_id
        self.timeout = timeout
        self._url = f"{api_base.rstrip('/')}/bot{bot_token}/sendMessage"
        self._client = client or httpx.AsyncClient()

    async def notify(self, text: str) -> None:
        payload = {
            "chat_id": self.chat_id,
            "text": text[:TELEGRAM_MAX_TEXT],
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            resp = await self._client.post(self._url, json=payload, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise SinkFailure(f"telegram send failed: {type(e).__name__}: {e}") from e
        if not resp.is_success:
            raise SinkFailure(f"telegram HTTP {resp.status_code}: {resp.text[:300]}")

    async def aclose(self) -> None:
        await self._client.aclose()
