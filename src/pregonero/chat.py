"""Canal de chat para anuncios de la elección."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from .errors import SendError

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_SECONDS = 1.0
DEFAULT_REQUEST_TIMEOUT = 10.0
TELEGRAM_MAX_LENGTH = 4096

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"


class ChatChannel(Protocol):
    """Contrato del canal de chat.

    English: Fire-and-forget delivery; failures raise ``SendError``.
    """

    async def send(self, text: str) -> None: ...


@dataclass(frozen=True)
class TelegramConfig:
    """Español: Configuración del canal de Telegram.

    English: Telegram channel configuration.
    """

    bot_token: str
    chat_id: str
    parse_mode: Optional[str] = "Markdown"
    rate_limit_seconds: float = DEFAULT_RATE_LIMIT_SECONDS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT


class TelegramChannel:
    """Canal de anuncios sobre la Bot API de Telegram."""

    def __init__(
        self,
        config: TelegramConfig,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.request_timeout)
        self._lock = asyncio.Lock()
        self._last_sent_at = 0.0

    @property
    def config(self) -> TelegramConfig:
        return self._config

    def is_configured(self) -> bool:
        return bool(self._config.bot_token and self._config.chat_id)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def send(self, text: str) -> None:
        """Envía un mensaje; no reintenta.

        English: Sends one message. No retry: a failed delivery raises
        ``SendError`` and the caller logs it.
        """
        if not self.is_configured():
            raise SendError("Telegram channel is not configured")

        payload = {
            "chat_id": self._config.chat_id,
            "text": _truncate_for_telegram(text),
            "disable_web_page_preview": "true",
        }
        if self._config.parse_mode:
            payload["parse_mode"] = self._config.parse_mode

        await self._rate_limit()
        try:
            response = await self._client.post(
                TELEGRAM_API_URL.format(token=self._config.bot_token),
                data=payload,
            )
        except httpx.RequestError as exc:
            raise SendError(f"chat_request_failed: {exc}") from exc

        if not response.is_success:
            raise SendError(
                f"chat_send_failed status={response.status_code}",
                status_code=response.status_code,
            )
        logger.info("chat_message_sent chars=%s", len(payload["text"]))

    async def _rate_limit(self) -> None:
        async with self._lock:
            wait = self._config.rate_limit_seconds - (time.monotonic() - self._last_sent_at)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_sent_at = time.monotonic()


async def send_safely(channel: ChatChannel, text: str, *, event: str = "announcement") -> bool:
    """Envía y registra ``SendError`` sin propagarlo.

    English: Send and log a ``SendError`` instead of raising it. Returns True
    when the message was delivered.
    """
    try:
        await channel.send(text)
    except SendError as exc:
        logger.error("chat_send_error event=%s status=%s error=%s", event, exc.status_code, exc)
        return False
    return True


def _truncate_for_telegram(message: str, max_len: int = TELEGRAM_MAX_LENGTH) -> str:
    if len(message) <= max_len:
        return message
    trimmed = message[: max_len - 20].rstrip()
    return f"{trimmed}\n...(truncated)..."
