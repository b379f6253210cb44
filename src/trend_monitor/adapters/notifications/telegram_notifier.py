"""Telegram Bot API notification adapter."""

from dataclasses import dataclass
from typing import Mapping, Optional

import httpx
from loguru import logger

from trend_monitor.core.interfaces import NotificationService, SendResult

API_BASE = "https://api.telegram.org"
SEND_TIMEOUT = 8.0

TARGET_ALIASES = {
    "development": "dev",
    "main": "dev",
    "live": "dev",
    "sub1": "anki",
    "trend": "research",
    "researcher": "research",
    "main_bak": "dev_bak",
    "sub1_bak": "anki_bak",
}

# Environment keys tried in order for each delivery profile: (token keys, chat id keys)
PROFILE_ENV: dict[str, tuple[list[str], list[str]]] = {
    "dev": (
        ["TELEGRAM_BOT_TOKEN_DEV", "TELEGRAM_BOT_TOKEN"],
        ["TELEGRAM_USER_ID_DEV", "TELEGRAM_USER_ID"],
    ),
    "anki": (
        ["TELEGRAM_BOT_TOKEN_ANKI", "TELEGRAM_BOT_TOKEN_SUB1"],
        ["TELEGRAM_USER_ID_ANKI", "TELEGRAM_USER_ID_SUB1", "TELEGRAM_USER_ID"],
    ),
    "research": (
        ["TELEGRAM_BOT_TOKEN_TREND", "TELEGRAM_BOT_TOKEN_RESEARCH"],
        ["TELEGRAM_USER_ID_TREND", "TELEGRAM_USER_ID_RESEARCH", "TELEGRAM_USER_ID"],
    ),
    "daily": (
        ["TELEGRAM_BOT_TOKEN_DAILY"],
        ["TELEGRAM_USER_ID_DAILY", "TELEGRAM_USER_ID"],
    ),
    "dev_bak": (
        ["TELEGRAM_BOT_TOKEN_DEV_BAK", "TELEGRAM_BOT_TOKEN_MAIN_BAK"],
        ["TELEGRAM_USER_ID_DEV_BAK", "TELEGRAM_USER_ID_MAIN_BAK", "TELEGRAM_USER_ID"],
    ),
    "anki_bak": (
        ["TELEGRAM_BOT_TOKEN_ANKI_BAK", "TELEGRAM_BOT_TOKEN_SUB1_BAK"],
        ["TELEGRAM_USER_ID_ANKI_BAK", "TELEGRAM_USER_ID_SUB1_BAK", "TELEGRAM_USER_ID_SUB1", "TELEGRAM_USER_ID"],
    ),
    "research_bak": (
        ["TELEGRAM_BOT_TOKEN_TREND_BAK", "TELEGRAM_BOT_TOKEN_RESEARCH_BAK"],
        ["TELEGRAM_USER_ID_TREND_BAK", "TELEGRAM_USER_ID_RESEARCH_BAK", "TELEGRAM_USER_ID_RESEARCH", "TELEGRAM_USER_ID"],
    ),
    "daily_bak": (
        ["TELEGRAM_BOT_TOKEN_DAILY_BAK"],
        ["TELEGRAM_USER_ID_DAILY_BAK", "TELEGRAM_USER_ID_DAILY", "TELEGRAM_USER_ID"],
    ),
}


@dataclass
class TelegramProfile:
    """Credential pair resolved for a named target."""

    target: str
    token: str
    chat_id: str
    token_key: str
    chat_key: str

    @property
    def complete(self) -> bool:
        return bool(self.token and self.chat_id)

    @property
    def missing_reason(self) -> str:
        return f"missing_credentials:{self.token_key}:{self.chat_key}"


def _first_set(env: Mapping[str, str], keys: list[str]) -> tuple[str, str]:
    for key in keys:
        value = str(env.get(key) or "").strip()
        if value:
            return key, value
    return keys[0], ""


def resolve_profile(target: str, env: Mapping[str, str]) -> TelegramProfile:
    """Map a target name (or alias) to its credentials; unknown targets use ``research``."""
    name = (target or "research").strip().lower()
    name = TARGET_ALIASES.get(name, name)
    if name not in PROFILE_ENV:
        name = "research"

    token_keys, chat_keys = PROFILE_ENV[name]
    token_key, token = _first_set(env, token_keys)
    chat_key, chat_id = _first_set(env, chat_keys)
    return TelegramProfile(target=name, token=token, chat_id=chat_id, token_key=token_key, chat_key=chat_key)


class TelegramNotifier(NotificationService):
    """Send messages through the Telegram Bot API."""

    def __init__(self, token: str, chat_id: str, timeout: float = SEND_TIMEOUT) -> None:
        """Initialize Telegram notifier.

        Args:
            token: Bot token.
            chat_id: Recipient chat id.
            timeout: Request timeout in seconds.
        """
        self.token = token
        self.chat_id = chat_id
        self.timeout = timeout

    @classmethod
    def from_profile(cls, profile: TelegramProfile) -> Optional["TelegramNotifier"]:
        return cls(profile.token, profile.chat_id) if profile.complete else None

    async def send(self, text: str) -> SendResult:
        """Send one message.

        Args:
            text: Message body (plain text).

        Returns:
            SendResult; transport and API errors are reported, not raised.
        """
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(f"{API_BASE}/bot{self.token}/sendMessage", json=payload)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.warning(f"Telegram send failed: HTTP {e.response.status_code}")
                return SendResult(sent=False, status_code=e.response.status_code, reason="http_error")
            except httpx.HTTPError as e:
                logger.warning(f"Telegram send failed: {e}")
                return SendResult(sent=False, reason=str(e) or e.__class__.__name__)

        logger.info("Message sent to Telegram")
        return SendResult(sent=True, status_code=response.status_code, reason="sent")
