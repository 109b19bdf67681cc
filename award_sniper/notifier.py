from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Protocol, Union

from telegram import Bot

logger = logging.getLogger(__name__)

MAX_LINES_PER_MESSAGE = 35

ChatId = Union[int, str]


class Notifier(Protocol):
    def send(self, chat_id: ChatId, text: str) -> None: ...


def split_chunks(text: str, max_lines: int = MAX_LINES_PER_MESSAGE) -> List[str]:
    """Split *text* into messages of at most *max_lines* lines."""
    lines = text.rstrip("\n").split("\n")
    return ["\n".join(lines[i : i + max_lines]) for i in range(0, len(lines), max_lines)]


class TelegramNotifier:
    """Send messages through the Telegram Bot API."""

    def __init__(self, token: str, parse_mode: str = "Markdown") -> None:
        self.token = token
        self.parse_mode = parse_mode

    def send(self, chat_id: ChatId, text: str) -> None:
        asyncio.run(self._send(chat_id, text))

    async def _send(self, chat_id: ChatId, text: str) -> None:
        bot = Bot(token=self.token)
        async with bot:
            for chunk in split_chunks(text):
                await bot.send_message(chat_id=chat_id, text=chunk, parse_mode=self.parse_mode)


class EchoNotifier:
    """Write messages to a callable instead of a chat (CLI use)."""

    def __init__(self, echo: Callable[[str], None]) -> None:
        self.echo = echo

    def send(self, chat_id: ChatId, text: str) -> None:
        logger.debug("Message for %s", chat_id)
        self.echo(text)


__all__ = ["Notifier", "TelegramNotifier", "EchoNotifier", "split_chunks"]
