"""Stamp Notifier — Telegram Bot Client.

Async Telegram client using python-telegram-bot v22+.
Sends text and photo messages to the configured chat with retry on
flood control and network errors, message splitting, and HTML fallback
to plain text. Terminal failures raise DispatchError so callers can
decide what a failed send means for them.
"""

from __future__ import annotations

import asyncio
import re
from datetime import timedelta
from typing import Optional

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import (
    BadRequest,
    NetworkError,
    RetryAfter,
    TelegramError,
    TimedOut,
)

from stamp_notifier.config import TelegramConfig
from stamp_notifier.notifier.formatters import PHOTO, NotificationPayload
from stamp_notifier.utils.logger import get_logger

logger = get_logger(__name__)

_SAFE_LEN = 4000  # sendMessage limit is 4096, leave headroom
_CAPTION_LEN = 1024
_MAX_RETRIES = 3
_BACKOFF_BASE = 1.0


class DispatchError(Exception):
    """A message could not be delivered to the channel."""


class TelegramNotifier:
    """Sends notifications to one Telegram chat.

    Safe for interleaved use by the posting cycle and the HTTP relay:
    no per-call state is kept on the instance.

    Attributes:
        config: TelegramConfig with bot_token and chat_id.
    """

    def __init__(self, config: TelegramConfig, bot: Optional[Bot] = None) -> None:
        """Initialize the notifier.

        Args:
            config: TelegramConfig from the app configuration.
            bot: Existing Bot to reuse (e.g. an Application's bot).
                A new one is created from the token when omitted.
        """
        self.config = config
        self._bot = bot if bot is not None else Bot(token=config.bot_token)

    async def initialize(self) -> bool:
        """Verify the token with getMe.

        Returns:
            True if connected successfully, False otherwise.
        """
        try:
            await self._bot.initialize()
            me = await self._bot.get_me()
            logger.info("Telegram bot connected: @%s", me.username)
            return True
        except TelegramError as e:
            logger.error("Telegram bot connection failed: %s", e)
            return False

    async def close(self) -> None:
        try:
            await self._bot.shutdown()
        except TelegramError as e:
            logger.warning("Error closing Telegram bot: %s", e)

    async def send(self, payload: NotificationPayload) -> str:
        """Deliver a composed payload.

        Raises:
            DispatchError: If delivery failed.
        """
        if payload.kind == PHOTO and payload.url:
            return await self.send_photo(payload.url, payload.body)
        return await self.send_message(payload.body)

    async def send_message(self, text: str, disable_preview: bool = False) -> str:
        """Send an HTML message, splitting it at line boundaries when long.

        Args:
            text: Message content in Telegram HTML.
            disable_preview: Whether to disable link previews.

        Returns:
            Message ID of the last chunk sent.

        Raises:
            DispatchError: If the text is empty or any chunk fails.
        """
        if not text or not text.strip():
            raise DispatchError("Refusing to send an empty message")

        chunks = self._split_message(text, _SAFE_LEN)
        msg_id = ""
        for i, chunk in enumerate(chunks):
            msg_id = await self._send_with_retry(
                "message",
                lambda parse_mode, body: self._bot.send_message(
                    chat_id=self.config.chat_id,
                    text=body,
                    parse_mode=parse_mode,
                    disable_web_page_preview=disable_preview,
                ),
                chunk,
            )
            if i < len(chunks) - 1:
                await asyncio.sleep(0.5)
        return msg_id

    async def send_photo(self, photo_url: str, caption: str) -> str:
        """Send a photo by URL with an HTML caption.

        Args:
            photo_url: Publicly reachable image URL.
            caption: Caption in Telegram HTML (truncated to 1024 chars).

        Returns:
            Message ID string.

        Raises:
            DispatchError: If the photo could not be sent.
        """
        plain = len(caption) > _CAPTION_LEN
        if plain:
            logger.warning("Caption truncated from %d chars", len(caption))
            caption = self._strip_formatting(caption)[:_CAPTION_LEN]

        return await self._send_with_retry(
            "photo",
            lambda parse_mode, body: self._bot.send_photo(
                chat_id=self.config.chat_id,
                photo=photo_url,
                caption=body,
                parse_mode=parse_mode,
            ),
            caption,
            plain=plain,
        )

    async def _send_with_retry(
        self, what: str, call, text: str, plain: bool = False,
    ) -> str:
        """Run a Bot send call with retry logic.

        Handles:
          - Parse errors: retries once as plain text
          - Rate limiting (429): waits retry_after seconds
          - Timeouts and network errors: exponential backoff

        Args:
            what: Label for log lines.
            call: ``call(parse_mode, text)`` returning the Bot coroutine.
            text: Body or caption in HTML.
            plain: Text is already plain; send it without a parse mode.

        Returns:
            Message ID string.

        Raises:
            DispatchError: When the send cannot succeed.
        """
        parse_mode = None if plain else ParseMode.HTML
        for attempt in range(_MAX_RETRIES):
            try:
                msg = await call(parse_mode, text)
                return str(msg.message_id)

            except BadRequest as e:
                error_msg = str(e)
                if "parse" not in error_msg.lower():
                    raise DispatchError(f"Telegram rejected {what}: {error_msg}") from e

                logger.warning(
                    "Parse error, retrying %s as plain text: %s", what, error_msg[:200],
                )
                try:
                    msg = await call(None, self._strip_formatting(text))
                    return str(msg.message_id)
                except TelegramError as e2:
                    raise DispatchError(
                        f"Plain text fallback for {what} also failed: {e2}"
                    ) from e2

            except RetryAfter as e:
                wait = e.retry_after
                if isinstance(wait, timedelta):
                    wait = wait.total_seconds()
                logger.warning("Telegram rate limited. Waiting %s seconds...", wait)
                await asyncio.sleep(wait)

            except TimedOut:
                logger.warning(
                    "Telegram timeout sending %s (attempt %d/%d)",
                    what, attempt + 1, _MAX_RETRIES,
                )
                await asyncio.sleep(_BACKOFF_BASE * 2 ** attempt)

            except NetworkError as e:
                logger.warning(
                    "Telegram network error sending %s (attempt %d/%d): %s",
                    what, attempt + 1, _MAX_RETRIES, e,
                )
                await asyncio.sleep(_BACKOFF_BASE * 2 ** attempt)

            except TelegramError as e:
                raise DispatchError(f"Telegram error sending {what}: {e}") from e

        raise DispatchError(f"Failed to send {what} after {_MAX_RETRIES} attempts")

    @staticmethod
    def _split_message(text: str, max_len: int = _SAFE_LEN) -> list[str]:
        """Split long text at paragraph or line boundaries.

        Each chunk is at most max_len characters.
        """
        if len(text) <= max_len:
            return [text]

        chunks: list[str] = []
        remaining = text

        while len(remaining) > max_len:
            cut_point = remaining.rfind("\n\n", 0, max_len)
            if cut_point <= 0:
                cut_point = remaining.rfind("\n", 0, max_len)
            if cut_point <= 0:
                cut_point = max_len

            chunks.append(remaining[:cut_point].rstrip())
            remaining = remaining[cut_point:].lstrip("\n")

        if remaining.strip():
            chunks.append(remaining.strip())

        return chunks

    @staticmethod
    def _strip_formatting(text: str) -> str:
        """Remove HTML tags and unescape entities for plain text fallback."""
        text = re.sub(r'<a href="([^"]+)">([^<]+)</a>', r"\2 (\1)", text)
        text = re.sub(r"<[^>]+>", "", text)
        return text.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")
