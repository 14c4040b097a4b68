"""Stamp Notifier — Telegram Smoke Check.

Sends real messages to the configured chat to verify the token, chat id
and HTML rendering of the stamp announcements.

Requires TELEGRAM_BOT_TOKEN, TELEGRAM_CHAT_ID (and the other settings
variables) in .env.

Run: python scripts/check_telegram.py [photo_url]
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("AIRTABLE_API_KEY", "unused")
os.environ.setdefault("PORT", "8080")

from stamp_notifier.config import load_config
from stamp_notifier.notifier.formatters import compose_notifications
from stamp_notifier.notifier.telegram_bot import DispatchError, TelegramNotifier
from stamp_notifier.store.models import StampRecord
from stamp_notifier.utils.logger import get_logger

logger = get_logger(__name__)

_passed = 0
_failed = 0


def check(label: str, condition: bool) -> None:
    """Track pass/fail."""
    global _passed, _failed
    if condition:
        _passed += 1
        logger.info("  ✅ %s", label)
    else:
        _failed += 1
        logger.error("  ❌ FAILED: %s", label)


async def run_check(photo_url: str | None) -> None:
    config = load_config()
    bot = TelegramNotifier(config.telegram)

    logger.info("═══ Bot Connection ═══")
    connected = await bot.initialize()
    check("Bot connected", connected)
    if not connected:
        sys.exit(1)

    logger.info("═══ Stamp announcements ═══")
    record = StampRecord(
        record_id="recSMOKE",
        experience_name="Tom & Jerry <Live>",
        image_url=photo_url,
        allocated=True,
        card_holder="Smoke <Test>",
        card_photo_url=None,
    )
    for payload in compose_notifications(record):
        try:
            msg_id = await bot.send(payload)
            check(f"{payload.kind} sent (msg={msg_id})", True)
        except DispatchError as e:
            logger.error("  %s", e)
            check(f"{payload.kind} sent", False)
        await asyncio.sleep(1)

    await bot.close()
    logger.info("═══ %d passed, %d failed ═══", _passed, _failed)
    if _failed:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(run_check(sys.argv[1] if len(sys.argv) > 1 else None))
