"""Stamp Notifier — Telegram Command Handlers.

Interactive commands via the Telegram bot:
  /start — help message
  /status — uptime, cycle count and the last cycle report
  /force — run a posting cycle now

Uses python-telegram-bot v22+ Application with polling.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from telegram import Update
from telegram.ext import Application, CommandHandler as TgCmdHandler, ContextTypes

from stamp_notifier.notifier.formatters import _e, format_cycle_report, format_system_status
from stamp_notifier.utils.logger import get_logger

if TYPE_CHECKING:
    from stamp_notifier.main import StampNotifier

logger = get_logger(__name__)

HELP_TEXT = (
    "<b>🤖 Stamp Notifier</b>\n"
    "\n"
    "I announce stamps as soon as they are allocated.\n"
    "\n"
    "<b>Commands:</b>\n"
    "/status — system status\n"
    "/force — check for new stamps now\n"
)


class CommandHandler:
    """Telegram bot command handlers.

    Attributes:
        app: Reference to the StampNotifier instance.
    """

    def __init__(self, app: "StampNotifier") -> None:
        self.app = app
        self._tasks: set[asyncio.Task] = set()

    def register(self, tg_app: Application) -> None:
        """Register all command handlers with the Telegram Application."""
        tg_app.add_handler(TgCmdHandler("start", self._cmd_start))
        tg_app.add_handler(TgCmdHandler("status", self._cmd_status))
        tg_app.add_handler(TgCmdHandler("force", self._cmd_force))
        logger.info("Registered 3 Telegram commands")

    async def _cmd_start(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Handle /start."""
        await update.message.reply_text(HELP_TEXT, parse_mode="HTML")

    async def _cmd_status(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Handle /status."""
        app = self.app
        text = format_system_status({
            "uptime": app.uptime,
            "cycles": app.cycle_count,
            "last_cycle": app.last_cycle_time,
            "errors": app.errors_count,
            "last_report": app.last_report,
        })
        await update.message.reply_text(text, parse_mode="HTML")

    async def _cmd_force(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Handle /force. Replies at once and runs the cycle in the background."""
        if self.app.cycle_running:
            await update.message.reply_text("⏳ A cycle is already running")
            return

        await update.message.reply_text("🔄 <b>Checking for new stamps...</b>", parse_mode="HTML")
        task = asyncio.create_task(self._force_cycle_bg(update))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _force_cycle_bg(self, update: Update) -> None:
        try:
            report = await self.app.run_cycle()
            if report is None:
                await update.message.reply_text("⏳ A cycle is already running")
                return
            await update.message.reply_text(
                "✅ <b>Check complete</b>\n\n" + format_cycle_report(report),
                parse_mode="HTML",
            )
        except Exception as e:
            logger.error("Forced cycle failed: %s", e)
            await update.message.reply_text(
                f"❌ Check failed: {_e(str(e))}", parse_mode="HTML",
            )
