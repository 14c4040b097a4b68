"""Stamp Notifier — Main Orchestrator.

Ties all components together: config, Airtable client, Telegram
notifier, posting cycle, HTTP relay and bot commands.

Runs on a schedule with APScheduler:
  - Posting cycle (cron, every 10 minutes by default)

Usage:
    python -m stamp_notifier.main
    python scripts/run.py
"""

from __future__ import annotations

import asyncio
import signal
import time
import traceback
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from telegram.ext import Application

from stamp_notifier.config import AppConfig, load_config
from stamp_notifier.notifier.commands import CommandHandler
from stamp_notifier.notifier.dispatcher import CycleReport, NotificationDispatcher
from stamp_notifier.notifier.telegram_bot import TelegramNotifier
from stamp_notifier.relay.server import RelayServer
from stamp_notifier.store.client import AirtableClient
from stamp_notifier.utils.logger import get_logger, set_console_level

logger = get_logger(__name__)


class StampNotifier:
    """Main application orchestrator.

    Owns the long-lived clients and hands them to the components that
    need them. The Telegram notifier is created once and shared by the
    posting cycle, the relay and the bot commands.

    Attributes:
        config: Full application configuration.
    """

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        """Initialize with default state. Call start() to run.

        Args:
            config: Preloaded configuration; loaded from disk when omitted.
        """
        self.config = config
        self._store: Optional[AirtableClient] = None
        self._telegram: Optional[TelegramNotifier] = None
        self._tg_app: Optional[Application] = None
        self._dispatcher: Optional[NotificationDispatcher] = None
        self._relay: Optional[RelayServer] = None
        self._scheduler: Optional[AsyncIOScheduler] = None

        self._running = False
        self._cycle_count = 0
        self._errors_count = 0
        self._start_time: float = 0.0
        self._last_cycle_time: Optional[str] = None
        self._last_report: Optional[CycleReport] = None
        self._cycle_lock = asyncio.Lock()

    async def start(self) -> None:
        """Full application startup sequence.

        1. Load config
        2. Initialize Airtable client and Telegram bot
        3. Start the HTTP relay and bot commands
        4. Schedule the posting cycle
        5. Run first cycle immediately (if configured)
        6. Enter keep-alive loop
        """
        self._start_time = time.monotonic()
        self._running = True

        try:
            # ── 1. Config ────────────────────────────────
            logger.info("═══ Loading configuration ═══")
            if self.config is None:
                self.config = load_config()
            set_console_level(self.config.log_level)

            # ── 2. Clients ───────────────────────────────
            logger.info("═══ Initializing components ═══")
            self._store = AirtableClient(self.config.airtable)

            if self.config.telegram.commands_enabled:
                self._tg_app = Application.builder().token(self.config.telegram.bot_token).build()
                CommandHandler(self).register(self._tg_app)
                self._telegram = TelegramNotifier(self.config.telegram, bot=self._tg_app.bot)
            else:
                self._telegram = TelegramNotifier(self.config.telegram)

            if not await self._telegram.initialize():
                logger.error("Telegram bot connection failed! Continuing anyway...")

            self._dispatcher = NotificationDispatcher(
                self._store,
                self._telegram,
                self.config.airtable.table,
                commit_on_fetch_error=self.config.schedule.commit_on_fetch_error,
            )

            # ── 3. Relay + commands ──────────────────────
            self._relay = RelayServer(self.config.relay, self._telegram)
            await self._relay.start()

            if self._tg_app is not None:
                await self._tg_app.initialize()
                await self._tg_app.start()
                await self._tg_app.updater.start_polling(drop_pending_updates=True)
                logger.info("Telegram command polling started")

            # ── 4. Scheduler ────────────────────────────
            logger.info("═══ Setting up scheduler ═══")
            self._scheduler = AsyncIOScheduler()
            minute = self.config.schedule.cron_minute
            self._scheduler.add_job(
                self.run_cycle,
                CronTrigger(minute=minute),
                id="posting_cycle",
                max_instances=1,
                coalesce=True,
                misfire_grace_time=60,
                name=f"Posting cycle (minute={minute})",
            )
            self._scheduler.start()
            logger.info("Scheduler started")

            # ── 5. First cycle immediately ───────────────
            if self.config.schedule.run_on_startup:
                logger.info("═══ Running first posting cycle ═══")
                await self.run_cycle()

            # ── 6. Keep alive ────────────────────────────
            logger.info("═══ Entering main loop ═══")
            while self._running:
                await asyncio.sleep(1)

        except Exception as e:
            logger.error("Fatal error: %s", e)
            logger.error(traceback.format_exc())
        finally:
            await self.shutdown()

    async def run_cycle(self) -> Optional[CycleReport]:
        """Run one posting cycle unless one is already in progress.

        Overlapping runs would both see the same unposted records and
        announce them twice, so a second caller is turned away.

        Returns:
            The cycle report, or None if the cycle was skipped.
        """
        if self._dispatcher is None:
            logger.warning("Posting cycle requested before startup, skipping")
            return None

        if self._cycle_lock.locked():
            logger.warning("Previous posting cycle still running, skipping")
            return None

        async with self._cycle_lock:
            self._cycle_count += 1
            self._last_cycle_time = datetime.now().strftime("%H:%M:%S")
            logger.info("═══ Posting cycle #%d — %s ═══", self._cycle_count, self._last_cycle_time)

            try:
                report = await self._dispatcher.run_cycle()
            except Exception as e:
                self._errors_count += 1
                logger.error("Posting cycle error: %s", e)
                logger.error(traceback.format_exc())
                return None

            self._errors_count += report.errors
            self._last_report = report
            return report

    async def shutdown(self) -> None:
        """Graceful shutdown: stop scheduler, relay, polling, close clients."""
        logger.info("═══ Shutting down ═══")
        self._running = False

        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

        if self._relay:
            await self._relay.stop()

        if self._tg_app is not None:
            try:
                if self._tg_app.updater and self._tg_app.updater.running:
                    await self._tg_app.updater.stop()
                if self._tg_app.running:
                    await self._tg_app.stop()
                await self._tg_app.shutdown()
            except Exception as e:
                logger.warning("Error stopping Telegram application: %s", e)
        elif self._telegram:
            await self._telegram.close()

        if self._store:
            await self._store.close()

        logger.info("Shutdown complete")

    def stop(self) -> None:
        """Ask the keep-alive loop to exit."""
        self._running = False

    # ── Public state accessors (for commands) ────────────

    @property
    def cycle_running(self) -> bool:
        return self._cycle_lock.locked()

    @property
    def cycle_count(self) -> int:
        """Total posting cycles started."""
        return self._cycle_count

    @property
    def errors_count(self) -> int:
        """Total errors across all cycles."""
        return self._errors_count

    @property
    def last_cycle_time(self) -> Optional[str]:
        return self._last_cycle_time

    @property
    def last_report(self) -> Optional[CycleReport]:
        return self._last_report

    @property
    def uptime(self) -> str:
        """Human-readable uptime string."""
        if not self._start_time:
            return "0m"
        s = time.monotonic() - self._start_time
        hours = int(s // 3600)
        mins = int((s % 3600) // 60)
        if hours:
            return f"{hours}h {mins}m"
        return f"{mins}m"


def main() -> None:
    """Application entry point."""
    logger.info("[INIT] Starting application")
    app = StampNotifier()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _signal_handler(sig, frame):
        logger.info("Signal %s received, shutting down...", sig)
        app.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.close()


if __name__ == "__main__":
    main()
