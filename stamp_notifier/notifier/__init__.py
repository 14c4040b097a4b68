"""Stamp Notifier — Notifier Package.

Telegram notification system for stamp announcements.
Components:
  - formatters: HTML payload builders (stamp available, card owner, status)
  - telegram_bot: Async Telegram client with retry/fallback
  - dispatcher: Scan → notify → mark-posted cycle
  - commands: /start, /status and /force bot commands
"""

from stamp_notifier.notifier.formatters import (
    NotificationPayload,
    compose_notifications,
    format_cycle_report,
    format_system_status,
)
from stamp_notifier.notifier.telegram_bot import DispatchError, TelegramNotifier
from stamp_notifier.notifier.dispatcher import CycleReport, NotificationDispatcher

__all__ = [
    "NotificationPayload",
    "compose_notifications",
    "format_cycle_report",
    "format_system_status",
    "DispatchError",
    "TelegramNotifier",
    "CycleReport",
    "NotificationDispatcher",
]
