"""Stamp Notifier — Telegram Message Formatters.

Turns stamp records into notification payloads for Telegram HTML parse
mode. Only &, < and > need escaping in that mode.

Everything here is pure: no I/O, no logging side effects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from stamp_notifier.store.models import StampRecord

if TYPE_CHECKING:
    from stamp_notifier.notifier.dispatcher import CycleReport

TEXT = "text"
PHOTO = "photo"


def _e(text: Any) -> str:
    """Escape HTML special characters for Telegram.

    Args:
        text: Raw text to escape.

    Returns:
        HTML-safe text.
    """
    if not text:
        return ""
    return str(text).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _bold(text: Any) -> str:
    """Escape and wrap in bold tags."""
    return f"<b>{_e(text)}</b>"


@dataclass(frozen=True)
class NotificationPayload:
    """A rendered message ready for dispatch.

    Attributes:
        kind: 'text' or 'photo'.
        body: Message text for text payloads, caption for photos.
        url: Photo URL, None for text payloads.
    """

    kind: str
    body: str
    url: Optional[str] = None

    @classmethod
    def text(cls, body: str) -> "NotificationPayload":
        return cls(kind=TEXT, body=body)

    @classmethod
    def photo(cls, url: str, caption: str) -> "NotificationPayload":
        return cls(kind=PHOTO, body=caption, url=url)

    @property
    def caption(self) -> str:
        return self.body


def format_stamp_available(experience_name: str) -> str:
    """Caption announcing a claimable stamp."""
    return f"The stamp for {_bold(experience_name)} is available to claim!"


def format_card_owner(card_holder: str, experience_name: str) -> str:
    """Caption announcing the NFC card owner."""
    return (
        f"{_bold(card_holder)} is the owner of the NFC card for "
        f"{_bold(experience_name)}."
    )


def compose_notifications(record: StampRecord) -> list[NotificationPayload]:
    """Build the notifications for an eligible record.

    Two independent checks, in this order:
      1. experience name + image → stamp photo
      2. experience name + card holder → owner photo (card photo) or text

    Args:
        record: The record to announce. Eligibility is not checked here.

    Returns:
        Zero, one or two payloads.
    """
    payloads: list[NotificationPayload] = []
    name = record.experience_name

    if name and record.image_url:
        payloads.append(
            NotificationPayload.photo(record.image_url, format_stamp_available(name))
        )

    if name and record.card_holder:
        caption = format_card_owner(record.card_holder, name)
        if record.card_photo_url:
            payloads.append(NotificationPayload.photo(record.card_photo_url, caption))
        else:
            payloads.append(NotificationPayload.text(caption))

    return payloads


def format_cycle_report(report: "CycleReport") -> str:
    """Format a cycle summary for the /status and /force commands."""
    lines = [
        f"🔄 Pages: {report.pages} | Records: {report.scanned}",
        f"✅ Eligible: {report.eligible} | Sent: {report.sent}",
        f"📌 Marked posted: <b>{len(report.committed_ids)}</b>",
    ]
    if report.dispatch_failures:
        lines.append(f"⚠️ Dispatch failures: {report.dispatch_failures}")
    if report.fetch_failed:
        lines.append("❌ Scan stopped early (page fetch failed)")
    if report.commit_failed:
        lines.append("❌ Commit failed, records will be retried")
    lines.append(f"⏱ {report.duration:.1f}s")
    return "\n".join(lines)


def format_system_status(status: dict[str, Any]) -> str:
    """Format the /status reply.

    Args:
        status: Dict with uptime, cycles, errors, last_cycle and an
            optional last_report (CycleReport).

    Returns:
        HTML formatted status message.
    """
    lines = [
        "<b>🤖 Stamp Notifier status</b>",
        "",
        f"⏱ Uptime: {_e(status.get('uptime', 'unknown'))}",
        f"🔁 Cycles: {status.get('cycles', 0)}",
        f"🕐 Last cycle: {_e(status.get('last_cycle') or 'not yet')}",
    ]

    errors = status.get("errors", 0)
    lines.append(f"❌ Errors: {errors}" if errors else "✅ No errors")

    report = status.get("last_report")
    if report is not None:
        lines.extend(["", format_cycle_report(report)])

    return "\n".join(lines)
