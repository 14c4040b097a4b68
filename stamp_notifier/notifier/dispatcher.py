"""Stamp Notifier — Notification Dispatcher.

Runs the posting cycle: scan the stamp table, announce every record
that is allocated but not yet posted, then mark the announced records
as posted in one batched update.

A record is only marked once all of its notifications went out. A
failed send leaves it unposted so the next cycle retries it. The batch
update happens after sending, so a crash or failed commit in between
re-announces those records on the next run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Protocol, Sequence

from stamp_notifier.notifier.formatters import NotificationPayload, compose_notifications
from stamp_notifier.store.client import CommitError, TransientFetchError
from stamp_notifier.store.models import RECORD_FIELDS
from stamp_notifier.store.scanner import PageSource, RecordScanner
from stamp_notifier.utils.logger import get_logger

logger = get_logger(__name__)

POSTED_UPDATE = {"posted": True}


class RecordStore(PageSource, Protocol):
    """Store capability used by the cycle (AirtableClient)."""

    async def update_records(
        self, table: str, updates: Sequence[tuple[str, dict]],
    ) -> list[str]: ...


class NotificationSender(Protocol):
    """Channel capability used by the cycle (TelegramNotifier)."""

    async def send(self, payload: NotificationPayload) -> str: ...


@dataclass
class CycleReport:
    """Outcome of one posting cycle."""

    pages: int = 0
    scanned: int = 0
    eligible: int = 0
    sent: int = 0
    dispatch_failures: int = 0
    pending_ids: list[str] = field(default_factory=list)
    committed_ids: list[str] = field(default_factory=list)
    fetch_failed: bool = False
    commit_failed: bool = False
    duration: float = 0.0

    @property
    def errors(self) -> int:
        return self.dispatch_failures + int(self.fetch_failed) + int(self.commit_failed)


class NotificationDispatcher:
    """Scan → notify → commit for the stamp table.

    Attributes:
        store: Record store client.
        sender: Notification channel.
        table: Table to scan.
        commit_on_fetch_error: Commit records already announced when a
            later page fails to load. When False, a fetch failure skips
            the commit and every record is re-announced next cycle.
    """

    def __init__(
        self,
        store: RecordStore,
        sender: NotificationSender,
        table: str,
        commit_on_fetch_error: bool = True,
    ) -> None:
        self.store = store
        self.sender = sender
        self.table = table
        self.commit_on_fetch_error = commit_on_fetch_error

    async def run_cycle(self) -> CycleReport:
        """Run one full posting cycle.

        Never raises for store or channel failures; they are logged and
        reflected in the returned report.

        Returns:
            CycleReport describing what happened.
        """
        report = CycleReport()
        start = time.monotonic()
        scanner = RecordScanner(self.store, self.table, RECORD_FIELDS)

        try:
            async for page in scanner.pages():
                report.pages += 1
                for record in page:
                    report.scanned += 1
                    logger.debug(
                        "%s: %s allocated=%s posted=%s",
                        record.record_id, record.experience_name,
                        record.allocated, record.posted,
                    )
                    if not record.is_eligible:
                        continue

                    report.eligible += 1
                    if await self._announce(record.record_id, compose_notifications(record), report):
                        report.pending_ids.append(record.record_id)
        except TransientFetchError as e:
            report.fetch_failed = True
            logger.error(
                "Scan of '%s' stopped after %d pages: %s", self.table, report.pages, e,
            )

        if report.fetch_failed and not self.commit_on_fetch_error:
            if report.pending_ids:
                logger.warning(
                    "Skipping commit of %d records after fetch failure; "
                    "they will be announced again next cycle",
                    len(report.pending_ids),
                )
        elif report.pending_ids:
            await self._commit(report)

        report.duration = time.monotonic() - start
        logger.info(
            "Cycle done: pages=%d scanned=%d eligible=%d sent=%d "
            "failures=%d posted=%d (%.1fs)",
            report.pages, report.scanned, report.eligible, report.sent,
            report.dispatch_failures, len(report.committed_ids), report.duration,
        )
        return report

    async def _announce(
        self,
        record_id: str,
        payloads: list[NotificationPayload],
        report: CycleReport,
    ) -> bool:
        """Send a record's payloads in order, stopping at the first failure.

        Returns:
            True if every payload was sent (trivially for zero payloads).
        """
        if not payloads:
            logger.info("Record %s has nothing to announce, marking posted", record_id)
            return True

        for i, payload in enumerate(payloads, 1):
            try:
                msg_id = await self.sender.send(payload)
            except Exception as e:
                report.dispatch_failures += 1
                logger.error(
                    "Dispatch %d/%d (%s) failed for record %s: %s",
                    i, len(payloads), payload.kind, record_id, e,
                )
                return False
            report.sent += 1
            logger.info(
                "Sent %s for record %s (msg=%s)", payload.kind, record_id, msg_id,
            )
        return True

    async def _commit(self, report: CycleReport) -> None:
        """Mark every pending record as posted in one batched update."""
        updates = [(rid, dict(POSTED_UPDATE)) for rid in report.pending_ids]
        try:
            report.committed_ids = await self.store.update_records(self.table, updates)
        except CommitError as e:
            report.commit_failed = True
            report.committed_ids = list(e.committed)
            logger.error(
                "Commit failed, %d records stay unposted and will be re-announced: %s "
                "(ids: %s)",
                len(e.failed), e, ", ".join(e.failed),
            )
            return

        logger.info("Marked %d records as posted", len(report.committed_ids))
