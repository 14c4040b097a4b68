"""Stamp Notifier — Record Scanner.

Walks every page of a table and yields parsed StampRecord pages in the
order the store returns them.
"""

from __future__ import annotations

from typing import AsyncIterator, Optional, Protocol, Sequence

from stamp_notifier.store.client import RecordPage
from stamp_notifier.store.models import RECORD_FIELDS, StampRecord
from stamp_notifier.utils.logger import get_logger

logger = get_logger(__name__)


class PageSource(Protocol):
    """Anything that can serve one page of a table (AirtableClient)."""

    async def list_page(
        self, table: str, fields: Sequence[str], offset: Optional[str] = None,
    ) -> RecordPage: ...


class RecordScanner:
    """Forward-only scan over the whole table.

    Each call to pages() starts a fresh scan from the first page. Fetch
    errors from the client propagate unchanged and end the scan.

    Attributes:
        table: Table being scanned.
        fields: Projected field names.
    """

    def __init__(
        self,
        client: PageSource,
        table: str,
        fields: Sequence[str] = RECORD_FIELDS,
    ) -> None:
        self.client = client
        self.table = table
        self.fields = list(fields)

    async def pages(self) -> AsyncIterator[list[StampRecord]]:
        """Yield each page of parsed records until the store reports no more.

        Raises:
            TransientFetchError: If a page fetch fails.
        """
        offset: Optional[str] = None
        page_num = 0

        while True:
            page = await self.client.list_page(self.table, self.fields, offset)
            page_num += 1

            records: list[StampRecord] = []
            for raw in page.records:
                try:
                    records.append(StampRecord.from_api(raw))
                except ValueError as e:
                    logger.warning("Skipping malformed record on page %d: %s", page_num, e)

            logger.debug("Page %d: %d records", page_num, len(records))
            yield records

            if not page.offset:
                break
            offset = page.offset

    async def records(self) -> AsyncIterator[StampRecord]:
        """Flattened view of pages()."""
        async for page in self.pages():
            for record in page:
                yield record
