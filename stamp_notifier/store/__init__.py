"""Stamp Notifier — Record Store Package.

Access to the Airtable table holding the stamps. Components:
  - AirtableClient: Async HTTP client with pagination and batched updates
  - RecordScanner: Page-by-page scan producing StampRecord snapshots
  - StampRecord: Typed projection of one table row
"""

from stamp_notifier.store.client import (
    AirtableClient,
    CommitError,
    RecordPage,
    StoreError,
    TransientFetchError,
)
from stamp_notifier.store.models import RECORD_FIELDS, StampRecord
from stamp_notifier.store.scanner import RecordScanner

__all__ = [
    "AirtableClient",
    "CommitError",
    "RecordPage",
    "StoreError",
    "TransientFetchError",
    "RECORD_FIELDS",
    "StampRecord",
    "RecordScanner",
]
