import copy
from typing import Any, Callable, Optional, Sequence

import pytest

from stamp_notifier.config import AirtableConfig, AppConfig, RelayConfig, ScheduleConfig, TelegramConfig
from stamp_notifier.notifier.formatters import NotificationPayload
from stamp_notifier.notifier.telegram_bot import DispatchError
from stamp_notifier.store.client import CommitError, RecordPage, TransientFetchError


def raw_record(record_id: str, **fields: Any) -> dict[str, Any]:
    """Airtable-shaped record; fields with value None are left out."""
    return {
        "id": record_id,
        "createdTime": "2024-01-01T00:00:00.000Z",
        "fields": {k: v for k, v in fields.items() if v is not None},
    }


class FakeStore:
    """In-memory stand-in for AirtableClient.

    Pages are served in order with the page index as the offset cursor.
    Updates are applied to the stored records so repeated cycles see them.
    """

    def __init__(
        self,
        pages: Sequence[Sequence[dict[str, Any]]],
        fail_at_page: Optional[int] = None,
        fail_commit: bool = False,
    ) -> None:
        self.pages = [list(copy.deepcopy(p)) for p in pages]
        self.fail_at_page = fail_at_page
        self.fail_commit = fail_commit
        self.list_calls: list[tuple[str, list[str], Optional[str]]] = []
        self.update_calls: list[list[tuple[str, dict]]] = []

    async def list_page(self, table, fields, offset=None) -> RecordPage:
        index = int(offset) if offset else 0
        self.list_calls.append((table, list(fields), offset))
        if self.fail_at_page is not None and index == self.fail_at_page:
            raise TransientFetchError(f"page {index} unavailable")
        next_offset = str(index + 1) if index + 1 < len(self.pages) else None
        return RecordPage(records=copy.deepcopy(self.pages[index]), offset=next_offset)

    async def update_records(self, table, updates) -> list[str]:
        self.update_calls.append(list(updates))
        ids = [rid for rid, _ in updates]
        if self.fail_commit:
            raise CommitError("store unavailable", committed=[], failed=ids)
        for page in self.pages:
            for rec in page:
                for rid, fields in updates:
                    if rec["id"] == rid:
                        rec["fields"].update(fields)
        return ids

    @property
    def committed(self) -> list[str]:
        return [rid for call in self.update_calls for rid, _ in call]


class FakeSender:
    """Records payloads; raises DispatchError for payloads matching fail_when."""

    def __init__(self, fail_when: Optional[Callable[[NotificationPayload], bool]] = None) -> None:
        self.sent: list[NotificationPayload] = []
        self.messages: list[str] = []
        self.fail_when = fail_when

    async def send(self, payload: NotificationPayload) -> str:
        if self.fail_when is not None and self.fail_when(payload):
            raise DispatchError(f"cannot send {payload.kind}")
        self.sent.append(payload)
        return str(len(self.sent))

    async def send_message(self, text: str, disable_preview: bool = False) -> str:
        if self.fail_when is not None and self.fail_when(NotificationPayload.text(text)):
            raise DispatchError("cannot send message")
        self.messages.append(text)
        return str(len(self.messages))


@pytest.fixture
def fake_sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def airtable_config() -> AirtableConfig:
    return AirtableConfig(
        api_key="keyTEST",
        base_id="appTEST",
        table="Image link",
        api_url="https://api.airtable.test/v0",
        page_size=2,
        timeout_seconds=5,
        max_retries=3,
        requests_per_second=100,
    )


@pytest.fixture
def app_config(airtable_config) -> AppConfig:
    return AppConfig(
        airtable=airtable_config,
        telegram=TelegramConfig(bot_token="123:abc", chat_id="-100", commands_enabled=False),
        schedule=ScheduleConfig(),
        relay=RelayConfig(host="127.0.0.1", port=8080),
    )
