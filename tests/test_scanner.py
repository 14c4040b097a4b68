import pytest

from stamp_notifier.store.client import TransientFetchError
from stamp_notifier.store.scanner import RecordScanner
from tests.conftest import FakeStore, raw_record


async def collect_pages(scanner):
    return [[r.record_id for r in page] async for page in scanner.pages()]


class TestRecordScanner:

    @pytest.mark.asyncio
    async def test_walks_all_pages_in_order(self):
        store = FakeStore([
            [raw_record("r1"), raw_record("r2")],
            [],
            [raw_record("r3")],
        ])

        pages = await collect_pages(RecordScanner(store, "Image link"))

        assert pages == [["r1", "r2"], [], ["r3"]]
        assert [offset for _, _, offset in store.list_calls] == [None, "1", "2"]

    @pytest.mark.asyncio
    async def test_records_flattens(self):
        store = FakeStore([[raw_record("r1")], [raw_record("r2")]])
        scanner = RecordScanner(store, "Image link")

        ids = [r.record_id async for r in scanner.records()]

        assert ids == ["r1", "r2"]

    @pytest.mark.asyncio
    async def test_each_scan_starts_from_first_page(self):
        store = FakeStore([[raw_record("r1")], [raw_record("r2")]])
        scanner = RecordScanner(store, "Image link")

        await collect_pages(scanner)
        await collect_pages(scanner)

        assert [offset for _, _, offset in store.list_calls] == [None, "1", None, "1"]

    @pytest.mark.asyncio
    async def test_malformed_record_skipped(self):
        store = FakeStore([[{"fields": {"allocated": True}}, raw_record("r1")]])

        pages = await collect_pages(RecordScanner(store, "Image link"))

        assert pages == [["r1"]]

    @pytest.mark.asyncio
    async def test_fetch_error_ends_scan(self):
        store = FakeStore([[raw_record("r1")], [raw_record("r2")]], fail_at_page=1)
        scanner = RecordScanner(store, "Image link")
        seen = []

        with pytest.raises(TransientFetchError):
            async for page in scanner.pages():
                seen.append([r.record_id for r in page])

        assert seen == [["r1"]]
