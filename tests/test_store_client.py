import json

import httpx
import pytest

from stamp_notifier.store.client import AirtableClient, CommitError, TransientFetchError


def make_client(config, handler) -> AirtableClient:
    return AirtableClient(config, transport=httpx.MockTransport(handler))


class TestListPage:

    @pytest.mark.asyncio
    async def test_request_shape_and_cursor(self, airtable_config):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={
                "records": [{"id": "rec1", "fields": {"allocated": True}}],
                "offset": "itrNEXT/rec1",
            })

        async with make_client(airtable_config, handler) as client:
            page = await client.list_page("Image link", ["experienceName", "posted"], offset="itrPREV")

        request = seen[0]
        assert request.method == "GET"
        assert request.url.host == "api.airtable.test"
        assert request.url.path == "/v0/appTEST/Image link"
        assert request.url.params.get_list("fields[]") == ["experienceName", "posted"]
        assert request.url.params["pageSize"] == "2"
        assert request.url.params["offset"] == "itrPREV"
        assert request.headers["Authorization"] == "Bearer keyTEST"
        assert page.records == [{"id": "rec1", "fields": {"allocated": True}}]
        assert page.offset == "itrNEXT/rec1"

    @pytest.mark.asyncio
    async def test_last_page_has_no_offset(self, airtable_config):
        def handler(request):
            assert "offset" not in request.url.params
            return httpx.Response(200, json={"records": []})

        async with make_client(airtable_config, handler) as client:
            page = await client.list_page("Image link", ["posted"])

        assert page.records == []
        assert page.offset is None

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, airtable_config):
        responses = [
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(200, json={"records": [{"id": "rec1", "fields": {}}]}),
        ]

        def handler(request):
            return responses.pop(0)

        async with make_client(airtable_config, handler) as client:
            page = await client.list_page("Image link", ["posted"])
            assert client.total_requests == 1

        assert [r["id"] for r in page.records] == ["rec1"]
        assert responses == []

    @pytest.mark.asyncio
    async def test_client_error_raises_fetch_error(self, airtable_config):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404, json={"error": "NOT_FOUND"})

        async with make_client(airtable_config, handler) as client:
            with pytest.raises(TransientFetchError):
                await client.list_page("Image link", ["posted"])

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_server_error_after_retries(self, airtable_config):
        from dataclasses import replace

        config = replace(airtable_config, max_retries=1)

        async with make_client(config, lambda r: httpx.Response(503)) as client:
            with pytest.raises(TransientFetchError):
                await client.list_page("Image link", ["posted"])

    @pytest.mark.asyncio
    async def test_invalid_json_raises_fetch_error(self, airtable_config):
        async with make_client(airtable_config, lambda r: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(TransientFetchError):
                await client.list_page("Image link", ["posted"])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [["oops"], {"records": None}, {"records": "x"}])
    async def test_malformed_body_raises_fetch_error(self, airtable_config, payload):
        async with make_client(airtable_config, lambda r: httpx.Response(200, json=payload)) as client:
            with pytest.raises(TransientFetchError):
                await client.list_page("Image link", ["posted"])


class TestUpdateRecords:

    @pytest.mark.asyncio
    async def test_updates_are_chunked_by_ten(self, airtable_config):
        bodies = []

        def handler(request):
            assert request.method == "PATCH"
            body = json.loads(request.content)
            bodies.append(body)
            return httpx.Response(200, json=body)

        updates = [(f"rec{i}", {"posted": True}) for i in range(23)]
        async with make_client(airtable_config, handler) as client:
            committed = await client.update_records("Image link", updates)

        assert [len(b["records"]) for b in bodies] == [10, 10, 3]
        assert bodies[0]["records"][0] == {"id": "rec0", "fields": {"posted": True}}
        assert committed == [f"rec{i}" for i in range(23)]

    @pytest.mark.asyncio
    async def test_failed_chunk_reports_progress(self, airtable_config):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 2:
                return httpx.Response(422, json={"error": "INVALID"})
            return httpx.Response(200, content=request.content)

        updates = [(f"rec{i}", {"posted": True}) for i in range(23)]
        async with make_client(airtable_config, handler) as client:
            with pytest.raises(CommitError) as exc_info:
                await client.update_records("Image link", updates)

        assert exc_info.value.committed == [f"rec{i}" for i in range(10)]
        assert exc_info.value.failed == [f"rec{i}" for i in range(10, 23)]
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_malformed_response_raises_commit_error(self, airtable_config):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 2:
                return httpx.Response(200, json=["oops"])
            return httpx.Response(200, content=request.content)

        updates = [(f"rec{i}", {"posted": True}) for i in range(15)]
        async with make_client(airtable_config, handler) as client:
            with pytest.raises(CommitError) as exc_info:
                await client.update_records("Image link", updates)

        assert exc_info.value.committed == [f"rec{i}" for i in range(10)]
        assert exc_info.value.failed == [f"rec{i}" for i in range(10, 15)]

    @pytest.mark.asyncio
    async def test_non_object_rows_in_response_are_ignored(self, airtable_config):
        def handler(request):
            return httpx.Response(200, json={"records": [None, {"id": "rec1"}, "x"]})

        async with make_client(airtable_config, handler) as client:
            committed = await client.update_records("Image link", [("rec1", {"posted": True})])

        assert committed == ["rec1"]

    @pytest.mark.asyncio
    async def test_no_updates_no_requests(self, airtable_config):
        def handler(request):
            raise AssertionError("no request expected")

        async with make_client(airtable_config, handler) as client:
            assert await client.update_records("Image link", []) == []
