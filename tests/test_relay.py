import pytest
from aiohttp.test_utils import TestClient, TestServer

from stamp_notifier.relay.server import create_app
from tests.conftest import FakeSender


@pytest.fixture
def sender():
    return FakeSender()


async def make_client(sender) -> TestClient:
    client = TestClient(TestServer(create_app(sender)))
    await client.start_server()
    return client


class TestBotPost:

    @pytest.mark.asyncio
    async def test_forwards_message_verbatim(self, sender):
        client = await make_client(sender)
        try:
            resp = await client.post("/bot-post", json={"message": "<b>Hello</b> world"})
            assert resp.status == 200
            assert await resp.json() == {"ok": True}
        finally:
            await client.close()

        assert sender.messages == ["<b>Hello</b> world"]

    @pytest.mark.asyncio
    async def test_dispatch_failure_still_returns_200(self):
        sender = FakeSender(fail_when=lambda p: True)
        client = await make_client(sender)
        try:
            resp = await client.post("/bot-post", json={"message": "hi"})
            assert resp.status == 200
            assert await resp.json() == {"ok": True}
        finally:
            await client.close()

        assert sender.messages == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"message": 5}, {"message": "  "}, ["message"]])
    async def test_invalid_payload_rejected(self, sender, body):
        client = await make_client(sender)
        try:
            resp = await client.post("/bot-post", json=body)
            assert resp.status == 400
        finally:
            await client.close()

        assert sender.messages == []

    @pytest.mark.asyncio
    async def test_non_json_body_rejected(self, sender):
        client = await make_client(sender)
        try:
            resp = await client.post(
                "/bot-post", data="message=hi",
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            assert resp.status == 400
        finally:
            await client.close()


class TestMiddleware:

    @pytest.mark.asyncio
    async def test_cors_headers(self, sender):
        client = await make_client(sender)
        try:
            resp = await client.post("/bot-post", json={"message": "hi"})
            assert resp.headers["Access-Control-Allow-Origin"] == "*"

            preflight = await client.options("/bot-post")
            assert preflight.status == 204
            assert "POST" in preflight.headers["Access-Control-Allow-Methods"]
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500(self):
        class BrokenSender:
            async def send_message(self, text):
                raise AssertionError("unreachable")

        app = create_app(BrokenSender())

        async def boom(request):
            raise RuntimeError("kaboom")

        app.router.add_get("/boom", boom)
        client = TestClient(TestServer(app))
        await client.start_server()
        try:
            resp = await client.get("/boom")
            assert resp.status == 500
            assert await resp.text() == "kaboom"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_health(self, sender):
        client = await make_client(sender)
        try:
            resp = await client.get("/health")
            assert resp.status == 200
            assert await resp.json() == {"alive": True}
        finally:
            await client.close()
