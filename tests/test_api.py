import json

import httpx
import pytest

from colloquy.api import ChatAPI
from colloquy.config import ClientConfig
from colloquy.errors import InvalidInput, NotFound, ServiceError, Unauthorized
from colloquy.models import PersistedId

USER_KEY = "65a1b2c3d4e5f60718293a4b"
REPLY_KEY = "65a1b2c3d4e5f60718293a4c"


def make_api(handler, token: str | None = "secret") -> ChatAPI:
    config = ClientConfig(api_url="https://chat.example", token=token, state_path="unused")
    return ChatAPI(config, transport=httpx.MockTransport(handler))


def exchange_payload(content: str) -> dict:
    return {
        "userMessage": {"id": USER_KEY, "content": content, "createdAt": "2024-05-01T08:00:00Z"},
        "assistantMessage": {
            "id": REPLY_KEY,
            "content": "Отговор",
            "createdAt": "2024-05-01T08:00:05Z",
            "metadata": {"sources": [{"index": "zzd", "title": "ЗЗД"}]},
        },
    }


class TestRequests:
    @pytest.mark.asyncio
    async def test_list_sessions(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json=[
                    {"id": "c2", "title": "Наем", "createdAt": "2024-05-02T00:00:00Z"},
                    {"id": "c1", "title": "", "createdAt": "2024-05-01T00:00:00Z"},
                ],
            )

        api = make_api(handler)
        sessions = await api.list_sessions()
        await api.aclose()

        assert [s.id for s in sessions] == ["c2", "c1"]
        assert seen[0].url.path == "/api/chats"
        assert seen[0].headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_no_token_no_header(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert "Authorization" not in request.headers
            return httpx.Response(200, json=[])

        api = make_api(handler, token=None)
        assert await api.list_sessions() == []

    @pytest.mark.asyncio
    async def test_send_posts_content_and_maps_exchange(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.url.path == "/api/chats/c1/messages/send"
            assert json.loads(request.content) == {"content": "Какво е давност?"}
            return httpx.Response(200, json=exchange_payload("Какво е давност?"))

        exchange = await make_api(handler).send_message("c1", "Какво е давност?")

        assert exchange.user.id == PersistedId(key=USER_KEY)
        assert exchange.user.role == "user"
        assert exchange.assistant.role == "assistant"
        assert exchange.assistant.metadata["sources"][0]["index"] == "zzd"

    @pytest.mark.asyncio
    async def test_edit_sends_message_key(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/chats/c1/messages/edit"
            assert json.loads(request.content) == {"messageId": USER_KEY, "content": "new"}
            return httpx.Response(200, json=exchange_payload("new"))

        exchange = await make_api(handler).edit_message("c1", PersistedId(key=USER_KEY), "new")
        assert exchange.user.content == "new"

    @pytest.mark.asyncio
    async def test_delete_message_path(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "DELETE"
            assert request.url.path == f"/api/chats/c1/messages/{USER_KEY}"
            return httpx.Response(204)

        assert await make_api(handler).delete_message("c1", PersistedId(key=USER_KEY)) is None


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error_type",
        [(401, Unauthorized), (403, Unauthorized), (404, NotFound), (422, InvalidInput), (502, ServiceError)],
    )
    async def test_status_mapping(self, status, error_type):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={"error": "Chat not found"})

        with pytest.raises(error_type) as info:
            await make_api(handler).list_messages("c1")
        assert str(info.value) == "Chat not found"
        assert info.value.status_code == status

    @pytest.mark.asyncio
    async def test_plain_text_error_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="upstream exploded")

        with pytest.raises(ServiceError, match="upstream exploded"):
            await make_api(handler).create_session()

    @pytest.mark.asyncio
    async def test_transport_failure_is_service_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ServiceError, match="network error"):
            await make_api(handler).list_sessions()

    @pytest.mark.asyncio
    async def test_malformed_exchange_is_service_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"userMessage": {"content": "no id"}})

        with pytest.raises(ServiceError, match="malformed"):
            await make_api(handler).send_message("c1", "q")
