import logging
from typing import Any, Protocol

import httpx

from colloquy.config import ClientConfig
from colloquy.errors import ChatError, InvalidInput, NotFound, ServiceError, Unauthorized
from colloquy.models import Exchange, Message, PersistedId, Session

logger = logging.getLogger(__name__)


class ChatService(Protocol):
    async def list_sessions(self) -> list[Session]: ...

    async def create_session(self) -> Session: ...

    async def delete_session(self, session_id: str) -> None: ...

    async def list_messages(self, session_id: str) -> list[Message]: ...

    async def send_message(self, session_id: str, content: str) -> Exchange: ...

    async def edit_message(
        self, session_id: str, message_id: PersistedId, content: str
    ) -> Exchange: ...

    async def delete_message(self, session_id: str, message_id: PersistedId) -> None: ...


def _error_text(response: httpx.Response) -> str:
    message = response.reason_phrase or "Request failed"
    try:
        text = response.text
    except Exception:
        return message
    if not text:
        return message
    try:
        data = response.json()
    except ValueError:
        return text
    if isinstance(data, dict):
        return data.get("error") or data.get("message") or message
    return message


def error_from_response(response: httpx.Response) -> ChatError:
    status = response.status_code
    text = _error_text(response)
    if status in (401, 403):
        return Unauthorized(text, status_code=status)
    if status == 404:
        return NotFound(text, status_code=status)
    if status in (400, 422):
        return InvalidInput(text, status_code=status)
    return ServiceError(text, status_code=status)


class ChatAPI:
    """HTTP client for the chat backend. Cancellation is task cancellation."""

    def __init__(self, config: ClientConfig | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config or ClientConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.config.token:
                headers["Authorization"] = f"Bearer {self.config.token}"
            self._client = httpx.AsyncClient(
                base_url=self.config.api_url.rstrip("/") + "/api",
                headers=headers,
                timeout=self.config.request_timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, json: dict | None = None) -> Any:
        try:
            response = await self.client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise ServiceError(f"timeout: {e}") from e
        except httpx.RequestError as e:
            raise ServiceError(f"network error: {e}") from e

        if response.is_error:
            error = error_from_response(response)
            logger.warning(f"{method} {path} failed with {response.status_code}: {error}")
            raise error

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ServiceError(f"server error: invalid JSON from {path}") from e

    async def list_sessions(self) -> list[Session]:
        data = await self._request("GET", "/chats")
        try:
            return [Session.from_wire(item) for item in data or []]
        except (KeyError, TypeError, ValueError) as e:
            raise ServiceError(f"server error: malformed chat list: {e}") from e

    async def create_session(self) -> Session:
        data = await self._request("POST", "/chats", json={})
        try:
            return Session.from_wire(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ServiceError(f"server error: malformed chat: {e}") from e

    async def delete_session(self, session_id: str) -> None:
        await self._request("DELETE", f"/chats/{session_id}")

    async def list_messages(self, session_id: str) -> list[Message]:
        data = await self._request("GET", f"/chats/{session_id}/messages")
        try:
            return [Message.from_wire(item) for item in data or []]
        except (KeyError, TypeError, ValueError) as e:
            raise ServiceError(f"server error: malformed message list: {e}") from e

    async def send_message(self, session_id: str, content: str) -> Exchange:
        data = await self._request(
            "POST", f"/chats/{session_id}/messages/send", json={"content": content}
        )
        return self._exchange(data)

    async def edit_message(self, session_id: str, message_id: PersistedId, content: str) -> Exchange:
        data = await self._request(
            "POST",
            f"/chats/{session_id}/messages/edit",
            json={"messageId": message_id.key, "content": content},
        )
        return self._exchange(data)

    async def delete_message(self, session_id: str, message_id: PersistedId) -> None:
        await self._request("DELETE", f"/chats/{session_id}/messages/{message_id.key}")

    def _exchange(self, data: Any) -> Exchange:
        try:
            return Exchange.from_wire(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ServiceError(f"server error: malformed exchange: {e}") from e
