from __future__ import annotations
from typing import List, Optional

import httpx
from pydantic import TypeAdapter

from estate_assistant.core.errors import ChatApiError
from estate_assistant.schemas.conversation import Conversation, Message

_conversations = TypeAdapter(List[Conversation])
_messages = TypeAdapter(List[Message])


class HttpStore:
    """ActorStore backed by the /api/v1 conversation endpoints.

    The actor is whoever the client's bearer token names.
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self.http = http

    @staticmethod
    def _check(resp: httpx.Response) -> None:
        if resp.status_code >= 400:
            raise ChatApiError(f"{resp.request.method} {resp.request.url.path} -> {resp.status_code}", resp.status_code)

    async def insert_conversation(self, title: str) -> Conversation:
        resp = await self.http.post("/api/v1/conversations", params={"title": title[:200]})
        self._check(resp)
        return Conversation.model_validate(resp.json())

    async def list_conversations(self) -> List[Conversation]:
        resp = await self.http.get("/api/v1/conversations")
        self._check(resp)
        return _conversations.validate_python(resp.json())

    async def delete_conversation(self, conversation_id: str) -> bool:
        resp = await self.http.delete(f"/api/v1/conversations/{conversation_id}")
        if resp.status_code == 404:
            return False
        self._check(resp)
        return True

    async def insert_message(self, conversation_id: str, message: Message) -> Optional[Message]:
        resp = await self.http.post(
            f"/api/v1/conversations/{conversation_id}/messages",
            json=message.model_dump(mode="json", exclude_none=True),
        )
        if resp.status_code == 404:
            return None
        self._check(resp)
        return Message.model_validate(resp.json())

    async def list_messages(self, conversation_id: str) -> Optional[List[Message]]:
        resp = await self.http.get(f"/api/v1/conversations/{conversation_id}/messages")
        if resp.status_code == 404:
            return None
        self._check(resp)
        return _messages.validate_python(resp.json())
