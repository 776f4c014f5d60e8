"""Async client for the chat and upload endpoints."""
from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from estate_assistant.core.errors import ChatApiError, StreamTruncated
from estate_assistant.prompting.assembler import title_request
from estate_assistant.client.uploads import UploadCandidate, select_uploads
from estate_assistant.schemas.conversation import Message
from estate_assistant.schemas.upload import DocumentType, UploadResponse, UploadedFile

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class StreamEvent:
    done: bool = False
    text: str = ""


def parse_stream_line(line: str) -> Optional[StreamEvent]:
    """One line of the completion stream; None for lines that carry nothing."""
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):].strip()
    if payload == DONE_SENTINEL:
        return StreamEvent(done=True)
    try:
        obj = json.loads(payload)
    except json.JSONDecodeError:
        return None
    if not isinstance(obj, dict):
        return None
    text = obj.get("text")
    return StreamEvent(text=text) if isinstance(text, str) and text else None


def _error_message(resp: httpx.Response) -> str:
    try:
        return str(resp.json().get("error") or resp.reason_phrase)
    except ValueError:
        return resp.reason_phrase or f"HTTP {resp.status_code}"


def wire_message(message: Message) -> Dict[str, Any]:
    return {"role": message.role, "content": message.model_dump(mode="json", exclude_none=True)["content"]}


class ChatApiClient:
    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 120.0,
    ) -> None:
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}
        self.http = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            transport=transport,
            timeout=httpx.Timeout(timeout, connect=10.0),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _stream(
        self,
        body: Dict[str, Any],
        on_start: Optional[Callable[[], None]] = None,
        on_delta: Optional[Callable[[str], None]] = None,
    ) -> str:
        """POST to the chat endpoint and accumulate the streamed text.

        `on_start` fires once the response is accepted, `on_delta` with the
        text so far after every delta. Raises StreamTruncated when the stream
        ends without the sentinel.
        """
        text = ""
        async with self.http.stream("POST", "/api/chat", json=body) as resp:
            if resp.status_code != 200:
                await resp.aread()
                raise ChatApiError(_error_message(resp), resp.status_code)
            if on_start:
                on_start()
            async for line in resp.aiter_lines():
                event = parse_stream_line(line)
                if event is None:
                    continue
                if event.done:
                    return text
                text += event.text
                if on_delta:
                    on_delta(text)
        raise StreamTruncated("Completion stream ended early")

    async def stream_completion(
        self,
        prompt: str,
        conversation_id: Optional[str] = None,
        on_start: Optional[Callable[[], None]] = None,
        on_delta: Optional[Callable[[str], None]] = None,
    ) -> str:
        return await self._stream({"prompt": prompt, "conversationId": conversation_id}, on_start, on_delta)

    async def generate_title(self, text: str) -> str:
        request = title_request(text)
        body = {"messages": [m.model_dump(mode="json") for m in request.messages]}
        return (await self._stream(body)).strip()

    async def complete(self, messages: Sequence[Message], conversation_id: Optional[str] = None) -> str:
        """Non-streaming completion, used when files are attached."""
        body = {"conversationId": conversation_id, "messages": [wire_message(m) for m in messages]}
        resp = await self.http.post("/api/chat", json=body)
        if resp.status_code != 200:
            raise ChatApiError(_error_message(resp), resp.status_code)
        return str(resp.json().get("text") or "")

    async def upload_documents(
        self, candidates: Sequence[UploadCandidate], document_type: DocumentType
    ) -> List[UploadedFile]:
        accepted = select_uploads(candidates)
        if not accepted:
            return []
        files = [("files", (c.name, await c.read(), c.mime_type)) for c in accepted]
        resp = await self.http.post("/api/upload", files=files, data={"documentType": document_type.value})
        if resp.status_code != 200:
            raise ChatApiError(_error_message(resp), resp.status_code)
        return UploadResponse.model_validate(resp.json()).files
