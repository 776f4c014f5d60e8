from __future__ import annotations
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from estate_assistant.core.errors import MalformedRequest
from estate_assistant.schemas.conversation import MessageContent, Role, has_file_data


class WireMessage(BaseModel):
    role: Role
    content: MessageContent


class PromptRequest(BaseModel):
    """`{prompt, messages?, conversationId?}`: streamed, history optional."""

    kind: Literal["prompt"] = "prompt"
    prompt: str = Field(..., min_length=1)
    messages: List[WireMessage] = Field(default_factory=list)
    conversationId: Optional[str] = None


class MessagesRequest(BaseModel):
    """`{messages}` with text content only: streamed."""

    kind: Literal["messages"] = "messages"
    messages: List[WireMessage] = Field(..., min_length=1)
    conversationId: Optional[str] = None


class AttachmentRequest(BaseModel):
    """`{messages}` where at least one message carries file data: answered in one piece."""

    kind: Literal["attachments"] = "attachments"
    messages: List[WireMessage] = Field(..., min_length=1)
    conversationId: Optional[str] = None


ChatRequest = Union[PromptRequest, MessagesRequest, AttachmentRequest]

_messages_adapter = TypeAdapter(List[WireMessage])


def parse_chat_request(body: Any) -> ChatRequest:
    """Decide the request variant once, at the HTTP boundary."""
    if not isinstance(body, dict):
        raise MalformedRequest("Invalid request format")
    fields = {k: v for k, v in body.items() if k != "kind"}
    try:
        raw_messages = fields.get("messages")
        if isinstance(raw_messages, list):
            messages = _messages_adapter.validate_python(raw_messages)
            if any(has_file_data(m.content) for m in messages):
                return AttachmentRequest.model_validate({**fields, "messages": messages})
        if "prompt" in fields:
            return PromptRequest.model_validate(fields)
        if isinstance(raw_messages, list):
            return MessagesRequest.model_validate(fields)
    except ValidationError as e:
        raise MalformedRequest("Invalid request format") from e
    raise MalformedRequest("Invalid request format")


class ChatTextResponse(BaseModel):
    text: str


class ErrorResponse(BaseModel):
    error: str
