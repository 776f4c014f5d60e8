from __future__ import annotations
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, model_validator

Role = Literal["user", "assistant", "system"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything here is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_id() -> str:
    return str(uuid4())


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class FilePart(BaseModel):
    """A file attachment. `data` is base64; `path` is a local source not yet read."""

    type: Literal["file"] = "file"
    data: Optional[str] = None
    mimeType: Optional[str] = None
    name: Optional[str] = None
    path: Optional[Path] = Field(default=None, exclude=True)


ContentPart = Annotated[Union[TextPart, FilePart], Field(discriminator="type")]
MessageContent = Union[str, List[ContentPart]]

_parts_adapter = TypeAdapter(List[ContentPart])


class MessageMetadata(BaseModel):
    legal_area: Optional[str] = None
    confidence: Optional[float] = None
    citations: Optional[List[str]] = None
    disclaimer: Optional[bool] = None


class Message(BaseModel):
    id: str = Field(default_factory=new_id)
    content: MessageContent
    role: Role
    created_at: datetime = Field(default_factory=utcnow)
    metadata: Optional[MessageMetadata] = None
    # Client only: the turn that produced this message failed
    unsent: bool = Field(default=False, exclude=True)

    @model_validator(mode="after")
    def _metadata_on_assistant_only(self) -> "Message":
        if self.metadata is not None and self.role != "assistant":
            raise ValueError("metadata is only allowed on assistant messages")
        return self


class Conversation(BaseModel):
    id: str
    title: str
    created_at: datetime
    updated_at: datetime


def has_file_data(content: MessageContent) -> bool:
    if isinstance(content, str):
        return False
    return any(isinstance(p, FilePart) and (p.data or p.path) for p in content)


def content_text(content: MessageContent) -> str:
    """Text of a message with file parts left out."""
    if isinstance(content, str):
        return content
    return "\n".join(p.text for p in content if isinstance(p, TextPart))


def content_to_storage(content: MessageContent) -> str:
    """Messages are stored in a text column; typed parts become a JSON array."""
    if isinstance(content, str):
        return content
    return json.dumps([p.model_dump(exclude_none=True) for p in content], separators=(",", ":"))


def content_from_storage(raw: str) -> MessageContent:
    if not raw.startswith("["):
        return raw
    try:
        decoded = json.loads(raw)
    except ValueError:
        return raw
    if not isinstance(decoded, list) or not decoded:
        return raw
    if not all(isinstance(item, dict) and item.get("type") in ("text", "file") for item in decoded):
        return raw
    try:
        return _parts_adapter.validate_python(decoded)
    except ValidationError:
        return raw
