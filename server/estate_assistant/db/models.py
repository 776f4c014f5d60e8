from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, DateTime, Text
from sqlmodel import Field, SQLModel

from estate_assistant.schemas.conversation import new_id, utcnow


class Conversation(SQLModel, table=True):
    __tablename__ = "conversations"  # type: ignore[assignment]

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    title: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)


class Message(SQLModel, table=True):
    __tablename__ = "messages"  # type: ignore[assignment]

    id: str = Field(default_factory=new_id, primary_key=True)
    conversation_id: str = Field(index=True, foreign_key="conversations.id", ondelete="CASCADE")
    content: str = Field(sa_type=Text)
    role: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)
    # "metadata" is reserved on declarative classes
    message_metadata: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column("metadata", JSON))


class UploadedDocument(SQLModel, table=True):
    __tablename__ = "uploaded_documents"  # type: ignore[assignment]

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    name: str
    mime_type: str
    size: int
    document_type: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class UserProfile(SQLModel, table=True):
    __tablename__ = "user_profiles"  # type: ignore[assignment]

    id: str = Field(primary_key=True)
    email: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
