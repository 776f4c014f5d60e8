from __future__ import annotations
import logging
from typing import List, Optional

from sqlalchemy import delete
from sqlmodel import select

from estate_assistant.db.models import Conversation as ConversationModel, Message as MessageModel
from estate_assistant.db.session import AsyncSessionLocal, SessionFactory, get_session
from estate_assistant.schemas.conversation import (
    Conversation,
    Message,
    MessageMetadata,
    as_utc,
    content_from_storage,
    content_to_storage,
    utcnow,
)

logger = logging.getLogger(__name__)


def _to_conversation(row: ConversationModel) -> Conversation:
    return Conversation(
        id=row.id,
        title=row.title,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _to_message(row: MessageModel) -> Message:
    return Message(
        id=row.id,
        content=content_from_storage(row.content),
        role=row.role,  # type: ignore[arg-type]
        created_at=as_utc(row.created_at),
        metadata=MessageMetadata.model_validate(row.message_metadata) if row.message_metadata else None,
    )


class SqlConversationStore:
    """ConversationStore over SQLModel; Postgres in production, SQLite locally."""

    def __init__(self, session_factory: SessionFactory = AsyncSessionLocal) -> None:
        self.session_factory = session_factory

    async def _owned(self, session, user_id: str, conversation_id: str) -> Optional[ConversationModel]:
        row = await session.get(ConversationModel, conversation_id)
        if row is None or row.user_id != user_id:
            return None
        return row

    @staticmethod
    def _bump(row: ConversationModel) -> None:
        row.updated_at = max(utcnow(), as_utc(row.updated_at), as_utc(row.created_at))

    async def insert_conversation(self, user_id: str, title: str) -> Conversation:
        async with get_session(self.session_factory) as session:
            row = ConversationModel(user_id=user_id, title=title)
            session.add(row)
            await session.flush()
            await session.refresh(row)
            logger.info("Created conversation %s", row.id)
            return _to_conversation(row)

    async def list_conversations(self, user_id: str) -> List[Conversation]:
        async with get_session(self.session_factory) as session:
            stmt = (
                select(ConversationModel)
                .where(ConversationModel.user_id == user_id)
                .order_by(ConversationModel.updated_at.desc(), ConversationModel.id)  # type: ignore[attr-defined]
            )
            result = await session.exec(stmt)
            return [_to_conversation(row) for row in result.all()]

    async def get_conversation(self, user_id: str, conversation_id: str) -> Optional[Conversation]:
        async with get_session(self.session_factory) as session:
            row = await self._owned(session, user_id, conversation_id)
            return _to_conversation(row) if row else None

    async def rename_conversation(self, user_id: str, conversation_id: str, title: str) -> Optional[Conversation]:
        async with get_session(self.session_factory) as session:
            row = await self._owned(session, user_id, conversation_id)
            if row is None:
                return None
            row.title = title
            self._bump(row)
            await session.flush()
            return _to_conversation(row)

    async def touch_conversation(self, user_id: str, conversation_id: str) -> Optional[Conversation]:
        async with get_session(self.session_factory) as session:
            row = await self._owned(session, user_id, conversation_id)
            if row is None:
                return None
            self._bump(row)
            await session.flush()
            return _to_conversation(row)

    async def delete_conversation(self, user_id: str, conversation_id: str) -> bool:
        async with get_session(self.session_factory) as session:
            row = await self._owned(session, user_id, conversation_id)
            if row is None:
                return False
            # Explicit so the cascade holds even where the FK action is not enforced
            await session.execute(delete(MessageModel).where(MessageModel.conversation_id == conversation_id))
            await session.delete(row)
            logger.info("Deleted conversation %s", conversation_id)
            return True

    async def insert_message(self, user_id: str, conversation_id: str, message: Message) -> Optional[Message]:
        async with get_session(self.session_factory) as session:
            conv = await self._owned(session, user_id, conversation_id)
            if conv is None:
                return None
            # A repeated insert is a no-op instead of a primary key violation
            existing = await session.get(MessageModel, message.id)
            if existing is not None:
                return _to_message(existing) if existing.conversation_id == conversation_id else None
            row = MessageModel(
                id=message.id,
                conversation_id=conversation_id,
                content=content_to_storage(message.content),
                role=message.role,
                created_at=message.created_at,
                message_metadata=message.metadata.model_dump(exclude_none=True) if message.metadata else None,
            )
            session.add(row)
            # Touch in the same transaction so list ordering follows the message
            self._bump(conv)
            await session.flush()
            return _to_message(row)

    async def list_messages(self, user_id: str, conversation_id: str) -> Optional[List[Message]]:
        async with get_session(self.session_factory) as session:
            if await self._owned(session, user_id, conversation_id) is None:
                return None
            stmt = (
                select(MessageModel)
                .where(MessageModel.conversation_id == conversation_id)
                .order_by(MessageModel.created_at.asc(), MessageModel.id)  # type: ignore[attr-defined]
            )
            result = await session.exec(stmt)
            return [_to_message(row) for row in result.all()]
