from __future__ import annotations
from typing import List, Optional, Protocol

from estate_assistant.schemas.conversation import Conversation, Message


class ConversationStore(Protocol):
    """Persistence for conversations and messages, always scoped by user id."""

    async def insert_conversation(self, user_id: str, title: str) -> Conversation:
        ...

    async def list_conversations(self, user_id: str) -> List[Conversation]:
        """Most recently active first."""
        ...

    async def get_conversation(self, user_id: str, conversation_id: str) -> Optional[Conversation]:
        ...

    async def rename_conversation(self, user_id: str, conversation_id: str, title: str) -> Optional[Conversation]:
        ...

    async def touch_conversation(self, user_id: str, conversation_id: str) -> Optional[Conversation]:
        ...

    async def delete_conversation(self, user_id: str, conversation_id: str) -> bool:
        """Delete the conversation and all of its messages."""
        ...

    async def insert_message(self, user_id: str, conversation_id: str, message: Message) -> Optional[Message]:
        """Persist `message` and bump the conversation's updated_at in one transaction.

        Returns None when the conversation is not visible to `user_id`.
        """
        ...

    async def list_messages(self, user_id: str, conversation_id: str) -> Optional[List[Message]]:
        """Oldest first. None when the conversation is not visible to `user_id`."""
        ...


class ActorStore(Protocol):
    """A ConversationStore already bound to one actor."""

    async def insert_conversation(self, title: str) -> Conversation:
        ...

    async def list_conversations(self) -> List[Conversation]:
        ...

    async def delete_conversation(self, conversation_id: str) -> bool:
        ...

    async def insert_message(self, conversation_id: str, message: Message) -> Optional[Message]:
        ...

    async def list_messages(self, conversation_id: str) -> Optional[List[Message]]:
        ...


class ScopedStore:
    """Binds a ConversationStore to a single actor."""

    def __init__(self, store: ConversationStore, user_id: str) -> None:
        self.store = store
        self.user_id = user_id

    async def insert_conversation(self, title: str) -> Conversation:
        return await self.store.insert_conversation(self.user_id, title)

    async def list_conversations(self) -> List[Conversation]:
        return await self.store.list_conversations(self.user_id)

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return await self.store.get_conversation(self.user_id, conversation_id)

    async def rename_conversation(self, conversation_id: str, title: str) -> Optional[Conversation]:
        return await self.store.rename_conversation(self.user_id, conversation_id, title)

    async def touch_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return await self.store.touch_conversation(self.user_id, conversation_id)

    async def delete_conversation(self, conversation_id: str) -> bool:
        return await self.store.delete_conversation(self.user_id, conversation_id)

    async def insert_message(self, conversation_id: str, message: Message) -> Optional[Message]:
        return await self.store.insert_message(self.user_id, conversation_id, message)

    async def list_messages(self, conversation_id: str) -> Optional[List[Message]]:
        return await self.store.list_messages(self.user_id, conversation_id)
