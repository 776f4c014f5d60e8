from __future__ import annotations
import threading
from typing import Dict, List, Optional

from estate_assistant.schemas.conversation import Conversation, Message, new_id, utcnow


class MemoryStore:
    """In-process ConversationStore, used with `memory_mode` and in tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # owner_id -> conv_id -> Conversation
        self._conversations: Dict[str, Dict[str, Conversation]] = {}
        # conv_id -> List[Message]
        self._messages: Dict[str, List[Message]] = {}
        # message id -> conv_id
        self._message_conv: Dict[str, str] = {}

    def _owned(self, owner_id: str, conv_id: str) -> Optional[Conversation]:
        return self._conversations.get(owner_id, {}).get(conv_id)

    def _bump(self, conv: Conversation) -> None:
        # updated_at never moves backwards and never precedes created_at
        conv.updated_at = max(utcnow(), conv.updated_at, conv.created_at)

    # Conversations
    async def list_conversations(self, owner_id: str) -> List[Conversation]:
        with self._lock:
            rows = list(self._conversations.get(owner_id, {}).values())
            rows.sort(key=lambda c: c.updated_at, reverse=True)
            return [c.model_copy() for c in rows]

    async def insert_conversation(self, owner_id: str, title: str) -> Conversation:
        now = utcnow()
        conv = Conversation(id=new_id(), title=title, created_at=now, updated_at=now)
        with self._lock:
            self._conversations.setdefault(owner_id, {})[conv.id] = conv
            self._messages.setdefault(conv.id, [])
        return conv.model_copy()

    async def get_conversation(self, owner_id: str, conv_id: str) -> Optional[Conversation]:
        with self._lock:
            conv = self._owned(owner_id, conv_id)
            return conv.model_copy() if conv else None

    async def rename_conversation(self, owner_id: str, conv_id: str, title: str) -> Optional[Conversation]:
        with self._lock:
            conv = self._owned(owner_id, conv_id)
            if not conv:
                return None
            conv.title = title
            self._bump(conv)
            return conv.model_copy()

    async def touch_conversation(self, owner_id: str, conv_id: str) -> Optional[Conversation]:
        with self._lock:
            conv = self._owned(owner_id, conv_id)
            if not conv:
                return None
            self._bump(conv)
            return conv.model_copy()

    async def delete_conversation(self, owner_id: str, conv_id: str) -> bool:
        with self._lock:
            convs = self._conversations.get(owner_id, {})
            if conv_id not in convs:
                return False
            del convs[conv_id]
            for m in self._messages.pop(conv_id, []):
                self._message_conv.pop(m.id, None)
            return True

    # Messages
    async def list_messages(self, owner_id: str, conv_id: str) -> Optional[List[Message]]:
        with self._lock:
            if not self._owned(owner_id, conv_id):
                return None
            msgs = list(self._messages.get(conv_id, []))
            msgs.sort(key=lambda m: m.created_at)
            return [m.model_copy(deep=True) for m in msgs]

    async def insert_message(self, owner_id: str, conv_id: str, message: Message) -> Optional[Message]:
        with self._lock:
            conv = self._owned(owner_id, conv_id)
            if not conv:
                return None
            # Ids are unique across conversations; a repeated insert is a no-op
            existing_conv = self._message_conv.get(message.id)
            if existing_conv is not None:
                if existing_conv != conv_id:
                    return None
                stored = next(m for m in self._messages[conv_id] if m.id == message.id)
                return stored.model_copy(deep=True)
            stored = message.model_copy(deep=True, update={"unsent": False})
            self._messages.setdefault(conv_id, []).append(stored)
            self._message_conv[stored.id] = conv_id
            self._bump(conv)
            return stored.model_copy(deep=True)
