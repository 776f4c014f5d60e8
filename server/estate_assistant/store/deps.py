from __future__ import annotations
from functools import lru_cache

from estate_assistant.config import get_settings
from estate_assistant.store.accounts import AccountStore, MemoryAccountStore, SqlAccountStore
from estate_assistant.store.base import ConversationStore
from estate_assistant.store.memory import MemoryStore
from estate_assistant.store.sql import SqlConversationStore


@lru_cache()
def get_store() -> ConversationStore:
    if get_settings().memory_mode:
        return MemoryStore()
    return SqlConversationStore()


@lru_cache()
def get_account_store() -> AccountStore:
    if get_settings().memory_mode:
        return MemoryAccountStore()
    return SqlAccountStore()
