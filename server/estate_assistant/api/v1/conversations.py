from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Dict, List

from estate_assistant.core.auth import Actor, get_current_actor
from estate_assistant.schemas.conversation import Conversation, Message
from estate_assistant.store.base import ConversationStore
from estate_assistant.store.deps import get_store

router = APIRouter()


@router.get("/conversations", response_model=List[Conversation])
async def get_conversations(
    actor: Actor = Depends(get_current_actor), store: ConversationStore = Depends(get_store)
) -> List[Conversation]:
    """Get all conversations (most recent first)."""
    return await store.list_conversations(actor.user_id)


@router.post("/conversations", response_model=Conversation)
async def create_conversation(
    title: str = Query("New Conversation", min_length=1, max_length=200),
    actor: Actor = Depends(get_current_actor),
    store: ConversationStore = Depends(get_store),
) -> Conversation:
    """Create a new conversation."""
    return await store.insert_conversation(actor.user_id, title)


@router.patch("/conversations/{conversation_id}", response_model=Conversation)
async def rename_conversation(
    conversation_id: str,
    title: str = Query(..., min_length=1, max_length=200),
    actor: Actor = Depends(get_current_actor),
    store: ConversationStore = Depends(get_store),
) -> Conversation:
    """Rename a conversation."""
    conv = await store.rename_conversation(actor.user_id, conversation_id, title)
    if not conv:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conv


@router.post("/conversations/{conversation_id}/touch", response_model=Conversation)
async def touch_conversation(
    conversation_id: str, actor: Actor = Depends(get_current_actor), store: ConversationStore = Depends(get_store)
) -> Conversation:
    """Bump a conversation's updated_at."""
    conv = await store.touch_conversation(actor.user_id, conversation_id)
    if not conv:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conv


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: str, actor: Actor = Depends(get_current_actor), store: ConversationStore = Depends(get_store)
) -> Dict[str, str]:
    """Delete a conversation and its messages."""
    if not await store.delete_conversation(actor.user_id, conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"status": "deleted", "id": conversation_id}


@router.get("/conversations/{conversation_id}/messages", response_model=List[Message])
async def list_messages(
    conversation_id: str, actor: Actor = Depends(get_current_actor), store: ConversationStore = Depends(get_store)
) -> List[Message]:
    """List messages for a conversation (oldest first)."""
    msgs = await store.list_messages(actor.user_id, conversation_id)
    if msgs is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return msgs


@router.post("/conversations/{conversation_id}/messages", response_model=Message)
async def create_message(
    conversation_id: str,
    message: Message,
    actor: Actor = Depends(get_current_actor),
    store: ConversationStore = Depends(get_store),
) -> Message:
    """Persist a message; the conversation is touched in the same write."""
    saved = await store.insert_message(actor.user_id, conversation_id, message)
    if saved is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return saved
