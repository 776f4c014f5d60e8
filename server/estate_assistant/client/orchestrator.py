"""Drives one chat turn and keeps client-visible state consistent.

Three pieces of state move together here: the persisted message list, the
active conversation id and the transient streaming message. A turn only
touches the transcript and the streaming message while its conversation is
the active one. Failures at any Store or network call are logged and turned
into a neutral result, so callers never see an exception.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, replace
from typing import Callable, List, Optional

from estate_assistant.client.api import ChatApiClient
from estate_assistant.client.state import ChatState, StateStore
from estate_assistant.client.uploads import resolve_file_parts
from estate_assistant.schemas.conversation import (
    Conversation,
    Message,
    MessageContent,
    MessageMetadata,
    content_text,
    has_file_data,
    new_id,
)
from estate_assistant.store.base import ActorStore

logger = logging.getLogger(__name__)

TURN_IN_PROGRESS = "turn in progress"
EMPTY_MESSAGE = "empty message"
SEND_FAILED = "failed to send message"
NEW_CONVERSATION_KEY = "__new__"
TITLE_FALLBACK_CHARS = 100
TITLE_MAX_CHARS = 200


@dataclass(frozen=True)
class SendResult:
    conversation_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _is_empty(content: MessageContent) -> bool:
    if isinstance(content, str):
        return not content.strip()
    return not has_file_data(content) and not content_text(content).strip()


class ChatOrchestrator:
    def __init__(self, store: ActorStore, api: ChatApiClient, state: Optional[StateStore] = None) -> None:
        self.store = store
        self.api = api
        self.state = state or StateStore()

    # State helpers

    def _in_view(self, conv_id: Optional[str], reducer: Callable[[ChatState], ChatState]) -> None:
        """Apply `reducer` only while `conv_id` is the conversation on screen."""
        self.state.dispatch(lambda s: reducer(s) if s.active_conversation_id == conv_id else s)

    def _append(self, conv_id: Optional[str], message: Message) -> None:
        self._in_view(conv_id, lambda s: replace(s, messages=s.messages + (message,)))

    def _replace_message(self, message: Message) -> None:
        self.state.dispatch(
            lambda s: replace(s, messages=tuple(message if m.id == message.id else m for m in s.messages))
        )

    def _mark_unsent(self, message_id: str) -> None:
        self.state.dispatch(
            lambda s: replace(
                s,
                messages=tuple(
                    m.model_copy(update={"unsent": True}) if m.id == message_id else m for m in s.messages
                ),
            )
        )

    def _clear_streaming(self, reply_id: str) -> None:
        self.state.dispatch(
            lambda s: replace(s, streaming_message=None)
            if s.streaming_message is not None and s.streaming_message.id == reply_id
            else s
        )

    def _claim(self, key: str) -> bool:
        if key in self.state.state.in_flight:
            return False
        self.state.dispatch(lambda s: replace(s, in_flight=s.in_flight | {key}))
        return True

    def _release(self, *keys: str) -> None:
        self.state.dispatch(lambda s: replace(s, in_flight=s.in_flight - set(keys)))

    # Store access

    async def load_conversations(self) -> List[Conversation]:
        try:
            conversations = await self.store.list_conversations()
        except Exception as e:
            logger.exception("Error loading conversations: %s", e)
            return []
        self.state.update(conversations=tuple(conversations))
        return conversations

    async def load_messages(self, conversation_id: str) -> List[Message]:
        try:
            messages = await self.store.list_messages(conversation_id) or []
        except Exception as e:
            logger.exception("Error loading messages: %s", e)
            return []
        # A reply still streaming for another conversation stays off screen
        self.state.update(messages=tuple(messages), active_conversation_id=conversation_id, streaming_message=None)
        return messages

    async def delete_conversation(self, conversation_id: str) -> bool:
        try:
            deleted = await self.store.delete_conversation(conversation_id)
        except Exception as e:
            logger.exception("Error deleting conversation: %s", e)
            return False
        if self.state.state.active_conversation_id == conversation_id:
            self.state.update(active_conversation_id=None, messages=(), streaming_message=None)
        await self.load_conversations()
        return deleted

    async def _focus(self, conversation_id: Optional[str]) -> None:
        """Make the turn's conversation the one on screen."""
        if self.state.state.active_conversation_id == conversation_id:
            return
        if conversation_id is None:
            self.state.update(active_conversation_id=None, messages=(), streaming_message=None)
            return
        await self.load_messages(conversation_id)
        if self.state.state.active_conversation_id != conversation_id:
            self.state.update(active_conversation_id=conversation_id, messages=(), streaming_message=None)

    async def _save(self, conversation_id: str, message: Message) -> Optional[Message]:
        try:
            return await self.store.insert_message(conversation_id, message)
        except Exception as e:
            logger.exception("Error saving message: %s", e)
            return None

    async def _derive_title(self, text: str) -> str:
        try:
            title = await self.api.generate_title(text)
        except Exception as e:
            logger.exception("Error generating title: %s", e)
            title = ""
        return title[:TITLE_MAX_CHARS] or text[:TITLE_FALLBACK_CHARS]

    async def _create_conversation(self, text: str) -> Optional[str]:
        title = await self._derive_title(text)
        try:
            conversation = await self.store.insert_conversation(title)
        except Exception as e:
            logger.exception("Error creating conversation: %s", e)
            return None
        await self.load_conversations()
        return conversation.id

    # Turns

    async def send_message(
        self,
        content: MessageContent,
        conversation_id: Optional[str] = None,
        metadata: Optional[MessageMetadata] = None,
    ) -> SendResult:
        """Run one turn. `metadata` is attached to the assistant reply."""
        if _is_empty(content):
            return SendResult(conversation_id=conversation_id, error=EMPTY_MESSAGE)
        key = conversation_id or NEW_CONVERSATION_KEY
        if not self._claim(key):
            return SendResult(conversation_id=conversation_id, error=TURN_IN_PROGRESS)
        claimed = [key]
        try:
            return await self._run_turn(content, conversation_id, metadata, claimed)
        finally:
            self._release(*claimed)

    async def _run_turn(
        self,
        content: MessageContent,
        conversation_id: Optional[str],
        metadata: Optional[MessageMetadata],
        claimed: List[str],
    ) -> SendResult:
        # Same test the server uses to pick the non-streaming path
        attach = has_file_data(content)
        prompt = content_text(content)

        await self._focus(conversation_id)
        conv_id = conversation_id
        if conv_id is None and not attach:
            conv_id = await self._create_conversation(prompt)
            if conv_id:
                self._claim(conv_id)
                claimed.append(conv_id)
                self.state.update(active_conversation_id=conv_id)

        # Optimistic: shown before anything reaches the network
        user_message = Message(role="user", content=content)
        self._append(conv_id, user_message)
        reply_id = new_id()

        try:
            if attach:
                resolved = await resolve_file_parts(content)
                if resolved is not content:
                    user_message = user_message.model_copy(update={"content": resolved})
                    self._replace_message(user_message)

            if conv_id and await self._save(conv_id, user_message) is None:
                self._mark_unsent(user_message.id)

            if attach:
                await self._answer_with_attachments(user_message, conv_id, reply_id, metadata)
            else:
                await self._answer_streaming(prompt, conv_id, reply_id, metadata)
        except Exception as e:
            logger.exception("Error sending message: %s", e)
            self._mark_unsent(user_message.id)
            self._clear_streaming(reply_id)
            return SendResult(conversation_id=conv_id, error=SEND_FAILED)

        if conv_id:
            await self.load_conversations()
        return SendResult(conversation_id=conv_id)

    async def _finish(self, conv_id: Optional[str], message: Message) -> None:
        saved = await self._save(conv_id, message) if conv_id else None
        final = saved or message

        def land(s: ChatState) -> ChatState:
            streaming = s.streaming_message
            if streaming is not None and streaming.id == final.id:
                streaming = None
            if s.active_conversation_id != conv_id:
                # Persisted already; it shows up when the conversation is loaded
                return replace(s, streaming_message=streaming)
            # One update: the final message appears as the streaming one disappears
            return replace(s, messages=s.messages + (final,), streaming_message=streaming)

        self.state.dispatch(land)

    async def _answer_streaming(
        self, text: str, conv_id: Optional[str], reply_id: str, metadata: Optional[MessageMetadata]
    ) -> None:
        def on_start() -> None:
            self._in_view(
                conv_id, lambda s: replace(s, streaming_message=Message(id=reply_id, role="assistant", content=""))
            )

        def on_delta(so_far: str) -> None:
            def grow(s: ChatState) -> ChatState:
                current = s.streaming_message
                if current is None or current.id != reply_id:
                    return s
                return replace(s, streaming_message=current.model_copy(update={"content": so_far}))

            self._in_view(conv_id, grow)

        final_text = await self.api.stream_completion(text, conv_id, on_start=on_start, on_delta=on_delta)
        await self._finish(conv_id, Message(id=reply_id, role="assistant", content=final_text, metadata=metadata))

    async def _answer_with_attachments(
        self,
        user_message: Message,
        conv_id: Optional[str],
        reply_id: str,
        metadata: Optional[MessageMetadata],
    ) -> None:
        history: List[Message] = []
        if conv_id:
            try:
                history = await self.store.list_messages(conv_id) or []
            except Exception as e:
                logger.exception("Error loading history: %s", e)
        if not any(m.id == user_message.id for m in history):
            history = [*history, user_message]

        text = await self.api.complete(history, conv_id)
        await self._finish(conv_id, Message(id=reply_id, role="assistant", content=text, metadata=metadata))
