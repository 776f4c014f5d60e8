from __future__ import annotations
import logging
from dataclasses import replace
from typing import List, Optional, Sequence

import httpx

from estate_assistant.client.api import ChatApiClient
from estate_assistant.client.orchestrator import ChatOrchestrator, SendResult
from estate_assistant.client.remote_store import HttpStore
from estate_assistant.client.state import StateStore
from estate_assistant.client.uploads import UploadCandidate
from estate_assistant.config import Settings, get_settings
from estate_assistant.core.auth import Actor
from estate_assistant.prompting.topics import TOPICS_BY_ID
from estate_assistant.schemas.conversation import (
    ContentPart,
    Conversation,
    Message,
    MessageContent,
    MessageMetadata,
    TextPart,
)
from estate_assistant.schemas.upload import DocumentType, UploadedFile
from estate_assistant.store.base import ActorStore

logger = logging.getLogger(__name__)

SIGN_IN_REQUIRED = "sign in required"


class ChatSession:
    """One signed-in user's chat session.

    Without an actor every operation short-circuits into the sign-in prompt
    and nothing reaches the Store or the endpoints.
    """

    def __init__(
        self,
        actor: Optional[Actor],
        api: ChatApiClient,
        store: Optional[ActorStore] = None,
        state: Optional[StateStore] = None,
    ) -> None:
        self.actor = actor
        self.api = api
        self.state = state or StateStore()
        self.orchestrator: Optional[ChatOrchestrator] = None
        if actor is not None:
            self.orchestrator = ChatOrchestrator(store or HttpStore(api.http), api, self.state)

    @classmethod
    def connect(
        cls,
        actor: Optional[Actor],
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ChatSession":
        settings = settings or get_settings()
        api = ChatApiClient(
            settings.api_base_url,
            access_token=actor.access_token if actor else None,
            transport=transport,
            timeout=settings.request_timeout,
        )
        return cls(actor, api)

    @property
    def is_authenticated(self) -> bool:
        return self.orchestrator is not None

    def _require_sign_in(self) -> None:
        self.state.update(sign_in_required=True)

    async def start(self) -> List[Conversation]:
        if self.orchestrator is None:
            return []
        return await self.orchestrator.load_conversations()

    async def sign_out(self) -> None:
        self.actor = None
        self.orchestrator = None
        self.state.reset()
        await self.api.aclose()

    async def send_message(self, content: MessageContent, conversation_id: Optional[str] = None) -> SendResult:
        return await self._send(content, conversation_id)

    async def _send(
        self,
        content: MessageContent,
        conversation_id: Optional[str] = None,
        metadata: Optional[MessageMetadata] = None,
    ) -> SendResult:
        if self.orchestrator is None:
            self._require_sign_in()
            return SendResult(error=SIGN_IN_REQUIRED)
        conv_id = conversation_id or self.state.state.active_conversation_id
        return await self.orchestrator.send_message(content, conv_id, metadata)

    async def ask_about_topic(self, topic_id: str) -> SendResult:
        topic = TOPICS_BY_ID[topic_id]
        return await self._send(topic.prompt(), metadata=MessageMetadata(legal_area=topic.id))

    def new_conversation(self) -> None:
        self.state.update(active_conversation_id=None, messages=(), streaming_message=None)

    async def select_conversation(self, conversation_id: str) -> List[Message]:
        if self.orchestrator is None:
            self._require_sign_in()
            return []
        return await self.orchestrator.load_messages(conversation_id)

    async def delete_conversation(self, conversation_id: str) -> bool:
        if self.orchestrator is None:
            self._require_sign_in()
            return False
        return await self.orchestrator.delete_conversation(conversation_id)

    async def upload_documents(
        self, candidates: Sequence[UploadCandidate], document_type: DocumentType
    ) -> List[UploadedFile]:
        if self.orchestrator is None:
            self._require_sign_in()
            return []
        try:
            uploaded = await self.api.upload_documents(candidates, document_type)
        except Exception as e:
            logger.exception("Error uploading documents: %s", e)
            return []
        if uploaded:
            self.state.dispatch(lambda s: replace(s, uploaded_files=s.uploaded_files + tuple(uploaded)))
        return uploaded


def compose_with_uploads(text: str, files: Sequence[UploadedFile]) -> List[ContentPart]:
    """Message content asking about previously uploaded files."""
    parts: List[ContentPart] = [TextPart(text=text)] if text else []
    parts.extend(f.as_part() for f in files)
    return parts
