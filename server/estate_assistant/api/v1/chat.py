from __future__ import annotations
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from estate_assistant.core.auth import Actor, get_optional_actor
from estate_assistant.core.errors import MalformedRequest
from estate_assistant.prompting.assembler import BlockCompletion, assemble
from estate_assistant.providers.base import CompletionProvider
from estate_assistant.providers.gemini import get_provider
from estate_assistant.schemas.chat import ChatTextResponse, ErrorResponse, PromptRequest, WireMessage, parse_chat_request
from estate_assistant.schemas.conversation import content_text
from estate_assistant.store.base import ConversationStore
from estate_assistant.store.deps import get_store

router = APIRouter()
logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"
GENERIC_FAILURE = "Failed to generate response"


def sse_event(text: str) -> str:
    return DATA_PREFIX + json.dumps({"text": text}) + "\n\n"


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


async def rehydrate_history(
    request: PromptRequest, actor: Optional[Actor], store: ConversationStore
) -> List[WireMessage]:
    """Persisted history for a prompt that names its conversation.

    The client persists the new user message before asking for a completion,
    so a trailing copy of the prompt is dropped to avoid sending it twice.
    """
    if not request.conversationId or actor is None:
        return []
    messages = await store.list_messages(actor.user_id, request.conversationId)
    if not messages:
        return []
    last = messages[-1]
    if last.role == "user" and content_text(last.content) == request.prompt:
        messages = messages[:-1]
    return [WireMessage(role=m.role, content=m.content) for m in messages]


@router.post("/chat")
async def chat(
    http_request: Request,
    actor: Optional[Actor] = Depends(get_optional_actor),
    store: ConversationStore = Depends(get_store),
    provider: CompletionProvider = Depends(get_provider),
):
    """Answer a chat request: JSON for attachments, a text stream otherwise."""
    try:
        body = await http_request.json()
    except ValueError:
        return error_response(400, "Invalid request format")

    try:
        chat_request = parse_chat_request(body)
        history: List[WireMessage] = []
        if isinstance(chat_request, PromptRequest):
            history = await rehydrate_history(chat_request, actor, store)
        payload = assemble(chat_request, history)
    except MalformedRequest as e:
        return error_response(400, str(e))
    except Exception as e:
        logger.exception("/chat history lookup failed: %s", e)
        return error_response(500, GENERIC_FAILURE)

    logger.info("/chat kind=%s conversation=%s", chat_request.kind, chat_request.conversationId)

    if isinstance(payload, BlockCompletion):
        try:
            text = await provider.generate(payload)
        except Exception as e:
            logger.exception("/chat generation failed: %s", e)
            return error_response(500, GENERIC_FAILURE)
        return ChatTextResponse(text=text)

    deltas = provider.stream(payload)
    # Pull the first delta here so failures before any output still get a status code
    first: Optional[str] = None
    try:
        first = await anext(deltas)
    except StopAsyncIteration:
        pass
    except Exception as e:
        logger.exception("/chat stream failed to start: %s", e)
        return error_response(500, GENERIC_FAILURE)

    async def generator():
        if first:
            yield sse_event(first)
        if first is not None:
            try:
                async for delta in deltas:
                    yield sse_event(delta)
            except Exception as e:
                # No sentinel: the client treats the stream as truncated
                logger.exception("/chat stream aborted: %s", e)
                return
        yield DATA_PREFIX + DONE_SENTINEL + "\n\n"

    return StreamingResponse(
        generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
