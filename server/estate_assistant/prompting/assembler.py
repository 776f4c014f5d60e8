"""Turns chat requests into the payload the completion provider expects.

Two payload shapes exist. `TextCompletion` is a system instruction plus one
free-text prompt, used for streamed answers. `BlockCompletion` is a list of
role-tagged content blocks, used when files are attached. Assembly is a pure
function of its inputs.
"""
from __future__ import annotations
import base64
import binascii
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple, Union

from estate_assistant.core.errors import MalformedRequest
from estate_assistant.schemas.chat import (
    AttachmentRequest,
    ChatRequest,
    MessagesRequest,
    PromptRequest,
    WireMessage,
)
from estate_assistant.schemas.conversation import FilePart, Role, TextPart, content_text

DEFAULT_SYSTEM_PROMPT = """You are a helpful assistant for real estate matters. Format your responses using markdown:
- Use bullet points for lists
- Use numbered lists for steps or sequences
- Use headings (##) for main topics
- Use bold (**) for emphasis
- Use proper line breaks between paragraphs
- Use code blocks (``) for technical terms
- Keep paragraphs concise and well-spaced

You give general, informational guidance on real estate matters. You do not give legal advice. When a request asks for legal advice, say plainly that you cannot provide legal advice, then offer general information on the topic and suggest consulting a licensed attorney.

Remember to maintain context from the previous messages in the conversation when responding."""

TITLE_SYSTEM_PROMPT = (
    "You are a title generator. Generate a very brief (3-5 words) title. "
    "Response should be ONLY the title, nothing else."
)

ROLE_LABELS = {"user": "User", "assistant": "Assistant", "system": "System"}

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class TextCompletion:
    system: str
    prompt: str


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class FileBlock:
    data: bytes
    mime_type: str


Block = Union[TextBlock, FileBlock]


@dataclass(frozen=True)
class ContentMessage:
    role: Role
    blocks: Tuple[Block, ...]


@dataclass(frozen=True)
class BlockCompletion:
    system: str
    messages: Tuple[ContentMessage, ...]


CompletionPayload = Union[TextCompletion, BlockCompletion]


def flatten_transcript(messages: Iterable[WireMessage]) -> str:
    return "\n\n".join(f"{ROLE_LABELS[m.role]}: {content_text(m.content)}" for m in messages)


def _split_system(messages: Sequence[WireMessage]) -> Tuple[str, Sequence[WireMessage]]:
    """A leading system message replaces the default instruction."""
    if messages and messages[0].role == "system":
        return content_text(messages[0].content), messages[1:]
    return DEFAULT_SYSTEM_PROMPT, messages


def decode_file_data(data: str) -> bytes:
    # Tolerate data URLs ("data:application/pdf;base64,....")
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedRequest("File data is not valid base64") from e


def _blocks(message: WireMessage) -> Tuple[Block, ...]:
    if isinstance(message.content, str):
        return (TextBlock(message.content),) if message.content else ()
    blocks: List[Block] = []
    for part in message.content:
        if isinstance(part, TextPart):
            if part.text:
                blocks.append(TextBlock(part.text))
        elif isinstance(part, FilePart):
            if part.data:
                blocks.append(FileBlock(decode_file_data(part.data), part.mimeType or DEFAULT_MIME_TYPE))
            else:
                blocks.append(TextBlock(f"[Attached file: {part.name or 'unnamed'}]"))
    return tuple(blocks)


def assemble_prompt(request: PromptRequest, history: Sequence[WireMessage] = ()) -> TextCompletion:
    prior = [*history, *request.messages]
    prompt = request.prompt
    if prior:
        prompt = f"{flatten_transcript(prior)}\n\nUser: {prompt}"
    return TextCompletion(system=DEFAULT_SYSTEM_PROMPT, prompt=prompt)


def assemble_messages(request: MessagesRequest) -> TextCompletion:
    system, rest = _split_system(request.messages)
    return TextCompletion(system=system, prompt=flatten_transcript(rest))


def assemble_attachments(request: AttachmentRequest) -> BlockCompletion:
    system, rest = _split_system(request.messages)
    messages = []
    for m in rest:
        blocks = _blocks(m)
        if blocks:
            messages.append(ContentMessage(role=m.role, blocks=blocks))
    if not messages:
        raise MalformedRequest("Request has no content")
    return BlockCompletion(system=system, messages=tuple(messages))


def assemble(request: ChatRequest, history: Sequence[WireMessage] = ()) -> CompletionPayload:
    """`history` is persisted context rehydrated for prompt requests."""
    if isinstance(request, PromptRequest):
        return assemble_prompt(request, history)
    if isinstance(request, MessagesRequest):
        return assemble_messages(request)
    return assemble_attachments(request)


def title_request(text: str) -> MessagesRequest:
    """The summarisation request that names a new conversation."""
    return MessagesRequest(
        messages=[
            WireMessage(role="system", content=TITLE_SYSTEM_PROMPT),
            WireMessage(role="user", content=text),
        ]
    )
