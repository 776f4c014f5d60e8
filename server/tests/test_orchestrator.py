"""Tests for ChatOrchestrator turn handling and state consistency."""

import asyncio
import base64

import pytest

from estate_assistant.client.orchestrator import (
    EMPTY_MESSAGE,
    SEND_FAILED,
    TURN_IN_PROGRESS,
    ChatOrchestrator,
)
from estate_assistant.client.state import StateStore
from estate_assistant.core.errors import ChatApiError, StreamTruncated
from estate_assistant.schemas.conversation import FilePart, Message, MessageMetadata, TextPart
from estate_assistant.store.base import ScopedStore
from estate_assistant.store.memory import MemoryStore


class FakeApi:
    """Duck-typed ChatApiClient that replays scripted deltas."""

    def __init__(self, deltas=("A lease ", "is a rental ", "contract."), title="Lease Basics"):
        self.deltas = list(deltas)
        self.title = title
        self.error = None
        self.title_error = None
        self.gate = None
        self.mid_stream = None
        self.calls = []

    async def stream_completion(self, prompt, conversation_id=None, on_start=None, on_delta=None):
        self.calls.append(("stream", prompt, conversation_id))
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise self.error
        if on_start:
            on_start()
        text = ""
        for i, delta in enumerate(self.deltas):
            text += delta
            if on_delta:
                on_delta(text)
            if i == 0 and self.mid_stream is not None:
                await self.mid_stream.wait()
        return text

    async def generate_title(self, text):
        self.calls.append(("title", text))
        if self.title_error:
            raise self.title_error
        return self.title

    async def complete(self, messages, conversation_id=None):
        self.calls.append(("complete", list(messages), conversation_id))
        if self.error:
            raise self.error
        return "The document is a lease."


class RecordingStore(ScopedStore):
    def __init__(self, store, user_id):
        super().__init__(store, user_id)
        self.log = []
        self.fail_inserts = False
        self.fail_lists = False

    async def insert_conversation(self, title):
        conv = await super().insert_conversation(title)
        self.log.append(("conversation", conv.id))
        return conv

    async def insert_message(self, conversation_id, message):
        if self.fail_inserts:
            raise RuntimeError("database unavailable")
        self.log.append(("message", conversation_id, message.role))
        return await super().insert_message(conversation_id, message)

    async def list_conversations(self):
        if self.fail_lists:
            raise RuntimeError("database unavailable")
        return await super().list_conversations()


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def store():
    return RecordingStore(MemoryStore(), "user-1")


@pytest.fixture
def state():
    return StateStore()


@pytest.fixture
def orchestrator(store, api, state):
    return ChatOrchestrator(store, api, state)


class TestNewConversation:
    @pytest.mark.asyncio
    async def test_first_question_creates_a_titled_conversation(self, orchestrator, store, state):
        result = await orchestrator.send_message("What is a lease?")

        assert result.ok
        conversations = await store.list_conversations()
        assert [c.title for c in conversations] == ["Lease Basics"]
        assert result.conversation_id == conversations[0].id

        persisted = await store.list_messages(result.conversation_id)
        assert [(m.role, m.content) for m in persisted] == [
            ("user", "What is a lease?"),
            ("assistant", "A lease is a rental contract."),
        ]
        current = state.state
        assert current.active_conversation_id == result.conversation_id
        assert [m.content for m in current.messages] == ["What is a lease?", "A lease is a rental contract."]
        assert current.streaming_message is None
        assert not current.is_loading
        assert [c.id for c in current.conversations] == [result.conversation_id]

    @pytest.mark.asyncio
    async def test_conversation_exists_before_any_message(self, orchestrator, store):
        await orchestrator.send_message("What is a lease?")
        assert store.log[0][0] == "conversation"
        assert [entry[2] for entry in store.log[1:]] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_title_falls_back_to_the_question(self, orchestrator, store, api):
        api.title_error = ChatApiError("title service down", 500)
        question = "Can my landlord keep my security deposit for normal wear and tear? " * 3
        await orchestrator.send_message(question)
        [conv] = await store.list_conversations()
        assert conv.title == question[:100]

    @pytest.mark.asyncio
    async def test_stream_asks_with_the_new_conversation_id(self, orchestrator, api):
        result = await orchestrator.send_message("What is a lease?")
        assert ("stream", "What is a lease?", result.conversation_id) in api.calls


class TestStreamingState:
    @pytest.mark.asyncio
    async def test_streaming_and_final_message_never_coexist(self, orchestrator, state):
        snapshots = []
        state.subscribe(snapshots.append)

        await orchestrator.send_message("What is a lease?")

        def final_assistants(s):
            return [m for m in s.messages if m.role == "assistant"]

        for s in snapshots:
            assert not (s.streaming_message is not None and final_assistants(s))
        first_stream = next(i for i, s in enumerate(snapshots) if s.streaming_message is not None)
        for s in snapshots[first_stream:]:
            assert (s.streaming_message is not None) != bool(final_assistants(s))

    @pytest.mark.asyncio
    async def test_streaming_text_grows_monotonically(self, orchestrator, state):
        partials = []
        state.subscribe(lambda s: s.streaming_message and partials.append(s.streaming_message.content))

        await orchestrator.send_message("What is a lease?")

        assert partials[0] == ""
        for before, after in zip(partials, partials[1:]):
            assert after.startswith(before)
        assert partials[-1] == "A lease is a rental contract."

    @pytest.mark.asyncio
    async def test_metadata_lands_on_the_assistant_reply(self, orchestrator, store):
        result = await orchestrator.send_message("Zoning?", metadata=MessageMetadata(legal_area="zoning-permits"))
        user, reply = await store.list_messages(result.conversation_id)
        assert user.metadata is None
        assert reply.metadata.legal_area == "zoning-permits"


class TestFailures:
    @pytest.mark.asyncio
    async def test_failed_stream_leaves_the_question_marked_unsent(self, orchestrator, store, api, state):
        api.error = StreamTruncated("Completion stream ended early")

        result = await orchestrator.send_message("What is a lease?")

        assert result.error == SEND_FAILED
        [message] = state.state.messages
        assert message.content == "What is a lease?"
        assert message.unsent
        assert state.state.streaming_message is None
        assert not state.state.is_loading
        persisted = await store.list_messages(result.conversation_id)
        assert [m.role for m in persisted] == ["user"]

    @pytest.mark.asyncio
    async def test_store_failure_still_answers(self, orchestrator, store, state):
        conv = await store.insert_conversation("Existing")
        store.fail_inserts = True

        result = await orchestrator.send_message("What is a lease?", conv.id)

        assert result.ok
        user, reply = state.state.messages
        assert user.unsent
        assert reply.content == "A lease is a rental contract."
        assert state.state.streaming_message is None

    @pytest.mark.asyncio
    async def test_empty_message_is_ignored(self, orchestrator, api):
        result = await orchestrator.send_message("   ")
        assert result.error == EMPTY_MESSAGE
        assert api.calls == []

    @pytest.mark.asyncio
    async def test_load_failure_is_neutral(self, orchestrator, store):
        store.fail_lists = True
        assert await orchestrator.load_conversations() == []


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_overlapping_send_to_the_same_conversation_is_rejected(self, orchestrator, store, api):
        conv = await store.insert_conversation("Busy")
        api.gate = asyncio.Event()

        first = asyncio.create_task(orchestrator.send_message("First question", conv.id))
        while not any(call[0] == "stream" for call in api.calls):
            await asyncio.sleep(0)

        second = await orchestrator.send_message("Second question", conv.id)
        assert second.error == TURN_IN_PROGRESS

        api.gate.set()
        assert (await first).ok
        persisted = await store.list_messages(conv.id)
        assert [m.content for m in persisted if m.role == "user"] == ["First question"]

    @pytest.mark.asyncio
    async def test_in_flight_marks_are_released(self, orchestrator, store, state):
        conv = await store.insert_conversation("Calm")
        await orchestrator.send_message("One", conv.id)
        assert state.state.in_flight == frozenset()
        assert (await orchestrator.send_message("Two", conv.id)).ok


class TestAttachments:
    @pytest.mark.asyncio
    async def test_file_turn_sends_history_and_file(self, orchestrator, store, api, state, tmp_path):
        conv = await store.insert_conversation("Docs")
        await orchestrator.send_message("What is a lease?", conv.id)
        path = tmp_path / "lease.pdf"
        path.write_bytes(b"%PDF-1.4")
        content = [TextPart(text="What does this say?"), FilePart(path=path, mimeType="application/pdf")]

        result = await orchestrator.send_message(content, conv.id)

        assert result.ok
        _, messages, conversation_id = next(call for call in api.calls if call[0] == "complete")
        assert conversation_id == conv.id
        assert [m.role for m in messages] == ["user", "assistant", "user"]
        file_part = messages[-1].content[1]
        assert base64.b64decode(file_part.data) == b"%PDF-1.4"
        assert file_part.name == "lease.pdf"

        persisted = await store.list_messages(conv.id)
        assert persisted[-1].content == "The document is a lease."
        assert state.state.messages[-1].content == "The document is a lease."
        assert state.state.streaming_message is None

    @pytest.mark.asyncio
    async def test_file_turn_without_conversation_is_not_persisted(self, orchestrator, store, state):
        content = [TextPart(text="Summarise"), FilePart(data="JVBERg==", mimeType="application/pdf")]
        result = await orchestrator.send_message(content)
        assert result.ok
        assert result.conversation_id is None
        assert await store.list_conversations() == []
        assert [m.role for m in state.state.messages] == ["user", "assistant"]


class TestLoading:
    @pytest.mark.asyncio
    async def test_load_messages_selects_the_conversation(self, orchestrator, store, state):
        result = await orchestrator.send_message("What is a lease?")
        state.reset()

        messages = await orchestrator.load_messages(result.conversation_id)
        again = await orchestrator.load_messages(result.conversation_id)

        assert messages == again
        assert [m.role for m in messages] == ["user", "assistant"]
        assert state.state.active_conversation_id == result.conversation_id

    @pytest.mark.asyncio
    async def test_load_conversations_is_idempotent(self, orchestrator, store):
        await store.insert_conversation("A")
        await store.insert_conversation("B")
        assert await orchestrator.load_conversations() == await orchestrator.load_conversations()

    @pytest.mark.asyncio
    async def test_deleting_the_active_conversation_clears_it(self, orchestrator, store, state):
        result = await orchestrator.send_message("What is a lease?")
        assert await orchestrator.delete_conversation(result.conversation_id)
        assert state.state.active_conversation_id is None
        assert state.state.messages == ()
        assert state.state.conversations == ()


class TestTextParts:
    @pytest.mark.asyncio
    async def test_text_only_parts_are_streamed(self, orchestrator, store, api, state):
        conv = await store.insert_conversation("Deeds")

        result = await orchestrator.send_message([TextPart(text="And what is a deed?")], conv.id)

        assert result.ok
        assert ("stream", "And what is a deed?", conv.id) in api.calls
        assert not any(call[0] == "complete" for call in api.calls)
        user, reply = await store.list_messages(conv.id)
        assert user.content == [TextPart(text="And what is a deed?")]
        assert reply.content == "A lease is a rental contract."
        assert not state.state.messages[0].unsent

    @pytest.mark.asyncio
    async def test_file_part_without_data_is_streamed_as_text(self, orchestrator, api):
        content = [TextPart(text="Explain escrow"), FilePart(name="missing.pdf")]
        result = await orchestrator.send_message(content)
        assert result.ok
        assert ("stream", "Explain escrow", result.conversation_id) in api.calls

    @pytest.mark.asyncio
    async def test_text_only_parts_start_a_conversation(self, orchestrator, store):
        result = await orchestrator.send_message([TextPart(text="What is a lease?")])
        [conv] = await store.list_conversations()
        assert conv.id == result.conversation_id

    @pytest.mark.asyncio
    async def test_parts_without_text_or_files_are_empty(self, orchestrator, api):
        result = await orchestrator.send_message([TextPart(text="  ")])
        assert result.error == EMPTY_MESSAGE
        assert api.calls == []


class TestSwitchingConversations:
    @pytest.mark.asyncio
    async def test_reply_stays_with_its_conversation(self, orchestrator, store, api, state):
        lease = await store.insert_conversation("Lease")
        deed = await store.insert_conversation("Deed")
        await store.insert_message(deed.id, Message(role="user", content="B question"))
        api.mid_stream = asyncio.Event()

        turn = asyncio.create_task(orchestrator.send_message("What is a lease?", lease.id))
        while state.state.streaming_message is None:
            await asyncio.sleep(0)

        await orchestrator.load_messages(deed.id)
        assert state.state.streaming_message is None
        snapshots = []
        state.subscribe(snapshots.append)

        api.mid_stream.set()
        assert (await turn).ok

        assert all(s.streaming_message is None for s in snapshots)
        assert state.state.active_conversation_id == deed.id
        assert [(m.role, m.content) for m in state.state.messages] == [("user", "B question")]

        persisted = await orchestrator.load_messages(lease.id)
        assert [(m.role, m.content) for m in persisted] == [
            ("user", "What is a lease?"),
            ("assistant", "A lease is a rental contract."),
        ]

    @pytest.mark.asyncio
    async def test_failure_after_switching_leaves_other_transcript_alone(self, orchestrator, store, api, state):
        lease = await store.insert_conversation("Lease")
        deed = await store.insert_conversation("Deed")
        api.gate = asyncio.Event()
        api.error = StreamTruncated("Completion stream ended early")

        turn = asyncio.create_task(orchestrator.send_message("What is a lease?", lease.id))
        while not any(call[0] == "stream" for call in api.calls):
            await asyncio.sleep(0)
        await orchestrator.load_messages(deed.id)

        api.gate.set()
        assert (await turn).error == SEND_FAILED
        assert state.state.active_conversation_id == deed.id
        assert state.state.messages == ()
        assert state.state.streaming_message is None

    @pytest.mark.asyncio
    async def test_sending_to_another_conversation_shows_its_history(self, orchestrator, store, state):
        first = await orchestrator.send_message("What is a lease?")
        deed = await store.insert_conversation("Deed")
        await store.insert_message(deed.id, Message(role="user", content="Earlier deed question"))

        await orchestrator.send_message("Who records it?", deed.id)

        assert state.state.active_conversation_id == deed.id
        assert [m.content for m in state.state.messages] == [
            "Earlier deed question",
            "Who records it?",
            "A lease is a rental contract.",
        ]
        assert first.conversation_id != deed.id
