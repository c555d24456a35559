"""Tests for the chat stream relay and POST /api/chat."""
import asyncio

import pytest

from docchat.ai_provider import ChatMessage, ChatProvider, set_chat_provider
from docchat.chat import ChatStreamRelay, TurnState, derive_title
from docchat.config import ChatSettings
from docchat.errors import ChatNotFound, ModelStreamFailure
from docchat.storage import MessageRole


class GatedProvider(ChatProvider):
    """Yields the first chunk, then waits for ``gate`` before the rest."""

    name = "gated"

    def __init__(self, chunks, error=None):
        super().__init__("gated-model")
        self.chunks = chunks
        self.error = error
        self.gate = asyncio.Event()

    async def stream_chat(self, messages, system=None, max_tokens=4096):
        yield self.chunks[0]
        await self.gate.wait()
        for chunk in self.chunks[1:]:
            yield chunk
        if self.error is not None:
            raise self.error


class CountingProvider(ChatProvider):
    """Yields ``count`` numbered chunks and records how many were pulled."""

    name = "counting"

    def __init__(self, count):
        super().__init__("counting-model")
        self.count = count
        self.yielded = 0

    async def stream_chat(self, messages, system=None, max_tokens=4096):
        for i in range(self.count):
            self.yielded += 1
            yield f"{i},"


async def settle(rounds=50):
    for _ in range(rounds):
        await asyncio.sleep(0)


def user_turn(text):
    return {"messages": [{"role": "user", "content": text}]}


class TestDeriveTitle:
    """Tests for derive_title."""

    def test_short_text_is_kept(self):
        assert derive_title("What is the capital of France?", 50) == "What is the capital of France?"

    def test_long_text_is_cut(self):
        title = derive_title("word " * 40, 20)
        assert title == ("word " * 40)[:20] + "..."

    def test_whitespace_is_collapsed(self):
        assert derive_title("  line one\n\n  line\ttwo ", 50) == "line one line two"

    def test_blank_text(self):
        assert derive_title("   ", 50) == "New Chat"


class TestChatEndpoint:
    """Tests for POST /api/chat."""

    def test_streams_concatenated_chunks_and_stores_reply(self, api_client, catalog, chat_provider):
        """Chunks ["Hel", "lo", " world"] reach the client in order; one assistant row is stored."""
        chat_provider.chunks = ["Hel", "lo", " world"]

        response = api_client.post("/api/chat", json=user_turn("Say hello"))

        assert response.status_code == 200
        assert response.text == "Hello world"
        assert response.headers["content-type"].startswith("text/plain")

        chat_id = response.headers["X-Chat-Id"]
        messages = catalog.list_messages(chat_id)
        assert [(m.role, m.content) for m in messages] == [
            (MessageRole.USER, "Say hello"),
            (MessageRole.ASSISTANT, "Hello world"),
        ]

    def test_new_chat_gets_derived_title(self, api_client, catalog, user_id):
        """A first message creates a chat titled after it and returns its id."""
        question = "What is the capital of France?"

        response = api_client.post("/api/chat", json=user_turn(question))

        assert response.status_code == 200
        chat_id = response.headers["X-Chat-Id"]
        chat = catalog.get_chat(chat_id)
        assert chat is not None
        assert chat.owner_id == user_id
        assert question.startswith(chat.title)
        assert [c.id for c in catalog.list_chats(user_id)] == [chat_id]

    def test_long_first_message_title_is_truncated(self, api_client, app_config, catalog):
        app_config.chat.title_max_chars = 10

        response = api_client.post("/api/chat", json=user_turn("What is the capital of France?"))

        chat = catalog.get_chat(response.headers["X-Chat-Id"])
        assert chat.title == "What is th..."

    def test_continues_existing_chat(self, api_client, catalog, user_id):
        chat = catalog.create_chat(user_id, "Existing")

        response = api_client.post(
            "/api/chat",
            json={"chatId": chat.id, "messages": [{"role": "user", "content": "Again"}]},
        )

        assert response.status_code == 200
        assert response.headers["X-Chat-Id"] == chat.id
        assert len(catalog.list_chats(user_id)) == 1
        assert [m.content for m in catalog.list_messages(chat.id)] == ["Again", "Hello world"]

    def test_last_user_message_is_stored_and_history_sent_to_model(self, api_client, catalog, chat_provider):
        conversation = [
            {"role": "user", "content": "First question"},
            {"role": "assistant", "content": "First answer"},
            {"role": "user", "content": "Follow-up"},
        ]

        response = api_client.post("/api/chat", json={"messages": conversation})

        stored = catalog.list_messages(response.headers["X-Chat-Id"])
        assert [m.content for m in stored] == ["Follow-up", "Hello world"]
        sent = chat_provider.calls[0]["messages"]
        assert [(m.role, m.content) for m in sent] == [
            (m["role"], m["content"]) for m in conversation
        ]

    def test_user_message_committed_before_model_call(self, api_client, catalog, chat_provider, user_id):
        seen = []

        def snapshot():
            [chat] = catalog.list_chats(user_id)
            seen.extend((m.role, m.content) for m in catalog.list_messages(chat.id))

        chat_provider.before_stream = snapshot

        api_client.post("/api/chat", json=user_turn("Remember me"))

        assert seen == [(MessageRole.USER, "Remember me")]

    def test_system_prompt_lists_synced_documents(self, api_client, catalog, chat_provider):
        catalog.create_document("handbook.pdf", "application/pdf", "/u/h.pdf", "https://store.test/files/7")
        catalog.create_document("draft.txt", "text/plain", "/u/d.txt", None)

        api_client.post("/api/chat", json=user_turn("What does the handbook say?"))

        system = chat_provider.calls[0]["system"]
        assert "File: handbook.pdf" in system
        assert "https://store.test/files/7" in system
        assert "draft.txt" not in system

    def test_model_error_mid_stream_truncates_and_stores_no_reply(self, api_client, catalog, chat_provider):
        chat_provider.chunks = ["Hel", "lo"]
        chat_provider.error = RuntimeError("upstream reset")

        response = api_client.post("/api/chat", json=user_turn("Say hello"))

        assert response.status_code == 200
        assert response.text == "Hello"
        messages = catalog.list_messages(response.headers["X-Chat-Id"])
        assert [m.role for m in messages] == [MessageRole.USER]

    def test_model_error_before_first_chunk_is_500(self, api_client, catalog, chat_provider, user_id):
        chat_provider.chunks = []
        chat_provider.error = RuntimeError("invalid API key")

        response = api_client.post("/api/chat", json=user_turn("Hello?"))

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Internal Server Error"
        assert "invalid API key" in body["details"]
        # The user message survives the failed model call
        [chat] = catalog.list_chats(user_id)
        assert [m.content for m in catalog.list_messages(chat.id)] == ["Hello?"]

    def test_provider_not_configured(self, api_client, catalog, user_id):
        set_chat_provider(None)

        response = api_client.post("/api/chat", json=user_turn("Hello?"))

        assert response.status_code == 500
        assert "not configured" in response.json()["details"]

    def test_empty_reply_is_stored_once(self, api_client, catalog, chat_provider):
        chat_provider.chunks = []

        response = api_client.post("/api/chat", json=user_turn("Say nothing"))

        assert response.status_code == 200
        assert response.text == ""
        messages = catalog.list_messages(response.headers["X-Chat-Id"])
        assert [(m.role, m.content) for m in messages] == [
            (MessageRole.USER, "Say nothing"),
            (MessageRole.ASSISTANT, ""),
        ]

    @pytest.mark.parametrize("payload", [{}, {"messages": []}])
    def test_missing_messages(self, api_client, payload):
        response = api_client.post("/api/chat", json=payload)

        assert response.status_code == 400
        assert response.json() == {"error": "Missing messages"}

    def test_no_body(self, api_client):
        response = api_client.post("/api/chat")

        assert response.status_code == 400

    def test_no_user_message(self, api_client):
        response = api_client.post(
            "/api/chat",
            json={"messages": [{"role": "assistant", "content": "Hi"}]},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Missing user message"}

    def test_unknown_chat(self, api_client):
        response = api_client.post(
            "/api/chat",
            json={"chatId": "missing", "messages": [{"role": "user", "content": "Hi"}]},
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Chat not found"}

    def test_foreign_chat(self, api_client, catalog, other_user_id):
        chat = catalog.create_chat(other_user_id, "Not yours")

        response = api_client.post(
            "/api/chat",
            json={"chatId": chat.id, "messages": [{"role": "user", "content": "Hi"}]},
        )

        assert response.status_code == 404
        assert catalog.list_messages(chat.id) == []

    def test_requires_identity(self, anonymous_client, catalog):
        response = anonymous_client.post("/api/chat", json=user_turn("Hi"))

        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}


class TestChatStreamRelay:
    """Tests for ChatStreamRelay turn lifecycle."""

    def _relay(self, catalog, provider, **settings):
        return ChatStreamRelay(catalog=catalog, provider=provider, settings=ChatSettings(**settings))

    @pytest.mark.asyncio
    async def test_completed_turn(self, catalog, chat_provider, user_id):
        turn = await self._relay(catalog, chat_provider).start_turn(
            user_id, [ChatMessage(role="user", content="Hi")]
        )

        received = [chunk async for chunk in turn.stream()]

        assert received == [b"Hel", b"lo", b" world"]
        assert turn.state == TurnState.COMPLETED
        assert turn.created_chat is True
        assert turn.assistant_message.content == "Hello world"
        assert turn.detached is False

    @pytest.mark.asyncio
    async def test_reply_stored_after_client_disconnect(self, catalog, user_id):
        provider = GatedProvider(["Hel", "lo", " world"])
        turn = await self._relay(catalog, provider).start_turn(
            user_id, [ChatMessage(role="user", content="Hi")]
        )

        stream = turn.stream()
        assert await stream.__anext__() == b"Hel"
        await stream.aclose()
        assert turn.detached is True
        assert turn.state == TurnState.STREAMING

        provider.gate.set()
        assert await asyncio.wait_for(turn.wait(), timeout=5) == TurnState.COMPLETED

        messages = catalog.list_messages(turn.chat.id)
        assert [(m.role, m.content) for m in messages] == [
            (MessageRole.USER, "Hi"),
            (MessageRole.ASSISTANT, "Hello world"),
        ]

    @pytest.mark.asyncio
    async def test_model_error_after_disconnect_aborts(self, catalog, user_id):
        provider = GatedProvider(["Hel", "lo"], error=RuntimeError("stream broke"))
        turn = await self._relay(catalog, provider).start_turn(
            user_id, [ChatMessage(role="user", content="Hi")]
        )

        stream = turn.stream()
        await stream.__anext__()
        await stream.aclose()
        provider.gate.set()

        assert await asyncio.wait_for(turn.wait(), timeout=5) == TurnState.ABORTED
        assert isinstance(turn.error, ModelStreamFailure)
        assert turn.assistant_message is None
        assert [m.role for m in catalog.list_messages(turn.chat.id)] == [MessageRole.USER]

    @pytest.mark.asyncio
    async def test_foreign_chat_is_not_found(self, catalog, chat_provider, user_id, other_user_id):
        chat = catalog.create_chat(other_user_id, "Theirs")

        with pytest.raises(ChatNotFound):
            await self._relay(catalog, chat_provider).start_turn(
                user_id, [ChatMessage(role="user", content="Hi")], chat_id=chat.id
            )

        assert chat_provider.calls == []

    @pytest.mark.asyncio
    async def test_requires_user_message(self, catalog, chat_provider, user_id):
        with pytest.raises(ValueError):
            await self._relay(catalog, chat_provider).start_turn(
                user_id, [ChatMessage(role="assistant", content="Hi")]
            )

    @pytest.mark.asyncio
    async def test_slow_client_holds_back_the_model_stream(self, catalog, user_id):
        """Only queue_size chunks wait for a client that is not reading."""
        provider = CountingProvider(100)
        turn = await self._relay(catalog, provider, queue_size=2).start_turn(
            user_id, [ChatMessage(role="user", content="Hi")]
        )
        await settle()

        # First chunk handed to the response, two queued, one waiting to be queued.
        assert provider.yielded <= 4
        assert turn.state == TurnState.STREAMING

        received = b"".join([chunk async for chunk in turn.stream()])

        expected = "".join(f"{i}," for i in range(100))
        assert received.decode("utf-8") == expected
        assert turn.state == TurnState.COMPLETED
        assert turn.assistant_message.content == expected

    @pytest.mark.asyncio
    async def test_disconnect_with_full_queue_still_stores_reply(self, catalog, user_id):
        provider = CountingProvider(50)
        turn = await self._relay(catalog, provider, queue_size=2).start_turn(
            user_id, [ChatMessage(role="user", content="Hi")]
        )
        await settle()

        stream = turn.stream()
        assert await stream.__anext__() == b"0,"
        await stream.aclose()
        assert turn.detached is True

        assert await asyncio.wait_for(turn.wait(), timeout=5) == TurnState.COMPLETED
        assert provider.yielded == 50
        assert turn.assistant_message.content == "".join(f"{i}," for i in range(50))
