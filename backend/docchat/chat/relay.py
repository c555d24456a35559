"""Chat Stream Relay: one chat turn from user message to stored reply.

Turn lifecycle::

    IDLE -> USER_PERSISTED -> STREAMING -> COMPLETED
                                       \\-> ABORTED   (model or storage error)

The user message is committed before the model is called. Model output is
pumped by a background task into a bounded queue that the response drains, so
the reply keeps accumulating after the client goes away. The assistant
message is written once, after the model stream ends normally, and never
when the turn aborts.

Usage:
    relay = ChatStreamRelay(catalog, provider, config.chat)
    turn = await relay.start_turn(user_id, messages, chat_id=None)
    return StreamingResponse(turn.stream(), headers={"X-Chat-Id": turn.chat.id})
"""
import asyncio
import functools
import logging
from contextlib import aclosing
from enum import Enum
from typing import AsyncIterator, List, Optional, Set, Tuple

from docchat.ai_provider import ChatMessage, ChatProvider, build_system_prompt
from docchat.config import ChatSettings
from docchat.errors import ChatNotFound, DocChatError, ModelStreamFailure
from docchat.storage import CatalogService, Chat, Message, MessageRole

logger = logging.getLogger(__name__)

DEFAULT_CHAT_TITLE = "New Chat"

# Pump tasks outlive the request that started them; keep a strong reference.
_background_tasks: Set[asyncio.Task] = set()

_Event = Tuple[str, Optional[object]]


class TurnState(str, Enum):
    IDLE = "idle"
    USER_PERSISTED = "user_persisted"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"


def derive_title(text: str, max_chars: int) -> str:
    """Short chat title from the first user message.

    Whitespace is collapsed; text longer than ``max_chars`` is cut and
    suffixed with ``...``.
    """
    collapsed = " ".join(text.split())
    if not collapsed:
        return DEFAULT_CHAT_TITLE
    if len(collapsed) <= max_chars:
        return collapsed
    return collapsed[:max_chars] + "..."


def last_user_message(messages: List[ChatMessage]) -> Optional[ChatMessage]:
    for message in reversed(messages):
        if message.role == MessageRole.USER.value:
            return message
    return None


async def _run(func, *args, **kwargs):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


class ChatTurn:
    """State of one chat turn.

    Attributes:
        chat: The chat this turn belongs to.
        created_chat: True when the chat was created for this turn.
        state: Current TurnState.
        assistant_message: The stored reply once the turn completed.
        error: The failure that aborted the turn, if any.
    """

    def __init__(
        self,
        catalog: CatalogService,
        provider: ChatProvider,
        chat: Chat,
        created_chat: bool,
        max_pending: int = 8,
    ):
        self.chat = chat
        self.created_chat = created_chat
        self.state = TurnState.IDLE
        self.assistant_message: Optional[Message] = None
        self.error: Optional[DocChatError] = None
        self._catalog = catalog
        self._provider = provider
        self._parts: List[str] = []
        self._queue: "asyncio.Queue[_Event]" = asyncio.Queue(maxsize=max_pending)
        self._first_event: Optional[_Event] = None
        self._detached = False
        self._task: Optional[asyncio.Task] = None

    @property
    def reply_text(self) -> str:
        """Assistant text received so far."""
        return "".join(self._parts)

    @property
    def detached(self) -> bool:
        """True when the client stopped reading before the turn finished."""
        return self._detached

    async def _publish(self, event: _Event) -> None:
        # Waits while the client is behind; a detached turn publishes nothing.
        if not self._detached:
            await self._queue.put(event)

    def _detach(self) -> None:
        self._detached = True
        # Free the queue so a pump blocked on a full queue can finish the turn.
        while not self._queue.empty():
            self._queue.get_nowait()

    async def _abort(self, error: DocChatError) -> None:
        self.state = TurnState.ABORTED
        self.error = error
        await self._publish(("error", error))

    async def _pump(self, stream: AsyncIterator[str]) -> None:
        self.state = TurnState.STREAMING
        logger.info("[chat] model stream start: chat=%s provider=%s", self.chat.id, self._provider.name)
        try:
            async with aclosing(stream) as texts:
                async for text in texts:
                    self._parts.append(text)
                    await self._publish(("chunk", text))
        except asyncio.CancelledError:
            self.state = TurnState.ABORTED
            logger.warning("[chat] turn cancelled: chat=%s", self.chat.id)
            raise
        except Exception as e:
            logger.error("[chat] turn aborted, model error: chat=%s error=%s", self.chat.id, e)
            await self._abort(ModelStreamFailure(str(e), self._provider.name))
            return

        content = self.reply_text
        try:
            self.assistant_message = await _run(
                self._catalog.add_message, self.chat.id, MessageRole.ASSISTANT, content
            )
        except DocChatError as e:
            logger.error("[chat] turn aborted, reply not stored: chat=%s error=%s", self.chat.id, e)
            await self._abort(e)
            return

        self.state = TurnState.COMPLETED
        logger.info(
            "[chat] turn completed: chat=%s chars=%d detached=%s",
            self.chat.id, len(content), self._detached,
        )
        await self._publish(("done", None))

    async def begin(self, stream: AsyncIterator[str]) -> None:
        """Start pumping ``stream`` and wait for its first event.

        Raises:
            DocChatError: The turn aborted before producing any text.
        """
        self._task = asyncio.create_task(self._pump(stream))
        _background_tasks.add(self._task)
        self._task.add_done_callback(_background_tasks.discard)

        try:
            event = await self._queue.get()
        except asyncio.CancelledError:
            self._detach()
            raise
        if event[0] == "error":
            raise event[1]
        self._first_event = event

    async def wait(self) -> TurnState:
        """Wait until the turn reached a terminal state."""
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.state

    async def stream(self) -> AsyncIterator[bytes]:
        """Client side of the relay: UTF-8 text as the model produces it.

        Ends early (truncated body) when the turn aborts after streaming began.
        """
        event, self._first_event = self._first_event, None
        try:
            while True:
                if event is None:
                    event = await self._queue.get()
                kind, payload = event
                event = None
                if kind == "chunk":
                    yield payload.encode("utf-8")
                elif kind == "done":
                    return
                else:
                    logger.warning("[chat] stream truncated: chat=%s", self.chat.id)
                    return
        finally:
            if self._task is not None and not self._task.done():
                self._detach()
                logger.info(
                    "[chat] client disconnected while streaming: chat=%s; reply still pending",
                    self.chat.id,
                )


class ChatStreamRelay:
    """Runs chat turns against one catalog and provider.

    Args:
        catalog: Catalog holding chats and messages.
        provider: Streaming chat model, or None when not configured.
        settings: Chat settings (max tokens, title length).
    """

    def __init__(
        self,
        catalog: CatalogService,
        provider: Optional[ChatProvider],
        settings: ChatSettings,
    ) -> None:
        self._catalog = catalog
        self._provider = provider
        self._settings = settings

    async def _resolve_chat(self, user_id: str, chat_id: Optional[str], first_text: str) -> Tuple[Chat, bool]:
        if chat_id:
            chat = await _run(self._catalog.get_chat, chat_id)
            if chat is None or chat.owner_id != user_id:
                logger.info("[chat] chat %s not found for user=%s", chat_id, user_id)
                raise ChatNotFound()
            return chat, False

        title = derive_title(first_text, self._settings.title_max_chars)
        chat = await _run(self._catalog.create_chat, user_id, title)
        logger.info("[chat] new chat created: id=%s title=%r", chat.id, title)
        return chat, True

    async def start_turn(
        self,
        user_id: str,
        messages: List[ChatMessage],
        chat_id: Optional[str] = None,
    ) -> ChatTurn:
        """Persist the user message, call the model and return the running turn.

        Args:
            user_id: Caller identity; owner of new chats.
            messages: Conversation, oldest first; the last user message is
                the one this turn stores.
            chat_id: Existing chat to continue, or None to start a new chat.

        Raises:
            ValueError: ``messages`` holds no user message.
            ChatNotFound: ``chat_id`` is unknown or owned by someone else.
            ModelStreamFailure: No provider, or the model failed before any text.
            PersistenceFailure: The catalog rejected a write.
        """
        user_message = last_user_message(messages)
        if user_message is None:
            raise ValueError("messages contain no user message")
        if self._provider is None:
            raise ModelStreamFailure("Chat provider is not configured")

        logger.info("[chat] turn start: user=%s chat=%s messages=%d", user_id, chat_id, len(messages))
        chat, created = await self._resolve_chat(user_id, chat_id, user_message.content)

        turn = ChatTurn(
            self._catalog, self._provider, chat, created, max_pending=self._settings.queue_size
        )
        await _run(self._catalog.add_message, chat.id, MessageRole.USER, user_message.content)
        turn.state = TurnState.USER_PERSISTED

        documents = await _run(self._catalog.list_documents)
        stream = self._provider.stream_chat(
            messages,
            system=build_system_prompt(documents),
            max_tokens=self._settings.max_tokens,
        )
        await turn.begin(stream)
        return turn
