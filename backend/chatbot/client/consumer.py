from datetime import timedelta
from enum import Enum
from typing import Callable

import httpx
from loguru import logger

from chatbot.client.store import ConversationStore
from chatbot.config import get_settings
from chatbot.core.errors import MessageValidationError, ProviderError
from chatbot.core.router import DEFAULT_MODEL_ID
from chatbot.models.chat import ChatMessage, ChatSettings, MemoryItem, utcnow

FAILURE_MESSAGE = "Sorry, I encountered an error. Please try again."


class StreamState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    SUCCESS = "success"
    ERROR = "error"


class StreamConsumer:
    """
    Sends one user message to the chat endpoint and folds the streamed reply
    into the conversation store.

    The user message and an empty assistant placeholder are appended before any
    network I/O. Every fragment republishes the placeholder, located by id, with
    the accumulated text. Failures never escape submit(): the placeholder gets
    FAILURE_MESSAGE instead, or keeps the partial text if some arrived. Store
    write-through failures are logged by the store and do not interrupt the
    submission.

    State is tracked per conversation, so submissions on different
    conversations can run side by side.
    """

    def __init__(
        self,
        store: ConversationStore,
        client: httpx.AsyncClient,
        settings: ChatSettings | None = None,
        on_update: Callable[[ChatMessage], None] | None = None,
    ):
        self.store = store
        self.client = client
        self.settings = settings or ChatSettings()
        self.on_update = on_update
        self._states: dict[str, StreamState] = {}
        self._in_flight: set[str] = set()

    def state_of(self, conversation_id: str | None) -> StreamState:
        return self._states.get(conversation_id, StreamState.IDLE)

    @property
    def state(self) -> StreamState:
        """State of the latest submission on the active conversation."""
        return self.state_of(self.store.active_id)

    def is_busy(self, conversation_id: str | None = None) -> bool:
        conversation_id = conversation_id or self.store.active_id
        return conversation_id in self._in_flight

    async def submit(
        self,
        text: str,
        memories: list[MemoryItem] | None = None,
    ) -> ChatMessage | None:
        """
        Run one submission to a settled state and return the final assistant message.

        Raises MessageValidationError for blank input, before touching the store.
        Returns None if the active conversation already has a submission in flight.
        """
        content = (text or "").strip()
        if not content:
            raise MessageValidationError("Message is required")

        conversation = await self.store.ensure_active()
        if conversation.id in self._in_flight:
            logger.warning(f"[consumer] submission already in flight for {conversation.id}")
            return None

        self._in_flight.add(conversation.id)
        try:
            return await self._run(conversation.id, content, memories)
        finally:
            self._in_flight.discard(conversation.id)

    async def _run(
        self,
        conversation_id: str,
        content: str,
        memories: list[MemoryItem] | None,
    ) -> ChatMessage | None:
        history = self.store.messages[-get_settings().history_limit:]

        user_message = ChatMessage(role="user", content=content)
        placeholder = ChatMessage(
            role="assistant",
            content="",
            model=self.settings.model or DEFAULT_MODEL_ID,
            timestamp=max(utcnow(), user_message.timestamp + timedelta(microseconds=1)),
        )
        await self.store.append_message(user_message)
        await self.store.append_message(placeholder)
        self._states[conversation_id] = StreamState.SENDING

        accumulated = ""
        try:
            if memories is None:
                memories = await self.store.load_memories()
            payload = {
                "message": content,
                "settings": self.settings.model_dump(mode="json", by_alias=True, exclude_none=True),
                "conversationHistory": [m.model_dump(mode="json", by_alias=True) for m in history],
                "userMemories": [m.model_dump(mode="json", by_alias=True) for m in memories],
                "userId": self.store.user_id,
            }

            async with self.client.stream("POST", "/api/chat", json=payload) as resp:
                if resp.status_code != 200:
                    error_body = await resp.aread()
                    raise ProviderError(
                        f"chat endpoint returned HTTP {resp.status_code}: {error_body[:200]!r}"
                    )

                self._states[conversation_id] = StreamState.STREAMING
                async for fragment in resp.aiter_text():
                    if not fragment:
                        continue
                    accumulated += fragment
                    await self._publish(conversation_id, placeholder.id, accumulated)

        except Exception as e:
            if accumulated:
                # No wire signal separates a dropped connection from a clean end,
                # so partial output is kept and treated as success.
                logger.warning(
                    f"[consumer] stream interrupted after {len(accumulated)} chars: {e}"
                )
                self._states[conversation_id] = StreamState.SUCCESS
                return self._current(conversation_id, placeholder.id)

            logger.error(f"[consumer] chat request failed: {e}")
            self._states[conversation_id] = StreamState.ERROR
            return await self._publish(conversation_id, placeholder.id, FAILURE_MESSAGE)

        self._states[conversation_id] = StreamState.SUCCESS
        logger.debug(f"[consumer] reply settled, {len(accumulated)} chars")
        return self._current(conversation_id, placeholder.id)

    async def _publish(self, conversation_id: str, message_id: str, content: str) -> ChatMessage | None:
        updated = await self.store.update_message(message_id, conversation_id, content=content)
        if updated is not None and self.on_update is not None:
            self.on_update(updated)
        return updated

    def _current(self, conversation_id: str, message_id: str) -> ChatMessage | None:
        conversation = self.store.get(conversation_id)
        sequence = self.store.messages if conversation_id == self.store.active_id else (
            conversation.messages if conversation else []
        )
        return next((m for m in sequence if m.id == message_id), None)
