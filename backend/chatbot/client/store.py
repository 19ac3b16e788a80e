import re
from typing import Any

from loguru import logger
from pydantic import ValidationError

from chatbot.client.persistence import Persistence
from chatbot.core.errors import MessageValidationError, PersistenceError
from chatbot.models.chat import ChatMessage, MemoryItem, utcnow
from chatbot.models.conversation import PLACEHOLDER_TITLE, Conversation, ConversationExport

TITLE_LENGTH = 50


def derive_title(content: str) -> str:
    return content[:TITLE_LENGTH] + "..."


def parse_message(raw: Any) -> ChatMessage | None:
    try:
        return ChatMessage.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"[store] dropping malformed message: {e.error_count()} errors")
        return None


def parse_conversation(raw: Any) -> Conversation | None:
    """
    Rebuild a typed Conversation from stored JSON.

    Malformed or duplicate-id messages are dropped; a conversation whose own
    fields do not validate is rejected as a whole. Missing ids and timestamps
    are filled in by the model defaults.
    """
    if not isinstance(raw, dict):
        logger.warning(f"[store] skipping non-object conversation entry: {type(raw).__name__}")
        return None

    raw_messages = raw.get("messages") or []
    if not isinstance(raw_messages, list):
        logger.warning(f"[store] conversation {raw.get('id')!r} has no message list")
        raw_messages = []

    messages: list[ChatMessage] = []
    seen: set[str] = set()
    for item in raw_messages:
        message = parse_message(item)
        if message is None:
            continue
        if message.id in seen:
            logger.warning(f"[store] dropping duplicate message id {message.id!r}")
            continue
        seen.add(message.id)
        messages.append(message)

    try:
        return Conversation.model_validate({**raw, "messages": messages})
    except ValidationError as e:
        logger.warning(f"[store] skipping malformed conversation {raw.get('id')!r}: {e}")
        return None


class ConversationStore:
    """
    Conversations for one user plus the active message sequence.

    Every mutation of a message sequence is written through to persistence.
    A failed write is logged and reported by save() returning False; the
    in-memory state stays authoritative and the next write retries it.
    All mutation happens on one event loop, so there is no locking.
    """

    def __init__(self, user_id: str, persistence: Persistence):
        self.user_id = user_id
        self.persistence = persistence
        self.conversations: list[Conversation] = []
        self.active_id: str | None = None
        self.messages: list[ChatMessage] = []

    # ── Load / save ─────────────────────────────────────────────────────────────

    async def load(self) -> list[Conversation]:
        raw = await self.persistence.load_conversations(self.user_id)
        parsed = [parse_conversation(item) for item in raw]
        self.conversations = [c for c in parsed if c is not None]
        self.active_id = None
        self.messages = []
        logger.info(
            f"[store] loaded {len(self.conversations)} conversations for user={self.user_id}"
        )
        return self.conversations

    async def load_memories(self) -> list[MemoryItem]:
        memories = []
        for item in await self.persistence.load_memories(self.user_id):
            try:
                memories.append(MemoryItem.model_validate(item))
            except ValidationError as e:
                logger.warning(f"[store] dropping malformed memory: {e.error_count()} errors")
        return memories

    async def save_memories(self, memories: list[MemoryItem]) -> None:
        await self.persistence.save_memories(
            self.user_id,
            [m.model_dump(mode="json", by_alias=True) for m in memories],
        )

    async def save(self) -> bool:
        payload = [c.model_dump(mode="json", by_alias=True) for c in self.conversations]
        try:
            await self.persistence.save_conversations(self.user_id, payload)
        except PersistenceError as e:
            logger.error(f"[store] write-through failed for user={self.user_id}: {e}")
            return False
        return True

    # ── Conversations ───────────────────────────────────────────────────────────

    def get(self, conversation_id: str) -> Conversation | None:
        return next((c for c in self.conversations if c.id == conversation_id), None)

    @property
    def active(self) -> Conversation | None:
        return self.get(self.active_id) if self.active_id else None

    async def create_conversation(self) -> Conversation:
        conversation = Conversation()
        self.conversations.insert(0, conversation)
        self.active_id = conversation.id
        self.messages = []
        await self.save()
        return conversation

    async def ensure_active(self) -> Conversation:
        return self.active or await self.create_conversation()

    def select(self, conversation_id: str) -> Conversation | None:
        conversation = self.get(conversation_id)
        if conversation:
            self.active_id = conversation.id
            self.messages = list(conversation.messages)
        return conversation

    async def delete_conversation(self, conversation_id: str) -> None:
        self.conversations = [c for c in self.conversations if c.id != conversation_id]
        if self.active_id == conversation_id:
            self.active_id, self.messages = None, []
        await self.save()

    async def rename_conversation(self, conversation_id: str, title: str) -> None:
        conversation = self.get(conversation_id)
        if conversation is None:
            return
        conversation.title = title
        conversation.title_derived = True
        conversation.updated_at = utcnow()
        await self.save()

    # ── Messages ────────────────────────────────────────────────────────────────

    def _sequence(self, conversation_id: str | None) -> list[ChatMessage] | None:
        if conversation_id is None or conversation_id == self.active_id:
            return self.messages
        conversation = self.get(conversation_id)
        return conversation.messages if conversation else None

    async def _commit(self, conversation_id: str | None = None) -> None:
        """Write one message sequence through to its conversation and persist."""
        conversation_id = conversation_id or self.active_id
        conversation = self.get(conversation_id) if conversation_id else None
        if conversation is None:
            return

        if conversation_id == self.active_id:
            # An empty working sequence never overwrites stored messages.
            if not self.messages:
                return
            conversation.messages = list(self.messages)

        conversation.updated_at = utcnow()
        if not conversation.title_derived:
            first_user = next((m for m in conversation.messages if m.role == "user"), None)
            if first_user:
                if conversation.title == PLACEHOLDER_TITLE:
                    conversation.title = derive_title(first_user.content)
                conversation.title_derived = True
        await self.save()

    async def append_message(self, message: ChatMessage) -> ChatMessage:
        await self.ensure_active()
        self.messages.append(message)
        await self._commit()
        return message

    async def update_message(
        self,
        message_id: str,
        conversation_id: str | None = None,
        **changes: Any,
    ) -> ChatMessage | None:
        """Replace one message, located by id, with an updated copy."""
        sequence = self._sequence(conversation_id)
        if sequence is None:
            logger.warning(f"[store] conversation {conversation_id!r} no longer exists")
            return None
        for index, message in enumerate(sequence):
            if message.id == message_id:
                updated = message.model_copy(update=changes)
                sequence[index] = updated
                await self._commit(conversation_id)
                return updated
        logger.warning(f"[store] message {message_id!r} not found")
        return None

    async def edit_message(self, message_id: str, content: str) -> ChatMessage | None:
        if not content.strip():
            raise MessageValidationError("Edited message cannot be empty")
        return await self.update_message(message_id, content=content.strip(), edited=True)

    async def add_reaction(self, message_id: str, reaction: str) -> ChatMessage | None:
        message = next((m for m in self.messages if m.id == message_id), None)
        if message is None:
            return None
        reactions = {**message.reactions, reaction: message.reactions.get(reaction, 0) + 1}
        return await self.update_message(message_id, reactions=reactions)

    async def delete_message(self, message_id: str) -> None:
        remaining = [m for m in self.messages if m.id != message_id]
        if len(remaining) == len(self.messages):
            return
        self.messages = remaining
        await self._commit()

    # ── Export ──────────────────────────────────────────────────────────────────

    def export_conversation(self) -> dict | None:
        if not self.messages:
            return None
        conversation = self.active
        export = ConversationExport(
            title=conversation.title if conversation else "Conversation",
            messages=self.messages,
        )
        return export.model_dump(mode="json", by_alias=True)

    def export_filename(self) -> str:
        title = self.active.title if self.active else "Conversation"
        return f"{re.sub(r'[^a-z0-9]', '_', title, flags=re.IGNORECASE).lower()}.json"
