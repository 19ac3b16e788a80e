from datetime import datetime

from pydantic import Field

from chatbot.models.chat import CamelModel, ChatMessage, new_id, utcnow

PLACEHOLDER_TITLE = "New Conversation"


class Conversation(CamelModel):
    id: str = Field(default_factory=lambda: new_id("conv"))
    title: str = PLACEHOLDER_TITLE
    # Set once the title has been derived from the first user message or
    # chosen explicitly; a set flag stops any further derivation.
    title_derived: bool = False
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ConversationExport(CamelModel):
    title: str
    messages: list[ChatMessage]
    exported_at: datetime = Field(default_factory=utcnow)
